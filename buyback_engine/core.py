"""Treasury simulation driving the buyback engine with AgentPy.

Each model step is one minute. Fees flow into the treasury ledger, then the
engine runs a cycle exactly as an external scheduler would: load the record,
authorize, decide, claim the window and disburse. Snapshots capture what the
schedule did so routing and threshold choices can be compared offline.
"""

import copy
from typing import Any, Dict, List

import agentpy as ap
import numpy as np

from .collaborators import AuthorityCheck, InMemoryStateStore, LedgerDisburser, derive_state_key
from .config import EngineConfig
from .engine import BuybackEngine
from .schedule import balance_accumulated, interval_elapsed
from .state import SimulationResults, TreasurySnapshot


class TreasuryModel(ap.Model):
    """Agent-based model of one treasury under a buyback schedule."""

    def setup(self) -> None:
        """Initialize the model using AgentPy's setup lifecycle."""
        self.engine_config: EngineConfig = self.p.get('engine_config')
        if self.engine_config is None:
            # Rebuild config from flat parameters for experiment compatibility
            self.engine_config = EngineConfig()
            for key, value in self.p.items():
                if hasattr(self.engine_config, key):
                    setattr(self.engine_config, key, value)
        self.engine_config.validate()

        self.random.seed(self.p.get('seed', self.engine_config.random_seed))

        self.minute: int = 0
        self.inflow_mean: float = float(self.p.get('inflow_mean', self.engine_config.inflow_lamports_per_minute))
        self.inflow_volatility: float = float(self.p.get('inflow_volatility', self.engine_config.inflow_volatility))

        # Collaborators: record store, authority check and treasury ledger
        self.authority = self.engine_config.authority
        self.state_key = derive_state_key(self.engine_config.authority, self.engine_config.treasury)
        self.store = InMemoryStateStore()
        self.store.save(self.state_key, self.engine_config.to_engine_state())
        self.disburser = LedgerDisburser(int(self.p.get('initial_treasury', self.engine_config.initial_treasury_lamports)))
        self.engine = BuybackEngine(self.store, AuthorityCheck(), self.disburser)

        self.snapshots: List[TreasurySnapshot] = []
        self.hourly_aggregates: List[Dict[str, Any]] = []

        self.record('initial_setup_complete', True)

    def step(self) -> None:
        """Advance one minute: accrue inflow, then run one engine cycle."""
        now = self.minute * 60

        inflow = self._draw_inflow()
        self.disburser.credit_treasury(inflow)
        balance_before = self.disburser.treasury_balance

        state = self.store.load(self.state_key)
        by_time = interval_elapsed(state, now)
        by_balance = balance_accumulated(state, balance_before)

        outcome = self.engine.run_cycle(self.state_key, self.authority, now, balance_before)

        snapshot = TreasurySnapshot(
            timestamp=self.minute,
            now=now,
            inflow=inflow,
            balance_before=balance_before,
            balance_after=self.disburser.treasury_balance,
            executed=outcome.executed,
            eligible_by_time=by_time,
            eligible_by_balance=by_balance,
            last_execution_ts=self.store.load(self.state_key).last_execution_ts,
        )
        if outcome.executed:
            snapshot.buyback_amount = outcome.allocation.buyback_amount
            snapshot.lp_amount = outcome.allocation.lp_amount
            snapshot.distribution_amount = outcome.allocation.distribution_amount
        self.snapshots.append(snapshot)

        # Record data using AgentPy's built-in data collection
        self.record('minute', self.minute)
        self.record('treasury_balance', snapshot.balance_after)
        self.record('executed', snapshot.executed)

        self.minute += 1
        if self.minute % 60 == 0:
            self._process_hourly_aggregate()

    def _draw_inflow(self) -> int:
        if self.inflow_mean <= 0:
            return 0
        draw = self.random.normalvariate(self.inflow_mean, self.inflow_mean * self.inflow_volatility)
        return max(0, int(round(draw)))

    def _process_hourly_aggregate(self) -> None:
        if len(self.snapshots) < 60:
            return

        hour_snapshots = self.snapshots[-60:]
        hourly = {
            "hour": self.minute // 60 - 1,
            "inflow": int(np.sum([s.inflow for s in hour_snapshots])),
            "executions": int(sum(1 for s in hour_snapshots if s.executed)),
            "buyback_amount": int(np.sum([s.buyback_amount for s in hour_snapshots])),
            "lp_amount": int(np.sum([s.lp_amount for s in hour_snapshots])),
            "distribution_amount": int(np.sum([s.distribution_amount for s in hour_snapshots])),
            "avg_treasury_balance": float(np.mean([s.balance_after for s in hour_snapshots])),
            "treasury_balance": self.disburser.treasury_balance,
        }
        self.hourly_aggregates.append(hourly)


class TreasurySimulation:
    """High-level interface: validate a config, run it, collect results."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self.config.validate()
        self._last_results = None

    def run(self, hours: int) -> SimulationResults:
        params = self.config.to_agentpy_params()

        model = TreasuryModel(params)
        model.setup()

        for _ in range(hours * 60):
            model.step()

        self._last_results = SimulationResults(
            snapshots=model.snapshots,
            hourly_aggregates=model.hourly_aggregates,
            config=self.config,
            ledger_balances=copy.deepcopy(model.disburser.balances),
        )
        return self._last_results

    def get_dataframe(self):
        """Return the last run's snapshots as a polars DataFrame (None before a run)."""
        from .metrics import snapshots_to_dataframe

        if not self._last_results:
            return None
        return snapshots_to_dataframe(self._last_results.snapshots)
