"""Configuration for the buyback engine and its simulation."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .router import validate_routing
from .state import IDENTITY_LENGTH, EngineState

# Routing presets
ROUTING_SCENARIOS = {
    "default": {"buyback_bps": 5000, "lp_bps": 3000, "distribution_bps": 1500},            # 95% routed, 5% retained
    "buyback_heavy": {"buyback_bps": 8000, "lp_bps": 1000, "distribution_bps": 1000},      # full routing, buyback first
    "liquidity_focused": {"buyback_bps": 2000, "lp_bps": 6000, "distribution_bps": 1500},  # deepen pools, 5% retained
    "full_distribution": {"buyback_bps": 0, "lp_bps": 0, "distribution_bps": 10000},       # everything to holders
}


@dataclass
class EngineConfig:
    """Configuration bundle for an engine record and a simulation run.

    The schedule and routing fields map one to one onto ``EngineState``.
    The simulation fields only drive the synthetic treasury in ``core``.
    """

    # Schedule - either threshold opens a window
    min_interval_seconds: int = 3600            # One hour between time-triggered executions
    min_accumulated_lamports: int = 1_000_000_000  # 1 SOL accumulated triggers early execution

    # Routing weights in basis points (remainder stays in treasury)
    buyback_bps: int = 5000                     # 50% to buyback
    lp_bps: int = 3000                          # 30% to liquidity provision
    distribution_bps: int = 1500                # 15% to holder distribution

    # Identities (hex, 32 bytes each)
    authority_hex: str = "11" * IDENTITY_LENGTH
    treasury_hex: str = "22" * IDENTITY_LENGTH
    bump: int = 255

    # Simulation - synthetic treasury inflow
    initial_treasury_lamports: int = 0
    inflow_lamports_per_minute: int = 5_000_000  # Mean fee inflow per minute
    inflow_volatility: float = 0.5              # Stddev as a fraction of the mean
    random_seed: int = 42

    def validate(self) -> None:
        """Validate configuration against engine invariants."""
        validate_routing(self.buyback_bps, self.lp_bps, self.distribution_bps)

        assert self.min_interval_seconds >= 0, "Minimum interval cannot be negative"
        assert self.min_accumulated_lamports >= 0, "Minimum accumulated balance cannot be negative"
        assert len(bytes.fromhex(self.authority_hex)) == IDENTITY_LENGTH, "Authority must be 32 bytes"
        assert len(bytes.fromhex(self.treasury_hex)) == IDENTITY_LENGTH, "Treasury must be 32 bytes"
        assert 0 <= self.bump <= 255, "Bump must fit in one byte"

        assert self.initial_treasury_lamports >= 0
        assert self.inflow_lamports_per_minute >= 0
        assert self.inflow_volatility >= 0

    @property
    def authority(self) -> bytes:
        return bytes.fromhex(self.authority_hex)

    @property
    def treasury(self) -> bytes:
        return bytes.fromhex(self.treasury_hex)

    def to_engine_state(self, last_execution_ts: int = 0) -> EngineState:
        return EngineState(
            authority=self.authority,
            treasury=self.treasury,
            last_execution_ts=last_execution_ts,
            min_interval_seconds=self.min_interval_seconds,
            min_accumulated_lamports=self.min_accumulated_lamports,
            buyback_bps=self.buyback_bps,
            lp_bps=self.lp_bps,
            distribution_bps=self.distribution_bps,
            bump=self.bump,
        )

    @classmethod
    def from_calibration_file(cls, file_path: str, overrides: Optional[dict] = None):
        """
        Load configuration from JSON.

        Structure:
        {
            "engine_config": {...}
        }
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Calibration file not found: {file_path}")

        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)

        engine_config = data.get("engine_config", {})
        engine_config.update(overrides or {})
        return cls(**engine_config)

    def to_agentpy_params(self) -> dict:
        """Convert configuration to agentpy-friendly parameter dictionary."""
        return {
            "seed": self.random_seed,
            "initial_treasury": self.initial_treasury_lamports,
            "inflow_mean": self.inflow_lamports_per_minute,
            "inflow_volatility": self.inflow_volatility,
            "schedule": {
                "min_interval_seconds": self.min_interval_seconds,
                "min_accumulated_lamports": self.min_accumulated_lamports,
            },
            "routing": {
                "buyback_bps": self.buyback_bps,
                "lp_bps": self.lp_bps,
                "distribution_bps": self.distribution_bps,
            },
            "engine_config": self,
        }

    @classmethod
    def create_routing_scenario(cls, scenario: str, **kwargs):
        """Convenience helper for common routing experiments."""
        if scenario not in ROUTING_SCENARIOS:
            available = ", ".join(sorted(ROUTING_SCENARIOS.keys()))
            raise ValueError(f"Unknown routing scenario '{scenario}'. Available: {available}")

        config_params = ROUTING_SCENARIOS[scenario].copy()
        config_params.update(kwargs)

        return cls(**config_params)
