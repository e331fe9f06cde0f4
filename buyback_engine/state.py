"""Core data structures for buyback engine state and outcomes."""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

BPS_DENOMINATOR = 10_000
U64_MAX = 2 ** 64 - 1
IDENTITY_LENGTH = 32


@dataclass
class EngineState:
    """Persisted schedule configuration plus the execution cursor.

    One record exists per treasury. The orchestrator is the only writer and
    only ever touches ``last_execution_ts`` and the in-process ``revision``
    counter; everything else is set by the external initialization path.
    """
    authority: bytes                        # Identity allowed to manage this record
    treasury: bytes                         # Funding source account (opaque to the engine)
    last_execution_ts: int = 0              # Unix seconds of last successful disbursement
    min_interval_seconds: int = 0           # Elapsed time that makes a window eligible
    min_accumulated_lamports: int = 0       # Treasury balance that makes a window eligible
    buyback_bps: int = 0                    # Buyback weight (1 bps = 1/10000)
    lp_bps: int = 0                         # Liquidity provision weight
    distribution_bps: int = 0               # Holder distribution weight
    bump: int = 0                           # Storage addressing nonce, unused by the engine
    revision: int = field(default=0, compare=False, repr=False)  # In-process commit counter, not persisted

    @property
    def routing_bps_total(self) -> int:
        return self.buyback_bps + self.lp_bps + self.distribution_bps

    def copy(self) -> "EngineState":
        return dataclasses.replace(self)

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data.pop("revision")
        data["authority"] = self.authority.hex()
        data["treasury"] = self.treasury.hex()
        return data


@dataclass(frozen=True)
class AllocationResult:
    """Per-bucket amounts produced by one allocation.

    ``unallocated`` is what integer truncation (and any weight below 100%)
    leaves behind; it stays in the treasury.
    """
    buyback_amount: int
    lp_amount: int
    distribution_amount: int
    source_amount: int = 0

    @property
    def total(self) -> int:
        return self.buyback_amount + self.lp_amount + self.distribution_amount

    @property
    def unallocated(self) -> int:
        return self.source_amount - self.total

    def to_dict(self) -> Dict[str, int]:
        return {
            "buyback": self.buyback_amount,
            "lp": self.lp_amount,
            "distribution": self.distribution_amount,
            "total": self.total,
            "unallocated": self.unallocated,
        }


@dataclass(frozen=True)
class Skipped:
    """Window not eligible; nothing was changed."""
    reason: str = "schedule conditions not met"

    executed = False

    def to_dict(self) -> Dict[str, Any]:
        return {"status": "skipped", "reason": self.reason}


@dataclass(frozen=True)
class Executed:
    """Window was eligible and the execution cursor moved to ``executed_at``."""
    allocation: AllocationResult
    executed_at: int

    executed = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "executed",
            "executed_at": self.executed_at,
            "allocation": self.allocation.to_dict(),
        }


Outcome = Union[Skipped, Executed]


@dataclass
class TreasurySnapshot:
    """Snapshot of a simulated treasury at one simulation minute.

    Captures balances before and after the cycle so metrics can reconstruct
    inflows, disbursements and how often the schedule fired.
    """
    timestamp: int                              # Simulation minute (0-based)
    now: int                                    # Clock value handed to the engine (seconds)
    inflow: int                                 # Lamports credited to the treasury this minute
    balance_before: int                         # Treasury balance offered to the engine
    balance_after: int                          # Treasury balance after any disbursement
    executed: bool = False                      # Whether the engine executed this minute
    eligible_by_time: bool = False              # Interval threshold met at cycle time
    eligible_by_balance: bool = False           # Balance threshold met at cycle time
    buyback_amount: int = 0
    lp_amount: int = 0
    distribution_amount: int = 0
    last_execution_ts: int = 0                  # Cursor after the cycle


@dataclass
class SimulationResults:
    """Results from a complete simulation run."""
    snapshots: List[TreasurySnapshot]
    hourly_aggregates: List[Dict[str, Any]]
    config: Any
    ledger_balances: Dict[str, int] = field(default_factory=dict)
