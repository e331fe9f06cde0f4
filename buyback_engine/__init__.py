"""Scheduled Buyback Engine

Gates and executes periodic treasury disbursements:
- Eligibility gate: minimum interval OR minimum accumulated balance
- Proportional routing into buyback / liquidity / distribution buckets
- Orchestrator with compare-and-set commit of the execution cursor
- Reference storage, authorization and disbursement collaborators
- AgentPy treasury simulation with polars metrics and plots
"""

__version__ = "0.1.0"

# Core decision logic
from .schedule import (
    ScheduleStatus,
    is_eligible,
    require_eligible,
    schedule_status,
    seconds_until_eligible,
)
from .router import allocate, validate_routing
from .engine import BuybackEngine, execute

# State and errors
from .state import (
    AllocationResult,
    EngineState,
    Executed,
    Outcome,
    SimulationResults,
    Skipped,
    TreasurySnapshot,
)
from .errors import (
    ERROR_MESSAGES,
    EngineError,
    ExecutionAlreadyPerformed,
    InsufficientTreasuryBalance,
    InvalidRoutingConfig,
    ScheduleNotSatisfied,
    StateNotFound,
    Unauthorized,
)
from .layout import LayoutError, decode_state, encode_state

# Collaborators
from .collaborators import (
    AuthorityCheck,
    InMemoryStateStore,
    LedgerDisburser,
    SqliteStateStore,
    derive_state_key,
)
from .config import EngineConfig

# Simulation and metrics
from .core import TreasuryModel, TreasurySimulation
from .metrics import (
    calculate_daily_aggregates,
    calculate_hourly_aggregates,
    calculate_key_metrics,
    export_metrics_to_file,
    snapshots_to_dataframe,
)

__all__ = [
    # Core
    "is_eligible",
    "allocate",
    "execute",
    "BuybackEngine",
    "ScheduleStatus",
    "schedule_status",
    "seconds_until_eligible",
    "require_eligible",
    "validate_routing",

    # State
    "EngineState",
    "AllocationResult",
    "Skipped",
    "Executed",
    "Outcome",
    "TreasurySnapshot",
    "SimulationResults",
    "encode_state",
    "decode_state",
    "LayoutError",

    # Errors
    "EngineError",
    "ScheduleNotSatisfied",
    "InvalidRoutingConfig",
    "Unauthorized",
    "ExecutionAlreadyPerformed",
    "StateNotFound",
    "InsufficientTreasuryBalance",
    "ERROR_MESSAGES",

    # Collaborators and config
    "InMemoryStateStore",
    "SqliteStateStore",
    "AuthorityCheck",
    "LedgerDisburser",
    "derive_state_key",
    "EngineConfig",

    # Simulation and metrics
    "TreasuryModel",
    "TreasurySimulation",
    "snapshots_to_dataframe",
    "calculate_key_metrics",
    "calculate_hourly_aggregates",
    "calculate_daily_aggregates",
    "export_metrics_to_file",
]
