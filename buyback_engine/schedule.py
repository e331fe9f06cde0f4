"""Eligibility rules for a disbursement window.

A window opens when EITHER enough time has passed since the last execution
OR the treasury has accumulated enough funds. Both thresholds are inclusive.
Whether the engine is eligible or cooling down is derived on every call and
never stored.
"""

from enum import Enum

from .errors import ScheduleNotSatisfied
from .state import EngineState


class ScheduleStatus(str, Enum):
    ELIGIBLE = "eligible"
    COOLING_DOWN = "cooling_down"


def interval_elapsed(state: EngineState, now: int) -> bool:
    """Time term of the gate. A clock behind the cursor never satisfies it."""
    elapsed = now - state.last_execution_ts
    if elapsed < 0:
        return False
    return elapsed >= state.min_interval_seconds


def balance_accumulated(state: EngineState, treasury_balance: int) -> bool:
    return treasury_balance >= state.min_accumulated_lamports


def is_eligible(state: EngineState, now: int, treasury_balance: int) -> bool:
    """Return True if the interval OR the balance threshold is met.

    Pure and deterministic; ``now`` and ``treasury_balance`` are trusted as
    supplied by the caller's clock and balance oracle.
    """
    return interval_elapsed(state, now) or balance_accumulated(state, treasury_balance)


def schedule_status(state: EngineState, now: int, treasury_balance: int) -> ScheduleStatus:
    if is_eligible(state, now, treasury_balance):
        return ScheduleStatus.ELIGIBLE
    return ScheduleStatus.COOLING_DOWN


def seconds_until_eligible(state: EngineState, now: int) -> int:
    """Seconds until the time term alone opens the window (0 if open).

    Balance growth may open the window sooner. With a clock behind the
    cursor the wait includes catching up to ``last_execution_ts``.
    """
    if interval_elapsed(state, now):
        return 0
    opens_at = state.last_execution_ts + max(state.min_interval_seconds, 0)
    return max(0, opens_at - now)


def require_eligible(state: EngineState, now: int, treasury_balance: int) -> None:
    """Raise ``ScheduleNotSatisfied`` unless the window is open."""
    if not is_eligible(state, now, treasury_balance):
        raise ScheduleNotSatisfied(
            details={
                "now": now,
                "last_execution_ts": state.last_execution_ts,
                "min_interval_seconds": state.min_interval_seconds,
                "treasury_balance": treasury_balance,
                "min_accumulated_lamports": state.min_accumulated_lamports,
            }
        )
