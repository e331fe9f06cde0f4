"""Orchestrator: the single path through which a disbursement cycle runs.

``execute`` is the decision core. It validates the routing weights, checks
eligibility, computes the allocation and advances the execution cursor. It
never moves funds.

``BuybackEngine`` wires ``execute`` to the storage, authorization and
disbursement collaborators so that claiming a window and paying it out form
one logical transaction.

Commit checks compare a counter that advances on every commit. The cursor
alone can repeat when the balance term reopens a window in the same second.
"""

import logging
import threading

from .collaborators import Authorizer, Disburser, StateStore
from .errors import ExecutionAlreadyPerformed
from .router import allocate, validate_routing
from .schedule import is_eligible
from .state import EngineState, Executed, Outcome, Skipped

logger = logging.getLogger(__name__)

_COMMIT_LOCK = threading.Lock()


def _commit_execution(state: EngineState, observed_revision: int, now: int) -> None:
    """Compare-and-set of the execution cursor on the in-memory record."""
    with _COMMIT_LOCK:
        if state.revision != observed_revision:
            raise ExecutionAlreadyPerformed(
                details={
                    "expected_revision": observed_revision,
                    "found_revision": state.revision,
                    "last_execution_ts": state.last_execution_ts,
                    "now": now,
                }
            )
        state.last_execution_ts = now
        state.revision += 1


def execute(state: EngineState, now: int, treasury_balance: int) -> Outcome:
    """Run one disbursement decision against ``state``.

    Returns ``Skipped`` (record untouched) when the window is not eligible,
    otherwise ``Executed`` with the allocation of ``treasury_balance``. On
    success ``last_execution_ts`` becomes ``now`` and nothing else persisted
    changes.

    Raises ``InvalidRoutingConfig`` before any mutation if the weights are
    invalid, and ``ExecutionAlreadyPerformed`` if another caller committed
    while this one was deciding.
    """
    validate_routing(state.buyback_bps, state.lp_bps, state.distribution_bps)

    observed_revision = state.revision
    if not is_eligible(state, now, treasury_balance):
        return Skipped()

    allocation = allocate(treasury_balance, state.buyback_bps, state.lp_bps, state.distribution_bps)
    _commit_execution(state, observed_revision, now)
    return Executed(allocation=allocation, executed_at=now)


class BuybackEngine:
    """Runs disbursement cycles against persisted records."""

    def __init__(self, store: StateStore, authorizer: Authorizer, disburser: Disburser) -> None:
        self.store = store
        self.authorizer = authorizer
        self.disburser = disburser

    def run_cycle(self, key: str, caller: bytes, now: int, treasury_balance: int) -> Outcome:
        state, version = self.store.load_versioned(key)
        self.authorizer.authorize(state, caller)

        previous_ts = state.last_execution_ts
        outcome = execute(state, now, treasury_balance)
        if not outcome.executed:
            logger.debug("cycle skipped for %s at %d (balance=%d)", key[:12], now, treasury_balance)
            return outcome

        # Store versions advance by exactly one per successful write
        if not self.store.compare_and_set(key, version, state):
            logger.warning("execution window for %s already claimed (expected version=%d)", key[:12], version)
            raise ExecutionAlreadyPerformed(details={"key": key, "expected_version": version, "now": now})

        try:
            self.disburser.disburse(state, outcome.allocation)
        except Exception:
            rollback = state.copy()
            rollback.last_execution_ts = previous_ts
            if not self.store.compare_and_set(key, version + 1, rollback):
                logger.error("could not release execution window for %s after failed disbursement", key[:12])
            else:
                logger.warning("disbursement failed for %s; execution window released", key[:12])
            raise

        allocation = outcome.allocation
        logger.info(
            "executed %s at %d: buyback=%d lp=%d distribution=%d unallocated=%d",
            key[:12],
            now,
            allocation.buyback_amount,
            allocation.lp_amount,
            allocation.distribution_amount,
            allocation.unallocated,
        )
        return outcome
