"""Orchestrator tests.

Covers the pure ``execute`` decision (validation, no-op skips, single-field
mutation, compare-and-set) and ``BuybackEngine.run_cycle`` wired to the
reference store, authority check and ledger."""

import os
import tempfile
import threading

from buyback_engine.collaborators import (
    AuthorityCheck,
    InMemoryStateStore,
    LedgerDisburser,
    SqliteStateStore,
    derive_state_key,
)
from buyback_engine.engine import BuybackEngine, _commit_execution, execute
from buyback_engine.errors import (
    ExecutionAlreadyPerformed,
    InsufficientTreasuryBalance,
    InvalidRoutingConfig,
    StateNotFound,
    Unauthorized,
)
from buyback_engine.layout import encode_state
from buyback_engine.state import Executed, Skipped
from tests.utils import AUTHORITY, STRANGER, TREASURY, expect_raises, make_state


def _wired(treasury_balance: int = 0, **state_overrides):
    store = InMemoryStateStore()
    key = derive_state_key(AUTHORITY, TREASURY)
    store.save(key, make_state(**state_overrides))
    disburser = LedgerDisburser(treasury_balance)
    return BuybackEngine(store, AuthorityCheck(), disburser), store, disburser, key


# --- execute ---------------------------------------------------------------

def test_execute_at_interval_boundary():
    """Interval exactly met with an empty treasury still executes (zero allocation)."""
    state = make_state()
    outcome = execute(state, now=3600, treasury_balance=0)

    assert isinstance(outcome, Executed)
    assert outcome.executed_at == 3600
    assert outcome.allocation.total == 0
    assert state.last_execution_ts == 3600


def test_execute_allocates_supplied_balance():
    state = make_state(last_execution_ts=100)
    outcome = execute(state, now=200, treasury_balance=1_000_000_000)

    assert outcome.executed
    allocation = outcome.allocation
    assert allocation.buyback_amount == 500_000_000
    assert allocation.lp_amount == 300_000_000
    assert allocation.distribution_amount == 150_000_000
    assert allocation.unallocated == 50_000_000


def test_execute_success_mutates_only_cursor():
    state = make_state(last_execution_ts=100)
    before = state.to_dict()

    execute(state, now=5000, treasury_balance=0)

    after = state.to_dict()
    assert after.pop("last_execution_ts") == 5000
    before.pop("last_execution_ts")
    assert after == before


def test_execute_skip_is_idempotent_and_byte_identical():
    state = make_state(last_execution_ts=3600)
    before = encode_state(state)

    for _ in range(5):
        outcome = execute(state, now=3700, treasury_balance=10)
        assert isinstance(outcome, Skipped)
        assert not outcome.executed
        assert encode_state(state) == before


def test_execute_rejects_overweight_routing_without_mutation():
    """Weights summing to 10500 fail even when the window is eligible."""
    state = make_state(buyback_bps=5000, lp_bps=3000, distribution_bps=2500)
    before = encode_state(state)

    expect_raises(InvalidRoutingConfig, execute, state, 3600, 5_000_000_000)
    assert encode_state(state) == before


def test_execute_rejects_overweight_routing_when_ineligible():
    state = make_state(last_execution_ts=3600, buyback_bps=10_000, lp_bps=1)
    expect_raises(InvalidRoutingConfig, execute, state, 3601, 0)


def test_commit_detects_concurrent_commit():
    state = make_state(last_execution_ts=7200)
    state.revision = 3

    expect_raises(ExecutionAlreadyPerformed, _commit_execution, state, 2, 9000)
    assert state.last_execution_ts == 7200
    assert state.revision == 3


def test_commit_detects_reexecution_in_same_second():
    """A balance-triggered commit at the cursor's own second still counts as a commit."""
    state = make_state(last_execution_ts=3600)
    observed = state.revision

    assert execute(state, now=3600, treasury_balance=2_000_000_000).executed
    assert state.last_execution_ts == 3600
    assert state.revision == observed + 1

    expect_raises(ExecutionAlreadyPerformed, _commit_execution, state, observed, 3600)
    assert state.revision == observed + 1


# --- run_cycle ---------------------------------------------------------------

def test_run_cycle_disburses_and_persists_cursor():
    engine, store, disburser, key = _wired(treasury_balance=2_000_000_000, last_execution_ts=100)

    outcome = engine.run_cycle(key, AUTHORITY, now=200, treasury_balance=disburser.treasury_balance)

    assert outcome.executed
    assert store.load(key).last_execution_ts == 200
    assert disburser.balances == {
        "treasury": 100_000_000,
        "buyback": 1_000_000_000,
        "lp": 600_000_000,
        "distribution": 300_000_000,
    }
    assert [t.bucket for t in disburser.transfers] == ["buyback", "lp", "distribution"]


def test_run_cycle_skip_leaves_store_untouched():
    engine, store, disburser, key = _wired(treasury_balance=10, last_execution_ts=3600)
    before = store.load_raw(key)

    outcome = engine.run_cycle(key, AUTHORITY, now=3700, treasury_balance=10)

    assert isinstance(outcome, Skipped)
    assert store.load_raw(key) == before
    assert disburser.transfers == []


def test_run_cycle_rejects_unauthorized_caller():
    engine, store, disburser, key = _wired(treasury_balance=2_000_000_000)
    before = store.load_raw(key)

    exc = expect_raises(Unauthorized, engine.run_cycle, key, STRANGER, 3600, 2_000_000_000)

    assert exc.message == "Unauthorized caller"
    assert store.load_raw(key) == before
    assert disburser.treasury_balance == 2_000_000_000


def test_run_cycle_unknown_key():
    engine, _, _, _ = _wired()
    expect_raises(StateNotFound, engine.run_cycle, "missing", AUTHORITY, 3600, 0)


def test_run_cycle_stale_reader_cannot_double_execute():
    """A caller that loaded the record before another committed loses the claim."""
    engine, store, disburser, key = _wired(treasury_balance=2_000_000_000)
    stale, stale_version = store.load_versioned(key)

    class StaleStore:
        def load_versioned(self, _key):
            return stale.copy(), stale_version

        def compare_and_set(self, _key, expected, state):
            return store.compare_and_set(_key, expected, state)

    assert engine.run_cycle(key, AUTHORITY, now=3600, treasury_balance=2_000_000_000).executed

    late_disburser = LedgerDisburser(2_000_000_000)
    late = BuybackEngine(StaleStore(), AuthorityCheck(), late_disburser)
    expect_raises(ExecutionAlreadyPerformed, late.run_cycle, key, AUTHORITY, 3700, 2_000_000_000)

    assert store.load(key).last_execution_ts == 3600
    assert late_disburser.transfers == []


def test_run_cycle_concurrent_callers_execute_once():
    engine, store, _, key = _wired()
    outcomes = []
    conflicts = []
    lock = threading.Lock()

    def worker():
        try:
            outcome = engine.run_cycle(key, AUTHORITY, now=3600, treasury_balance=0)
        except ExecutionAlreadyPerformed as exc:
            with lock:
                conflicts.append(exc)
            return
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for o in outcomes if o.executed) == 1
    assert len(outcomes) + len(conflicts) == 8
    assert store.load(key).last_execution_ts == 3600


def test_run_cycle_failed_disbursement_releases_window():
    """The cursor is rolled back when funds cannot be moved."""
    engine, store, disburser, key = _wired(treasury_balance=0, last_execution_ts=100)

    expect_raises(InsufficientTreasuryBalance, engine.run_cycle, key, AUTHORITY, 200, 2_000_000_000)

    assert store.load(key).last_execution_ts == 100
    assert disburser.transfers == []
    assert store.load_versioned(key)[1] == 2


# --- same-second windows ------------------------------------------------------

class _ReadTogetherStore:
    """Holds every caller after its read until all callers have read."""

    def __init__(self, inner, callers):
        self.inner = inner
        self.barrier = threading.Barrier(callers, timeout=10)

    def load_versioned(self, key):
        loaded = self.inner.load_versioned(key)
        self.barrier.wait()
        return loaded

    def compare_and_set(self, key, expected_version, state):
        return self.inner.compare_and_set(key, expected_version, state)


def _race_at_cursor(store, callers=2):
    """Callers read cursor 3600 together, then all run at now=3600 over the threshold."""
    key = derive_state_key(AUTHORITY, TREASURY)
    store.save(key, make_state(last_execution_ts=3600))
    _, start_version = store.load_versioned(key)

    disburser = LedgerDisburser(2_000_000_000)
    engine = BuybackEngine(_ReadTogetherStore(store, callers), AuthorityCheck(), disburser)
    outcomes = []
    conflicts = []
    lock = threading.Lock()

    def worker():
        try:
            outcome = engine.run_cycle(key, AUTHORITY, now=3600, treasury_balance=2_000_000_000)
        except ExecutionAlreadyPerformed as exc:
            with lock:
                conflicts.append(exc)
            return
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(callers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert [o.executed for o in outcomes] == [True]
    assert len(conflicts) == callers - 1
    assert [t.bucket for t in disburser.transfers] == ["buyback", "lp", "distribution"]
    assert disburser.treasury_balance == 100_000_000
    state, version = store.load_versioned(key)
    assert state.last_execution_ts == 3600
    assert version == start_version + 1


def test_same_second_balance_window_executes_once_in_memory():
    _race_at_cursor(InMemoryStateStore())
    _race_at_cursor(InMemoryStateStore(), callers=6)


def test_same_second_balance_window_executes_once_sqlite():
    with tempfile.TemporaryDirectory() as tmp:
        store = SqliteStateStore(os.path.join(tmp, "engine.db"))
        try:
            _race_at_cursor(store)
        finally:
            store.close()


def test_sequential_same_second_cycles_both_execute():
    """Without a concurrent reader the balance term may reopen the window at once."""
    engine, store, disburser, key = _wired(treasury_balance=4_000_000_000, last_execution_ts=3600)

    assert engine.run_cycle(key, AUTHORITY, 3600, 2_000_000_000).executed
    assert engine.run_cycle(key, AUTHORITY, 3600, 2_000_000_000).executed

    assert len(disburser.transfers) == 6
    assert store.load_versioned(key)[1] == 2
