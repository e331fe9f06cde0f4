"""Collaborator interfaces around the engine and reference implementations.

The engine decides; these collaborators persist, authorize and move funds.
Production deployments supply their own implementations of the protocols
below. The ones shipped here keep everything in process (or in a local
SQLite file) and move integer balances between ledgers, which is enough for
the CLI, the simulation and the tests.
"""

import contextlib
import hashlib
import hmac
import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterator, List, Protocol, Tuple

from .errors import InsufficientTreasuryBalance, StateNotFound, Unauthorized
from .layout import decode_state, encode_state
from .state import AllocationResult, EngineState

logger = logging.getLogger(__name__)

BUCKETS = ("buyback", "lp", "distribution")


def derive_state_key(authority: bytes, treasury: bytes) -> str:
    """External storage key for the record owned by ``authority`` over ``treasury``."""
    return hashlib.sha256(b"engine_state" + bytes(authority) + bytes(treasury)).hexdigest()


# ---- Protocols ---------------------------------------------------------------


class StateStore(Protocol):
    """Record storage keyed by ``derive_state_key``.

    A new record starts at version 0 and every later successful write
    advances it by exactly one. ``compare_and_set`` succeeds only against
    the version last read.
    """

    def load(self, key: str) -> EngineState:
        ...

    def load_versioned(self, key: str) -> Tuple[EngineState, int]:
        ...

    def save(self, key: str, state: EngineState) -> None:
        ...

    def compare_and_set(self, key: str, expected_version: int, state: EngineState) -> bool:
        ...


class Authorizer(Protocol):
    def authorize(self, state: EngineState, caller: bytes) -> None:
        ...


class Disburser(Protocol):
    def disburse(self, state: EngineState, allocation: AllocationResult) -> None:
        ...


# ---- Storage -----------------------------------------------------------------


class InMemoryStateStore:
    """Dict-backed store holding each record in its persisted byte form.

    ``load`` always returns a fresh ``EngineState``; callers mutate their
    copy and hand it back through ``compare_and_set``. Each record carries a
    version alongside its bytes.
    """

    def __init__(self) -> None:
        self._records: Dict[str, Tuple[bytes, int]] = {}
        self._lock = threading.Lock()

    def _get(self, key: str) -> Tuple[bytes, int]:
        with self._lock:
            entry = self._records.get(key)
        if entry is None:
            raise StateNotFound(details={"key": key})
        return entry

    def load(self, key: str) -> EngineState:
        return self.load_versioned(key)[0]

    def load_versioned(self, key: str) -> Tuple[EngineState, int]:
        record, version = self._get(key)
        return decode_state(record), version

    def load_raw(self, key: str) -> bytes:
        return self._get(key)[0]

    def save(self, key: str, state: EngineState) -> None:
        record = encode_state(state)
        with self._lock:
            current = self._records.get(key)
            version = 0 if current is None else current[1] + 1
            self._records[key] = (record, version)

    def compare_and_set(self, key: str, expected_version: int, state: EngineState) -> bool:
        record = encode_state(state)
        with self._lock:
            current = self._records.get(key)
            if current is None:
                raise StateNotFound(details={"key": key})
            if current[1] != expected_version:
                return False
            self._records[key] = (record, expected_version + 1)
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._records


class SqliteStateStore:
    """SQLite-backed store; one row per record key.

    The version lives in its own column so the compare-and-set is a single
    conditional ``UPDATE``. The cursor is mirrored for inspection.
    """

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS engine_state (
        key TEXT PRIMARY KEY,
        record BLOB NOT NULL,
        version INTEGER NOT NULL DEFAULT 0,
        last_execution_ts INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """

    def __init__(self, path: str) -> None:
        uri = path.startswith("file:")
        self._db = sqlite3.connect(path, uri=uri, check_same_thread=False, isolation_level=None)
        self._lock = threading.RLock()
        with self._lock:
            self._db.execute("PRAGMA journal_mode=WAL")
            self._db.execute(self.SCHEMA)

    def close(self) -> None:
        with self._lock:
            self._db.close()

    @contextlib.contextmanager
    def tx(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._db.execute("BEGIN IMMEDIATE")
            try:
                yield self._db
            except Exception:
                self._db.execute("ROLLBACK")
                raise
            self._db.execute("COMMIT")

    def load(self, key: str) -> EngineState:
        return self.load_versioned(key)[0]

    def load_versioned(self, key: str) -> Tuple[EngineState, int]:
        with self._lock:
            row = self._db.execute("SELECT record, version FROM engine_state WHERE key = ?", (key,)).fetchone()
        if row is None:
            raise StateNotFound(details={"key": key})
        return decode_state(bytes(row[0])), int(row[1])

    def save(self, key: str, state: EngineState) -> None:
        record = encode_state(state)
        with self.tx() as db:
            db.execute(
                "INSERT INTO engine_state (key, record, version, last_execution_ts, updated_at) "
                "VALUES (?, ?, 0, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET record = excluded.record, version = engine_state.version + 1, "
                "last_execution_ts = excluded.last_execution_ts, updated_at = excluded.updated_at",
                (key, record, state.last_execution_ts, int(time.time())),
            )

    def compare_and_set(self, key: str, expected_version: int, state: EngineState) -> bool:
        record = encode_state(state)
        with self.tx() as db:
            cur = db.execute(
                "UPDATE engine_state SET record = ?, version = version + 1, last_execution_ts = ?, updated_at = ? "
                "WHERE key = ? AND version = ?",
                (record, state.last_execution_ts, int(time.time()), key, expected_version),
            )
            if cur.rowcount == 1:
                return True
            exists = db.execute("SELECT 1 FROM engine_state WHERE key = ?", (key,)).fetchone()
        if exists is None:
            raise StateNotFound(details={"key": key})
        return False


# ---- Authorization -----------------------------------------------------------


class AuthorityCheck:
    """Allows a cycle only when the caller is the record's authority."""

    def authorize(self, state: EngineState, caller: bytes) -> None:
        if not hmac.compare_digest(bytes(caller), bytes(state.authority)):
            raise Unauthorized(details={"caller": bytes(caller).hex()})


# ---- Disbursement ------------------------------------------------------------


@dataclass(frozen=True)
class Transfer:
    source: str
    bucket: str
    amount: int


class LedgerDisburser:
    """Moves allocated amounts out of an integer treasury ledger.

    Buckets with a zero amount produce no transfer. The whole allocation is
    refused if the treasury cannot cover it.
    """

    def __init__(self, treasury_balance: int = 0) -> None:
        self.balances: Dict[str, int] = {"treasury": treasury_balance}
        for bucket in BUCKETS:
            self.balances[bucket] = 0
        self.transfers: List[Transfer] = []

    @property
    def treasury_balance(self) -> int:
        return self.balances["treasury"]

    def credit_treasury(self, amount: int) -> None:
        if amount < 0:
            raise ValueError("credit amount must be non-negative")
        self.balances["treasury"] += amount

    def disburse(self, state: EngineState, allocation: AllocationResult) -> None:
        if allocation.total > self.balances["treasury"]:
            raise InsufficientTreasuryBalance(
                details={"required": allocation.total, "available": self.balances["treasury"]}
            )
        amounts = {
            "buyback": allocation.buyback_amount,
            "lp": allocation.lp_amount,
            "distribution": allocation.distribution_amount,
        }
        source = bytes(state.treasury).hex()
        for bucket in BUCKETS:
            amount = amounts[bucket]
            if amount <= 0:
                continue
            self.balances["treasury"] -= amount
            self.balances[bucket] += amount
            self.transfers.append(Transfer(source=source, bucket=bucket, amount=amount))
        logger.debug("disbursed %d lamports from %s", allocation.total, source)
