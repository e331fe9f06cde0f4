"""Utility helpers for lightweight test execution without pytest."""

import math
import os

from buyback_engine.state import EngineState

AUTHORITY = b"\x11" * 32
TREASURY = b"\x22" * 32
STRANGER = b"\x33" * 32


def make_state(**overrides) -> EngineState:
    """Engine record with the reference schedule (1h interval, 1 SOL threshold)."""
    params = dict(
        authority=AUTHORITY,
        treasury=TREASURY,
        last_execution_ts=0,
        min_interval_seconds=3600,
        min_accumulated_lamports=1_000_000_000,
        buyback_bps=5000,
        lp_bps=3000,
        distribution_bps=1500,
        bump=254,
    )
    params.update(overrides)
    return EngineState(**params)


def assert_close(actual: float, expected: float, rel: float = 1e-4, msg: str = ""):
    """Assert that two floating point values are approximately equal."""
    if not math.isclose(actual, expected, rel_tol=rel, abs_tol=1e-12):
        suffix = f" ({msg})" if msg else ""
        raise AssertionError(f"Expected {expected} ± {rel}, got {actual}{suffix}")


def expect_raises(exception, func, *args, **kwargs):
    """Assert that a function raises a specific exception; return the exception."""
    try:
        func(*args, **kwargs)
    except exception as exc:
        return exc
    raise AssertionError(f"Expected {exception.__name__} to be raised")


def file_exists(path: str) -> bool:
    """Check whether an output file was written."""
    return bool(path) and os.path.exists(path)
