"""Proportional routing of a treasury amount into three buckets.

Weights are basis points (10000 bps = 100%). Each bucket is
``floor(amount * bps / 10000)`` computed in exact integer arithmetic, so
amounts up to the u64 maximum never overflow. Whatever truncation or an
under-100% weight set leaves over is not redistributed; it stays with the
treasury.
"""

from .errors import InvalidRoutingConfig
from .state import BPS_DENOMINATOR, U64_MAX, AllocationResult

BPS_FIELD_MAX = 2 ** 16 - 1  # weights are persisted as u16


def _check_bps(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRoutingConfig(f"{name} must be an integer number of basis points", details={name: value})
    if value < 0 or value > BPS_FIELD_MAX:
        raise InvalidRoutingConfig(f"{name} out of range", details={name: value})


def validate_routing(buyback_bps: int, lp_bps: int, distribution_bps: int) -> None:
    """Reject weights that are malformed or sum above 10000 bps."""
    _check_bps("buyback_bps", buyback_bps)
    _check_bps("lp_bps", lp_bps)
    _check_bps("distribution_bps", distribution_bps)
    total = buyback_bps + lp_bps + distribution_bps
    if total > BPS_DENOMINATOR:
        raise InvalidRoutingConfig(
            details={
                "buyback_bps": buyback_bps,
                "lp_bps": lp_bps,
                "distribution_bps": distribution_bps,
                "total_bps": total,
            }
        )


def _share(amount: int, bps: int) -> int:
    return amount * bps // BPS_DENOMINATOR


def allocate(amount: int, buyback_bps: int, lp_bps: int, distribution_bps: int) -> AllocationResult:
    """Split ``amount`` into buyback, liquidity and distribution buckets.

    The weight sum is not checked here (see ``validate_routing``); with
    weights above 10000 bps the buckets can exceed ``amount``.

    Example
    -------
    >>> allocate(1_000_000_000, 5000, 3000, 1500).to_dict()["unallocated"]
    50000000
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be an integer, got {type(amount).__name__}")
    if amount < 0 or amount > U64_MAX:
        raise ValueError(f"amount must be within [0, {U64_MAX}], got {amount}")
    _check_bps("buyback_bps", buyback_bps)
    _check_bps("lp_bps", lp_bps)
    _check_bps("distribution_bps", distribution_bps)

    return AllocationResult(
        buyback_amount=_share(amount, buyback_bps),
        lp_amount=_share(amount, lp_bps),
        distribution_amount=_share(amount, distribution_bps),
        source_amount=amount,
    )
