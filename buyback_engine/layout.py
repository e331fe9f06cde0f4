"""Fixed-field binary layout of the persisted engine record.

The record is stored as an 8-byte account discriminator followed by the
fields of ``EngineState`` in declaration order, little-endian::

    discriminator            8
    authority               32
    treasury                32
    last_execution_ts        i64
    min_interval_seconds     i64
    min_accumulated_lamports u64
    buyback_bps              u16
    lp_bps                   u16
    distribution_bps         u16
    bump                     u8

There is no version field; migrations belong to the storage layer.
"""

import hashlib
import struct

from .state import IDENTITY_LENGTH, EngineState

ACCOUNT_DISCRIMINATOR = hashlib.sha256(b"account:EngineState").digest()[:8]

_RECORD = struct.Struct("<8s32s32sqqQHHHB")
RECORD_SIZE = _RECORD.size  # 103


class LayoutError(ValueError):
    """Raised when a record cannot be encoded or decoded."""


def encode_state(state: EngineState) -> bytes:
    """Serialize ``state`` into its fixed-size persisted form."""
    for name in ("authority", "treasury"):
        value = getattr(state, name)
        if not isinstance(value, (bytes, bytearray)) or len(value) != IDENTITY_LENGTH:
            raise LayoutError(f"{name} must be {IDENTITY_LENGTH} bytes")
    try:
        return _RECORD.pack(
            ACCOUNT_DISCRIMINATOR,
            bytes(state.authority),
            bytes(state.treasury),
            state.last_execution_ts,
            state.min_interval_seconds,
            state.min_accumulated_lamports,
            state.buyback_bps,
            state.lp_bps,
            state.distribution_bps,
            state.bump,
        )
    except struct.error as exc:
        raise LayoutError(f"field out of range: {exc}") from exc


def decode_state(data: bytes) -> EngineState:
    """Parse a persisted record back into an ``EngineState``."""
    if len(data) != RECORD_SIZE:
        raise LayoutError(f"expected {RECORD_SIZE} bytes, got {len(data)}")
    (
        discriminator,
        authority,
        treasury,
        last_execution_ts,
        min_interval_seconds,
        min_accumulated_lamports,
        buyback_bps,
        lp_bps,
        distribution_bps,
        bump,
    ) = _RECORD.unpack(data)
    if discriminator != ACCOUNT_DISCRIMINATOR:
        raise LayoutError("account discriminator mismatch")
    return EngineState(
        authority=authority,
        treasury=treasury,
        last_execution_ts=last_execution_ts,
        min_interval_seconds=min_interval_seconds,
        min_accumulated_lamports=min_accumulated_lamports,
        buyback_bps=buyback_bps,
        lp_bps=lp_bps,
        distribution_bps=distribution_bps,
        bump=bump,
    )
