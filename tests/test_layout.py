"""Persisted record layout tests."""

from buyback_engine.layout import (
    ACCOUNT_DISCRIMINATOR,
    RECORD_SIZE,
    LayoutError,
    decode_state,
    encode_state,
)
from tests.utils import AUTHORITY, TREASURY, expect_raises, make_state


def test_record_is_fixed_size_with_discriminator():
    data = encode_state(make_state())

    assert RECORD_SIZE == 103
    assert len(data) == RECORD_SIZE
    assert data[:8] == ACCOUNT_DISCRIMINATOR
    assert data[8:40] == AUTHORITY
    assert data[40:72] == TREASURY


def test_decode_restores_every_field():
    state = make_state(last_execution_ts=-5, min_interval_seconds=86_400, bump=7)
    assert decode_state(encode_state(state)) == state


def test_cursor_is_little_endian_i64_after_identities():
    data = encode_state(make_state(last_execution_ts=0x0102))
    assert data[72:80] == bytes([0x02, 0x01, 0, 0, 0, 0, 0, 0])


def test_encode_rejects_out_of_range_fields():
    expect_raises(LayoutError, encode_state, make_state(buyback_bps=70_000))
    expect_raises(LayoutError, encode_state, make_state(min_accumulated_lamports=-1))
    expect_raises(LayoutError, encode_state, make_state(bump=256))
    expect_raises(LayoutError, encode_state, make_state(authority=b"short"))


def test_decode_rejects_bad_buffers():
    data = encode_state(make_state())

    expect_raises(LayoutError, decode_state, data[:-1])
    expect_raises(LayoutError, decode_state, b"\x00" * 8 + data[8:])
