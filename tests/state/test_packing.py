from __future__ import annotations

import importlib.util

import pytest

if importlib.util.find_spec("hypothesis") is None:  # pragma: no cover
    pytest.skip("hypothesis not installed", allow_module_level=True)

import hypothesis.strategies as st
from hypothesis import given

from aquaflow.state.canonical import int_to_address
from aquaflow.state.packing import (
    PackedPool,
    pack_reserves,
    pack_token_data,
    reserves_fit_packed,
    unpack_reserves,
    unpack_token_data,
)

addresses = st.integers(min_value=0, max_value=(1 << 160) - 1).map(int_to_address)


@given(a=addresses, b=addresses, fee=st.integers(min_value=0, max_value=(1 << 32) - 1))
def test_token_word_roundtrip(a: str, b: str, fee: int) -> None:
    assert unpack_token_data(pack_token_data(a, b, fee)) == (a, b, fee)


def test_token_word_layout() -> None:
    a = "0x" + "00" * 19 + "01"
    b = "0x" + "00" * 19 + "02"
    word = pack_token_data(a, b, 30)
    assert word & ((1 << 160) - 1) == 1
    assert (word >> 160) & ((1 << 160) - 1) == 2
    assert word >> 320 == 30


def test_token_word_accepts_mixed_case_input() -> None:
    a = "0x" + "Ab" * 20
    token_a, _, _ = unpack_token_data(pack_token_data(a, "0x" + "01" * 20, 1))
    assert token_a == a.lower()


def test_fee_must_fit_32_bits() -> None:
    with pytest.raises(ValueError):
        pack_token_data("0x" + "01" * 20, "0x" + "02" * 20, 1 << 32)


@given(ra=st.integers(min_value=0, max_value=(1 << 128) - 1), rb=st.integers(min_value=0, max_value=(1 << 128) - 1))
def test_reserve_word_roundtrip_below_ceiling(ra: int, rb: int) -> None:
    assert reserves_fit_packed(ra, rb)
    assert unpack_reserves(pack_reserves(ra, rb)) == (ra, rb)


@given(ra=st.integers(min_value=1 << 128, max_value=(1 << 200)), rb=st.integers(min_value=0, max_value=(1 << 200)))
def test_reserve_word_is_lossy_above_ceiling(ra: int, rb: int) -> None:
    assert not reserves_fit_packed(ra, rb)
    assert unpack_reserves(pack_reserves(ra, rb)) == (ra % (1 << 128), rb % (1 << 128))


def test_packed_pool_hex_widths() -> None:
    packed = PackedPool(
        token_data=pack_token_data("0x" + "01" * 20, "0x" + "02" * 20, 30),
        reserves=pack_reserves(5, 7),
        pool_address="0x" + "03" * 20,
    )
    assert len(packed.token_data_hex()) == 2 + 88
    assert len(packed.reserves_hex()) == 2 + 64
    assert packed.reserve_pair() == (5, 7)
    assert packed.tokens()[2] == 30
