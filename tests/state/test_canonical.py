from __future__ import annotations

import pytest

from aquaflow.core.errors import InvalidAddress
from aquaflow.state.canonical import (
    ZERO_ADDRESS,
    address_to_int,
    canonical_json_bytes,
    domain_sep_bytes,
    int_to_address,
    require_address,
)


def test_canonical_json_is_sorted_and_compact() -> None:
    assert canonical_json_bytes({"b": 1, "a": [2, 3]}) == b'{"a":[2,3],"b":1}'


def test_canonical_json_rejects_floats() -> None:
    with pytest.raises(TypeError):
        canonical_json_bytes({"x": 1.5})


def test_domain_separator_is_nul_terminated() -> None:
    assert domain_sep_bytes("settlement_state_root") == b"aquaflow:settlement_state_root:v1\x00"


def test_require_address_canonicalizes_and_rejects_zero() -> None:
    assert require_address("AB" * 20) == "0x" + "ab" * 20
    with pytest.raises(InvalidAddress):
        require_address(ZERO_ADDRESS)
    assert require_address(ZERO_ADDRESS, allow_zero=True) == ZERO_ADDRESS
    with pytest.raises(InvalidAddress):
        require_address("0x1234")
    with pytest.raises(InvalidAddress):
        require_address(None)  # type: ignore[arg-type]


def test_address_int_conversion() -> None:
    assert address_to_int(int_to_address(42)) == 42
    with pytest.raises(ValueError):
        int_to_address(1 << 160)
