"""
Canonical encodings shared by the router.

Two jobs live here: byte-exact JSON and domain separation for the hashes the
router publishes (settlement state roots, snapshot commitments), and the one
spelling of a 20-byte address (lowercase, ``0x``-prefixed) that every table
is keyed by.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any

from ..core.errors import InvalidAddress

ADDRESS_NBYTES = 20
ZERO_ADDRESS = "0x" + "00" * ADDRESS_NBYTES

_HEX_RE = re.compile(r"[0-9a-fA-F]+")
_DOMAIN_PREFIX = b"aquaflow:"


def _check_hashable_json(value: Any, path: str = "$") -> None:
    # Floats have more than one textual form; keys must sort deterministically.
    if isinstance(value, float):
        raise TypeError(f"float at {path} cannot be canonically encoded")
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"non-str key {key!r} at {path}")
            _check_hashable_json(item, f"{path}.{key}")
    elif isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check_hashable_json(item, f"{path}[{i}]")


def canonical_json_bytes(value: Any) -> bytes:
    """Compact, key-sorted UTF-8 JSON. Floats and NaN are rejected."""
    _check_hashable_json(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode(
        "utf-8"
    )


def sha256_hex(data: bytes) -> str:
    return "0x" + hashlib.sha256(data).hexdigest()


def domain_sep_bytes(label: str, version: int = 1) -> bytes:
    """
    ``aquaflow:<label>:v<version>`` followed by a NUL byte.

    The terminator keeps ``label`` from running into the payload that follows.
    """
    if not isinstance(label, str) or not label:
        raise TypeError("label must be a non-empty str")
    if "\x00" in label or not label.isascii():
        raise ValueError(f"label must be NUL-free ASCII: {label!r}")
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")
    return _DOMAIN_PREFIX + f"{label}:v{version}".encode("ascii") + b"\x00"


def canonical_hex_fixed_allow_0x(hex_str: str, *, nbytes: int, name: str) -> str:
    """Lowercase ``0x``-prefixed form of an ``nbytes``-long hex string (prefix optional on input)."""
    if not isinstance(hex_str, str):
        raise TypeError(f"{name} must be a str")
    if nbytes <= 0:
        raise ValueError("nbytes must be positive")
    digits = hex_str.strip()
    if digits[:2].lower() == "0x":
        digits = digits[2:]
    if len(digits) != 2 * nbytes or not _HEX_RE.fullmatch(digits):
        raise ValueError(f"{name} must be {nbytes} bytes of hex, got {hex_str!r}")
    return "0x" + digits.lower()


def canonical_address(value: str, *, name: str = "address") -> str:
    return canonical_hex_fixed_allow_0x(value, nbytes=ADDRESS_NBYTES, name=name)


def address_to_int(address: str) -> int:
    return int(canonical_address(address)[2:], 16)


def int_to_address(value: int) -> str:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValueError(f"address value must be a non-negative int: {value!r}")
    if value >> (8 * ADDRESS_NBYTES):
        raise ValueError("address value exceeds 160 bits")
    return "0x" + format(value, f"0{2 * ADDRESS_NBYTES}x")


def require_address(value: str, *, name: str = "address", allow_zero: bool = False) -> str:
    """
    Canonicalize an address supplied by a caller.

    Raises:
        InvalidAddress: Malformed, or the zero address when ``allow_zero`` is false
    """
    try:
        addr = canonical_address(value, name=name)
    except (TypeError, ValueError) as exc:
        raise InvalidAddress(str(exc)) from exc
    if not allow_zero and addr == ZERO_ADDRESS:
        raise InvalidAddress(f"{name} must not be the zero address")
    return addr
