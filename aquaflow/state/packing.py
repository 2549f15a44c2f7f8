"""
Packed word encodings for pool storage.

Two layouts are used by the registry's on-disk form:

Token word (352 bits):
    bits   0..159  token_a
    bits 160..319  token_b
    bits 320..351  fee (u32)

Reserve word (256 bits):
    bits   0..127  reserve_b (low 128 bits)
    bits 128..255  reserve_a (low 128 bits)

Python ints are not truncated to a machine word, so the token word keeps all
352 bits and round-trips exactly. The reserve word deliberately truncates each
reserve to 128 bits: any reserve >= 2**128 is corrupted by ``pack_reserves`` and
``unpack_reserves`` returns ``reserve mod 2**128``. Use ``reserves_fit_packed``
before persisting.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from .canonical import address_to_int, int_to_address

ADDRESS_BITS = 160
FEE_BITS = 32
RESERVE_BITS = 128

ADDRESS_MASK = (1 << ADDRESS_BITS) - 1
FEE_MASK = (1 << FEE_BITS) - 1
RESERVE_MASK = (1 << RESERVE_BITS) - 1

TOKEN_B_SHIFT = ADDRESS_BITS
FEE_SHIFT = 2 * ADDRESS_BITS
TOKEN_WORD_BITS = FEE_SHIFT + FEE_BITS
RESERVE_WORD_BITS = 2 * RESERVE_BITS


def pack_token_data(token_a: str, token_b: str, fee: int) -> int:
    if not isinstance(fee, int) or isinstance(fee, bool) or fee < 0:
        raise ValueError(f"fee must be a non-negative int: {fee!r}")
    if fee > FEE_MASK:
        raise ValueError(f"fee does not fit in {FEE_BITS} bits: {fee}")
    a = address_to_int(token_a)
    b = address_to_int(token_b)
    return a | (b << TOKEN_B_SHIFT) | (fee << FEE_SHIFT)


def unpack_token_data(word: int) -> Tuple[str, str, int]:
    if not isinstance(word, int) or isinstance(word, bool) or word < 0:
        raise ValueError(f"packed word must be a non-negative int: {word!r}")
    token_a = int_to_address(word & ADDRESS_MASK)
    token_b = int_to_address((word >> TOKEN_B_SHIFT) & ADDRESS_MASK)
    fee = (word >> FEE_SHIFT) & FEE_MASK
    return token_a, token_b, fee


def pack_reserves(reserve_a: int, reserve_b: int) -> int:
    # Lossy above 2**128 by construction.
    return ((reserve_a & RESERVE_MASK) << RESERVE_BITS) | (reserve_b & RESERVE_MASK)


def unpack_reserves(word: int) -> Tuple[int, int]:
    return (word >> RESERVE_BITS) & RESERVE_MASK, word & RESERVE_MASK


def reserves_fit_packed(reserve_a: int, reserve_b: int) -> bool:
    return 0 <= reserve_a <= RESERVE_MASK and 0 <= reserve_b <= RESERVE_MASK


@dataclass(frozen=True)
class PackedPool:
    """Compact storage form of a pool: two words plus the pool address."""

    token_data: int
    reserves: int
    pool_address: str

    def tokens(self) -> Tuple[str, str, int]:
        return unpack_token_data(self.token_data)

    def reserve_pair(self) -> Tuple[int, int]:
        return unpack_reserves(self.reserves)

    def token_data_hex(self) -> str:
        return "0x" + format(self.token_data, "0{}x".format(TOKEN_WORD_BITS // 4))

    def reserves_hex(self) -> str:
        return "0x" + format(self.reserves, "0{}x".format(RESERVE_WORD_BITS // 4))
