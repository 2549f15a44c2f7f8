"""Checked 256-bit unsigned arithmetic.

Python ints never overflow, so the 256-bit domain is enforced explicitly:
every helper validates its operands and raises instead of wrapping or
saturating. A failure here aborts the whole operation that called it.
"""

from __future__ import annotations

from .errors import ArithmeticOverflow, ArithmeticUnderflow, DivisionByZero

U256_MAX: int = (1 << 256) - 1


def _require_u256(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if value < 0:
        raise ArithmeticUnderflow(f"{name} must be non-negative: {value}")
    if value > U256_MAX:
        raise ArithmeticOverflow(f"{name} exceeds 256 bits")


def checked_add(a: int, b: int) -> int:
    _require_u256("a", a)
    _require_u256("b", b)
    out = a + b
    if out > U256_MAX:
        raise ArithmeticOverflow(f"addition overflow: {a} + {b}")
    return out


def checked_sub(a: int, b: int) -> int:
    _require_u256("a", a)
    _require_u256("b", b)
    if b > a:
        raise ArithmeticUnderflow(f"subtraction underflow: {a} - {b}")
    return a - b


def checked_mul(a: int, b: int) -> int:
    _require_u256("a", a)
    _require_u256("b", b)
    out = a * b
    if out > U256_MAX:
        raise ArithmeticOverflow("multiplication overflow")
    return out


def checked_div(a: int, b: int) -> int:
    """Floor division; raises ``DivisionByZero`` rather than returning a sentinel."""
    _require_u256("a", a)
    _require_u256("b", b)
    if b == 0:
        raise DivisionByZero(f"division by zero: {a} / 0")
    return a // b
