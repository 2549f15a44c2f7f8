"""
Host-side collaborators: call context and reserve sources.

The router never talks to a chain. Block context arrives as a ``CallContext``
and fresh reserves for ``update_pool`` / ``add_pool`` come from a pluggable
``ReserveSource``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Protocol, Tuple

from ..state.canonical import canonical_address

E18 = 10**18
E15 = 10**15


@dataclass(frozen=True)
class CallContext:
    caller: str
    block_number: int
    timestamp: int

    def __post_init__(self) -> None:
        if not isinstance(self.block_number, int) or self.block_number < 0:
            raise ValueError("block_number must be a non-negative int")
        if not isinstance(self.timestamp, int) or self.timestamp < 0:
            raise ValueError("timestamp must be a non-negative int")


class ReserveSource(Protocol):
    def fetch_reserves(self, pool_address: str, token_a: str, token_b: str, *, block_number: int) -> Tuple[int, int]:
        ...


@dataclass
class StaticReserveSource:
    """
    Fixed reserves: per-pool overrides, otherwise ``default``.
    """
    default: Tuple[int, int] = (1_000_000, 1_000_000)
    overrides: Dict[str, Tuple[int, int]] = field(default_factory=dict)

    def set_reserves(self, pool_address: str, reserve_a: int, reserve_b: int) -> None:
        self.overrides[canonical_address(pool_address, name="pool_address")] = (reserve_a, reserve_b)

    def fetch_reserves(self, pool_address: str, token_a: str, token_b: str, *, block_number: int) -> Tuple[int, int]:
        return self.overrides.get(canonical_address(pool_address, name="pool_address"), self.default)


@dataclass(frozen=True)
class SimulatedReserveSource:
    """
    Deterministic block-driven reserves for demos:

        reserve_a = base + (block % 100_000) * 1e15
        reserve_b = base + (block * 7 % 100_000) * 1e15
    """
    base_reserve: int = 1_000_000 * E18
    step: int = E15
    period: int = 100_000

    def fetch_reserves(self, pool_address: str, token_a: str, token_b: str, *, block_number: int) -> Tuple[int, int]:
        reserve_a = self.base_reserve + (block_number % self.period) * self.step
        reserve_b = self.base_reserve + ((block_number * 7) % self.period) * self.step
        return reserve_a, reserve_b
