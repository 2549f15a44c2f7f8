"""
Pool state for the router's liquidity registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum, unique
from typing import Tuple

from .canonical import canonical_address

MAX_POOL_FEE_BPS = 1000


@unique
class PoolStatus(Enum):
    """Pool status enumeration."""
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"


@unique
class PoolType(IntEnum):
    UNISWAP_V2 = 0
    UNISWAP_V3 = 1
    CURVE = 2
    BALANCER = 3


def normalize_pair(token_a: str, token_b: str) -> Tuple[str, str]:
    """Order-independent pair key: (min, max) of the canonical addresses."""
    a = canonical_address(token_a, name="token_a")
    b = canonical_address(token_b, name="token_b")
    return (a, b) if a <= b else (b, a)


@dataclass
class Pool:
    """
    State of one constant-product liquidity pool.

    Attributes:
        token_a: First token address (as supplied at creation)
        token_b: Second token address
        reserve_a: Reserve of token_a
        reserve_b: Reserve of token_b
        fee_bps: Swap fee in basis points (0-1000)
        pool_address: On-chain address of the pool contract (unique in the registry)
        is_verified: Set by a pool validator; required for secure routing
        created_at: Timestamp of creation
        last_updated: Timestamp of the last reserve change
        chain_id: Chain the pool lives on
        pool_type: AMM family of the pool contract
        status: Pool status
        last_refresh_block: Block of the last reserve refresh
    """
    token_a: str
    token_b: str
    reserve_a: int
    reserve_b: int
    fee_bps: int
    pool_address: str
    is_verified: bool
    created_at: int
    last_updated: int
    chain_id: int
    pool_type: PoolType = PoolType.UNISWAP_V2
    status: PoolStatus = PoolStatus.ACTIVE
    last_refresh_block: int = 0

    def __post_init__(self):
        self.token_a = canonical_address(self.token_a, name="token_a")
        self.token_b = canonical_address(self.token_b, name="token_b")
        self.pool_address = canonical_address(self.pool_address, name="pool_address")
        if self.token_a == self.token_b:
            raise ValueError(f"pool tokens must differ: {self.token_a}")
        if not (0 <= self.fee_bps <= MAX_POOL_FEE_BPS):
            raise ValueError(f"fee_bps must be in [0, {MAX_POOL_FEE_BPS}]: {self.fee_bps}")
        if self.reserve_a < 0 or self.reserve_b < 0:
            raise ValueError(
                f"Reserves must be non-negative: ({self.reserve_a}, {self.reserve_b})"
            )
        self.pool_type = PoolType(self.pool_type)

    def reserves_for(self, token_in: str) -> Tuple[int, int]:
        """
        Reserves oriented for a swap.

        Returns:
            (reserve_in, reserve_out)

        Raises:
            ValueError: If token_in is not in this pool
        """
        if token_in == self.token_a:
            return self.reserve_a, self.reserve_b
        if token_in == self.token_b:
            return self.reserve_b, self.reserve_a
        raise ValueError(f"token {token_in} not in pool {self.pool_address}")

    def set_reserves_for(self, token_in: str, reserve_in: int, reserve_out: int) -> None:
        if token_in == self.token_a:
            self.reserve_a, self.reserve_b = reserve_in, reserve_out
        elif token_in == self.token_b:
            self.reserve_b, self.reserve_a = reserve_in, reserve_out
        else:
            raise ValueError(f"token {token_in} not in pool {self.pool_address}")

    @property
    def is_active(self) -> bool:
        return self.status == PoolStatus.ACTIVE

    def __repr__(self) -> str:
        return (
            f"Pool(address={self.pool_address[:10]}..., "
            f"tokens=({self.token_a[:10]}..., {self.token_b[:10]}...), "
            f"reserves=({self.reserve_a}, {self.reserve_b}), "
            f"fee_bps={self.fee_bps}, verified={self.is_verified}, status={self.status.value})"
        )


@dataclass
class PoolStats:
    """Computed per-pool statistics. ``tvl`` assumes unit prices for both tokens."""
    tvl: int = 0
    volume_24h: int = 0
    fees_24h: int = 0
    price_impact_1k_bps: int = 0
    utilization_bps: int = 0
    swap_count: int = 0
    window_start: int = 0
