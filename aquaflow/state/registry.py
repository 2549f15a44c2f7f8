"""
Pool registry: the arena that owns every pool and its indices.

Pools get dense integer ids starting at 0, never reused. Three indices are
maintained alongside the arena:

- pair index: normalized (min, max) token pair -> pool ids in insertion order
- chain index: chain id -> pool ids in insertion order
- address index: pool address -> pool id (addresses are unique)

Statistics are computed from the real reserves on create / refresh and
accumulated on every executed swap.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..core.cpmm import (
    BPS_DENOM,
    MAX_FEE_BPS,
    amount_in_after_fee,
    apply_swap_to_reserves,
    price_impact_bps,
)
from ..core.checked_math import checked_add, checked_sub
from ..core.errors import (
    FeeTooHigh,
    IdenticalTokens,
    PoolAlreadyExists,
    PoolNotFound,
    UpdateTooFrequent,
)
from .canonical import require_address
from .packing import PackedPool, pack_reserves, pack_token_data
from .pools import Pool, PoolStats, PoolStatus, PoolType, normalize_pair

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400


@dataclass(frozen=True)
class RegistryConfig:
    update_frequency_blocks: int = 100
    # Trade size used for the ``price_impact_1k_bps`` statistic.
    reference_trade_amount: int = 1000 * 10**18
    stats_window_seconds: int = SECONDS_PER_DAY
    max_fee_bps: int = MAX_FEE_BPS

    def __post_init__(self) -> None:
        for name in ("update_frequency_blocks", "reference_trade_amount", "stats_window_seconds", "max_fee_bps"):
            v = getattr(self, name)
            if not isinstance(v, int) or isinstance(v, bool) or v < 0:
                raise ValueError(f"{name} must be a non-negative int")


@dataclass
class PoolRegistry:
    config: RegistryConfig = field(default_factory=RegistryConfig)
    _pools: Dict[int, Pool] = field(default_factory=dict)
    _stats: Dict[int, PoolStats] = field(default_factory=dict)
    _pair_index: Dict[Tuple[str, str], List[int]] = field(default_factory=dict)
    _chain_index: Dict[int, List[int]] = field(default_factory=dict)
    _address_index: Dict[str, int] = field(default_factory=dict)
    _next_id: int = 0

    # -- creation / lookup ----------------------------------------------------

    def add_pool(
        self,
        token_a: str,
        token_b: str,
        pool_address: str,
        fee_bps: int,
        *,
        reserve_a: int,
        reserve_b: int,
        now: int,
        block_number: int,
        chain_id: int,
        pool_type: PoolType = PoolType.UNISWAP_V2,
        is_verified: bool = False,
    ) -> int:
        """
        Register a new pool and return its id.

        Raises:
            InvalidAddress: A token or the pool address is malformed or zero
            IdenticalTokens: token_a == token_b
            FeeTooHigh: fee_bps exceeds the configured maximum
            PoolAlreadyExists: pool_address is already registered
        """
        a = require_address(token_a, name="token_a")
        b = require_address(token_b, name="token_b")
        addr = require_address(pool_address, name="pool_address")
        if a == b:
            raise IdenticalTokens(f"pool tokens must differ: {a}")
        if not isinstance(fee_bps, int) or isinstance(fee_bps, bool) or fee_bps < 0:
            raise ValueError(f"fee_bps must be a non-negative int: {fee_bps!r}")
        if fee_bps > self.config.max_fee_bps:
            raise FeeTooHigh(f"fee_bps {fee_bps} exceeds maximum {self.config.max_fee_bps}")
        if addr in self._address_index:
            raise PoolAlreadyExists(f"pool {addr} already registered as id {self._address_index[addr]}")

        pool_id = self._next_id
        pool = Pool(
            token_a=a,
            token_b=b,
            reserve_a=reserve_a,
            reserve_b=reserve_b,
            fee_bps=fee_bps,
            pool_address=addr,
            is_verified=bool(is_verified),
            created_at=now,
            last_updated=now,
            chain_id=chain_id,
            pool_type=pool_type,
            status=PoolStatus.ACTIVE,
            last_refresh_block=block_number,
        )
        stats = PoolStats(window_start=now)
        self._refresh_stats(pool, stats)

        self._pools[pool_id] = pool
        self._stats[pool_id] = stats
        self._next_id = pool_id + 1
        self._pair_index.setdefault(normalize_pair(a, b), []).append(pool_id)
        self._chain_index.setdefault(chain_id, []).append(pool_id)
        self._address_index[addr] = pool_id
        logger.debug("registered pool %d at %s (fee %d bps, chain %d)", pool_id, addr, fee_bps, chain_id)
        return pool_id

    def get_pool(self, pool_id: int) -> Pool:
        pool = self._pools.get(pool_id)
        if pool is None:
            raise PoolNotFound(f"unknown pool id: {pool_id}")
        return pool

    def get_stats(self, pool_id: int) -> PoolStats:
        self.get_pool(pool_id)
        return self._stats[pool_id]

    def pool_id_for_address(self, pool_address: str) -> Optional[int]:
        return self._address_index.get(require_address(pool_address, name="pool_address"))

    def get_pools_for_pair(self, token_a: str, token_b: str, *, active_only: bool = True) -> List[int]:
        """Pool ids for the unordered pair, in insertion order."""
        ids = self._pair_index.get(normalize_pair(token_a, token_b), [])
        if not active_only:
            return list(ids)
        return [i for i in ids if self._pools[i].is_active]

    def get_pools_by_chain(self, chain_id: int) -> List[int]:
        return list(self._chain_index.get(chain_id, []))

    def pool_ids(self) -> List[int]:
        return sorted(self._pools)

    def __len__(self) -> int:
        return len(self._pools)

    @property
    def next_id(self) -> int:
        return self._next_id

    def active_pool_count(self) -> int:
        return sum(1 for p in self._pools.values() if p.is_active)

    # -- mutation -------------------------------------------------------------

    def set_verified(self, pool_id: int, verified: bool) -> None:
        self.get_pool(pool_id).is_verified = bool(verified)

    def set_status(self, pool_id: int, status: PoolStatus) -> None:
        self.get_pool(pool_id).status = PoolStatus(status)

    def refresh_reserves(
        self,
        pool_id: int,
        reserve_a: int,
        reserve_b: int,
        *,
        block_number: int,
        now: int,
    ) -> None:
        """
        Replace a pool's reserves with freshly sourced values.

        Raises:
            PoolNotFound: Unknown pool id
            UpdateTooFrequent: Fewer than ``update_frequency_blocks`` since the last refresh
        """
        pool = self.get_pool(pool_id)
        if block_number < pool.last_refresh_block:
            raise UpdateTooFrequent(f"block {block_number} precedes last refresh {pool.last_refresh_block}")
        elapsed = block_number - pool.last_refresh_block
        if elapsed < self.config.update_frequency_blocks:
            raise UpdateTooFrequent(
                f"pool {pool_id} refreshed {elapsed} blocks ago (minimum {self.config.update_frequency_blocks})"
            )
        if reserve_a < 0 or reserve_b < 0:
            raise ValueError(f"Reserves must be non-negative: ({reserve_a}, {reserve_b})")
        pool.reserve_a = reserve_a
        pool.reserve_b = reserve_b
        pool.last_refresh_block = block_number
        pool.last_updated = now
        self._recompute_stats(pool_id)

    def apply_swap(self, pool_id: int, token_in: str, amount_in: int, amount_out: int, *, now: int) -> None:
        """Apply an executed swap to the pool reserves (checked) and its stats."""
        pool = self.get_pool(pool_id)
        reserve_in, reserve_out = pool.reserves_for(token_in)
        new_in, new_out = apply_swap_to_reserves(reserve_in, reserve_out, amount_in, amount_out)
        pool.set_reserves_for(token_in, new_in, new_out)
        pool.last_updated = now
        fee_amount = checked_sub(amount_in, amount_in_after_fee(amount_in, pool.fee_bps))
        self.record_swap(pool_id, amount_in, fee_amount, now=now)

    def record_swap(self, pool_id: int, amount_in: int, fee_amount: int, *, now: int) -> None:
        stats = self.get_stats(pool_id)
        if now > stats.window_start + self.config.stats_window_seconds:
            stats.volume_24h = 0
            stats.fees_24h = 0
            stats.window_start = now
        stats.volume_24h = checked_add(stats.volume_24h, amount_in)
        stats.fees_24h = checked_add(stats.fees_24h, fee_amount)
        stats.swap_count += 1
        self._recompute_stats(pool_id)

    def _recompute_stats(self, pool_id: int) -> None:
        self._refresh_stats(self._pools[pool_id], self._stats[pool_id])

    def _refresh_stats(self, pool: Pool, stats: PoolStats) -> None:
        stats.tvl = checked_add(pool.reserve_a, pool.reserve_b)
        stats.price_impact_1k_bps = price_impact_bps(pool.reserve_a, self.config.reference_trade_amount)
        if stats.tvl == 0:
            stats.utilization_bps = 0
        else:
            stats.utilization_bps = min(stats.volume_24h * BPS_DENOM // stats.tvl, BPS_DENOM)

    # -- packed form / checkpoints --------------------------------------------

    def packed_pool(self, pool_id: int) -> PackedPool:
        """Compact two-word form; reserves above 2**128 do not survive packing."""
        pool = self.get_pool(pool_id)
        return PackedPool(
            token_data=pack_token_data(pool.token_a, pool.token_b, pool.fee_bps),
            reserves=pack_reserves(pool.reserve_a, pool.reserve_b),
            pool_address=pool.pool_address,
        )

    def checkpoint_pool(self, pool_id: int) -> "PoolCheckpoint":
        """Copy one pool and its stats so a failed operation can put them back."""
        return PoolCheckpoint(pool_id, copy.copy(self.get_pool(pool_id)), copy.copy(self._stats[pool_id]))

    def restore_pool(self, cp: "PoolCheckpoint") -> None:
        # In place: callers may hold references to the live objects.
        vars(self._pools[cp.pool_id]).update(vars(cp.pool))
        vars(self._stats[cp.pool_id]).update(vars(cp.stats))

    def insert_restored(self, pool_id: int, pool: Pool, stats: Optional[PoolStats] = None) -> None:
        """Re-insert a pool with a known id (snapshot loading)."""
        if pool_id in self._pools:
            raise PoolAlreadyExists(f"pool id {pool_id} already present")
        if pool.pool_address in self._address_index:
            raise PoolAlreadyExists(f"pool {pool.pool_address} already registered")
        self._pools[pool_id] = pool
        self._pair_index.setdefault(normalize_pair(pool.token_a, pool.token_b), []).append(pool_id)
        self._pair_index[normalize_pair(pool.token_a, pool.token_b)].sort()
        self._chain_index.setdefault(pool.chain_id, []).append(pool_id)
        self._chain_index[pool.chain_id].sort()
        self._address_index[pool.pool_address] = pool_id
        self._stats[pool_id] = stats if stats is not None else PoolStats(window_start=pool.created_at)
        self._next_id = max(self._next_id, pool_id + 1)
        self._recompute_stats(pool_id)


@dataclass(frozen=True)
class PoolCheckpoint:
    pool_id: int
    pool: Pool
    stats: PoolStats
