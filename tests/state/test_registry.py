# [TESTER] v1

from __future__ import annotations

import pytest

from aquaflow.core.cpmm import quote
from aquaflow.core.errors import (
    FeeTooHigh,
    IdenticalTokens,
    InvalidAddress,
    PoolAlreadyExists,
    PoolNotFound,
    UpdateTooFrequent,
)
from aquaflow.state.packing import unpack_reserves, unpack_token_data
from aquaflow.state.pools import PoolStatus, PoolType
from aquaflow.state.registry import PoolRegistry, RegistryConfig

T0 = 1_700_000_000
TOKEN_A = "0x" + "aa" * 20
TOKEN_B = "0x" + "bb" * 20
TOKEN_C = "0x" + "cc" * 20
E24 = 10**24


def _pool_addr(i: int) -> str:
    return "0x" + f"{i:040x}"


def _add(reg: PoolRegistry, i: int, a: str = TOKEN_A, b: str = TOKEN_B, **kw) -> int:
    params = dict(reserve_a=E24, reserve_b=E24, now=T0, block_number=1000, chain_id=42161)
    params.update(kw)
    fee = params.pop("fee_bps", 30)
    return reg.add_pool(a, b, _pool_addr(i), fee, **params)


def test_pool_ids_are_dense_from_zero() -> None:
    reg = PoolRegistry()
    assert [_add(reg, i + 1) for i in range(3)] == [0, 1, 2]
    assert reg.next_id == 3
    assert len(reg) == 3


def test_duplicate_pool_address_is_rejected() -> None:
    reg = PoolRegistry()
    _add(reg, 1)
    with pytest.raises(PoolAlreadyExists):
        _add(reg, 1, TOKEN_A, TOKEN_C)
    assert len(reg) == 1


def test_pool_parameter_validation() -> None:
    reg = PoolRegistry()
    with pytest.raises(IdenticalTokens):
        _add(reg, 1, TOKEN_A, TOKEN_A)
    with pytest.raises(InvalidAddress):
        _add(reg, 1, "0x" + "00" * 20, TOKEN_B)
    with pytest.raises(InvalidAddress):
        reg.add_pool(TOKEN_A, TOKEN_B, "0x" + "00" * 20, 30, reserve_a=1, reserve_b=1, now=T0, block_number=1, chain_id=1)
    with pytest.raises(FeeTooHigh):
        _add(reg, 1, fee_bps=1001)
    assert reg.next_id == 0


def test_pair_index_is_order_independent_and_insertion_ordered() -> None:
    reg = PoolRegistry()
    p0 = _add(reg, 1, TOKEN_B, TOKEN_A)
    p1 = _add(reg, 2, TOKEN_A, TOKEN_B)
    _add(reg, 3, TOKEN_A, TOKEN_C)
    assert reg.get_pools_for_pair(TOKEN_A, TOKEN_B) == [p0, p1]
    assert reg.get_pools_for_pair(TOKEN_B, TOKEN_A) == [p0, p1]

    reg.set_status(p0, PoolStatus.DISABLED)
    assert reg.get_pools_for_pair(TOKEN_A, TOKEN_B) == [p1]
    assert reg.get_pools_for_pair(TOKEN_A, TOKEN_B, active_only=False) == [p0, p1]
    assert reg.active_pool_count() == 2


def test_chain_and_address_indices() -> None:
    reg = PoolRegistry()
    p0 = _add(reg, 1, chain_id=42161)
    p1 = _add(reg, 2, chain_id=42170, pool_type=PoolType.CURVE)
    assert reg.get_pools_by_chain(42161) == [p0]
    assert reg.get_pools_by_chain(42170) == [p1]
    assert reg.get_pools_by_chain(1) == []
    assert reg.pool_id_for_address(_pool_addr(2)) == p1
    assert reg.get_pool(p1).pool_type is PoolType.CURVE


def test_unknown_pool_id() -> None:
    with pytest.raises(PoolNotFound):
        PoolRegistry().get_pool(0)


def test_refresh_is_rate_limited_per_pool() -> None:
    reg = PoolRegistry(config=RegistryConfig(update_frequency_blocks=100))
    pid = _add(reg, 1, block_number=1000)
    with pytest.raises(UpdateTooFrequent):
        reg.refresh_reserves(pid, 5 * E24, 5 * E24, block_number=1099, now=T0 + 1)
    reg.refresh_reserves(pid, 5 * E24, 6 * E24, block_number=1100, now=T0 + 2)
    pool = reg.get_pool(pid)
    assert (pool.reserve_a, pool.reserve_b) == (5 * E24, 6 * E24)
    assert pool.last_refresh_block == 1100
    assert pool.last_updated == T0 + 2
    assert reg.get_stats(pid).tvl == 11 * E24
    with pytest.raises(UpdateTooFrequent):
        reg.refresh_reserves(pid, E24, E24, block_number=1150, now=T0 + 3)


def test_stats_are_computed_from_reserves() -> None:
    reg = PoolRegistry()
    pid = _add(reg, 1, reserve_a=E24, reserve_b=2 * E24)
    stats = reg.get_stats(pid)
    assert stats.tvl == 3 * E24
    # 1000e18 against a 1e24 reserve is 10 bps.
    assert stats.price_impact_1k_bps == 10
    assert stats.volume_24h == 0
    assert stats.swap_count == 0


def test_apply_swap_mutates_reserves_and_accumulates_stats() -> None:
    reg = PoolRegistry()
    pid = _add(reg, 1)
    amount_in = 10**18
    out = quote(E24, E24, amount_in, 30)

    reg.apply_swap(pid, TOKEN_B, amount_in, out, now=T0 + 10)
    pool = reg.get_pool(pid)
    assert pool.reserve_b == E24 + amount_in
    assert pool.reserve_a == E24 - out
    stats = reg.get_stats(pid)
    assert stats.volume_24h == amount_in
    assert stats.fees_24h == 3 * 10**15
    assert stats.swap_count == 1

    # A swap more than a day after the window start resets volume and fees.
    reg.apply_swap(pid, TOKEN_A, amount_in, 1, now=T0 + 86_401)
    stats = reg.get_stats(pid)
    assert stats.volume_24h == amount_in
    assert stats.window_start == T0 + 86_401
    assert stats.swap_count == 2


def test_packed_pool_matches_state() -> None:
    reg = PoolRegistry()
    pid = _add(reg, 1, fee_bps=25, reserve_a=7, reserve_b=9)
    packed = reg.packed_pool(pid)
    assert unpack_token_data(packed.token_data) == (TOKEN_A, TOKEN_B, 25)
    assert unpack_reserves(packed.reserves) == (7, 9)


def test_checkpoint_restores_one_pool_in_place() -> None:
    reg = PoolRegistry()
    pid = _add(reg, 1)
    other = _add(reg, 2)
    live = reg.get_pool(pid)
    cp = reg.checkpoint_pool(pid)
    reg.apply_swap(pid, TOKEN_A, 10**18, 10**17, now=T0)
    reg.apply_swap(other, TOKEN_A, 10**18, 10**17, now=T0)
    reg.restore_pool(cp)
    assert reg.get_pool(pid) is live
    assert live.reserve_a == E24
    assert reg.get_stats(pid).swap_count == 0
    assert reg.get_stats(other).swap_count == 1


def test_failed_add_pool_leaves_registry_untouched() -> None:
    reg = PoolRegistry()
    _add(reg, 1)
    with pytest.raises(ValueError):
        _add(reg, 2, reserve_a=-1)
    assert len(reg) == 1
    assert _add(reg, 2) == 1
