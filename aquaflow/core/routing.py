"""
Deterministic single-pool route discovery.

Routes are always one direct hop: the router picks, among the active pools
registered for the unordered (token_in, token_out) pair, the one that quotes the
largest output.

Determinism:
- Candidates are visited in pool insertion order (ascending id).
- A candidate replaces the incumbent only on a strictly greater output, so ties
  keep the lowest id.

Complexity:
- Time: O(P) for P pools registered on the pair.
- Space: O(1) extra.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from .cpmm import MAX_FEE_BPS, price_impact_bps, quote
from .errors import (
    AquaFlowError,
    NoPoolForPair,
    NoVerifiedPoolAvailable,
    PriceImpactTooHigh,
    UnverifiedRouteStep,
)

if TYPE_CHECKING:
    from ..state.registry import PoolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteStep:
    pool_id: int
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    price_impact_bps: int
    verified: bool


Route = Tuple[RouteStep, ...]


@dataclass(frozen=True)
class RoutingPolicy:
    """
    Candidate filter applied during discovery.

    ``require_verified`` is the router's secure mode: unverified pools and pools
    with a reserve below ``min_liquidity`` are never quoted.
    """
    require_verified: bool = True
    min_liquidity: int = 1000 * 10**18
    max_fee_bps: int = MAX_FEE_BPS
    fast_path: bool = False


def find_route(
    registry: "PoolRegistry",
    token_in: str,
    token_out: str,
    amount_in: int,
    max_slippage_bps: Optional[int],
    policy: RoutingPolicy = RoutingPolicy(),
) -> RouteStep:
    """
    Select the best direct pool for an exact-in swap.

    ``token_in`` and ``token_out`` must already be canonical addresses.

    Args:
        registry: Pool registry to search
        token_in: Input token
        token_out: Output token
        amount_in: Gross input amount
        max_slippage_bps: Bound on the winner's price impact; None skips the check
        policy: Candidate filter

    Returns:
        The winning RouteStep

    Raises:
        NoPoolForPair: No pool was ever registered for the pair
        NoVerifiedPoolAvailable: No candidate survived filtering and quoting
        PriceImpactTooHigh: The winner's impact exceeds ``max_slippage_bps``
    """
    candidates = registry.get_pools_for_pair(token_in, token_out, active_only=False)
    if not candidates:
        raise NoPoolForPair(f"no pool registered for {token_in}/{token_out}")

    best: Optional[Tuple[int, int]] = None
    for pool_id in candidates:
        pool = registry.get_pool(pool_id)
        if not pool.is_active:
            continue
        if policy.require_verified and not pool.is_verified:
            continue
        reserve_in, reserve_out = pool.reserves_for(token_in)
        if reserve_in < policy.min_liquidity or reserve_out < policy.min_liquidity:
            continue
        try:
            out = quote(
                reserve_in,
                reserve_out,
                amount_in,
                pool.fee_bps,
                min_liquidity=policy.min_liquidity,
                max_fee_bps=policy.max_fee_bps,
                fast_path=policy.fast_path,
            )
        except AquaFlowError as exc:
            logger.debug("skipping pool %d: %s", pool_id, exc)
            continue
        if out == 0:
            continue
        if best is None or out > best[1]:
            best = (pool_id, out)

    if best is None:
        raise NoVerifiedPoolAvailable(f"no eligible pool for {token_in}/{token_out}")

    pool_id, amount_out = best
    pool = registry.get_pool(pool_id)
    reserve_in, _ = pool.reserves_for(token_in)
    impact = price_impact_bps(reserve_in, amount_in)
    if max_slippage_bps is not None and impact > max_slippage_bps:
        raise PriceImpactTooHigh(f"price impact {impact} bps exceeds {max_slippage_bps} bps")

    logger.debug("route %s->%s via pool %d: out=%d impact=%d bps", token_in, token_out, pool_id, amount_out, impact)
    return RouteStep(
        pool_id=pool_id,
        token_in=token_in,
        token_out=token_out,
        amount_in=amount_in,
        amount_out=amount_out,
        price_impact_bps=impact,
        verified=pool.is_verified,
    )


def total_price_impact_bps(route: Sequence[RouteStep]) -> int:
    """Plain sum of per-step impacts (an upper-bound heuristic, not compounded)."""
    return sum(step.price_impact_bps for step in route)


def validate_route(route: Sequence[RouteStep], *, max_slippage_bps: int, require_verified: bool) -> None:
    """
    Re-check a discovered route against the intent's bounds before execution.

    Raises:
        NoVerifiedPoolAvailable: Empty route
        UnverifiedRouteStep: A step uses an unverified pool while secure
        PriceImpactTooHigh: A step's impact exceeds ``max_slippage_bps``
    """
    if not route:
        raise NoVerifiedPoolAvailable("empty route")
    for step in route:
        if require_verified and not step.verified:
            raise UnverifiedRouteStep(f"pool {step.pool_id} is not verified")
        if step.price_impact_bps > max_slippage_bps:
            raise PriceImpactTooHigh(
                f"pool {step.pool_id} price impact {step.price_impact_bps} bps exceeds {max_slippage_bps} bps"
            )
