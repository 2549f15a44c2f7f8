"""
Core router algorithms: checked arithmetic, CPMM pricing and route discovery.

The security pipeline (``core.security``) and settlement state machine
(``core.settlement``) depend on ``aquaflow.state`` and are imported directly.
"""

from .checked_math import U256_MAX, checked_add, checked_div, checked_mul, checked_sub
from .cpmm import amount_in_after_fee, apply_swap_to_reserves, price_impact_bps, quote
from .errors import AquaFlowError, ErrorKind
from .routing import RouteStep, RoutingPolicy, find_route, total_price_impact_bps, validate_route

__all__ = [
    "U256_MAX",
    "checked_add",
    "checked_div",
    "checked_mul",
    "checked_sub",
    "amount_in_after_fee",
    "apply_swap_to_reserves",
    "price_impact_bps",
    "quote",
    "AquaFlowError",
    "ErrorKind",
    "RouteStep",
    "RoutingPolicy",
    "find_route",
    "total_price_impact_bps",
    "validate_route",
]
