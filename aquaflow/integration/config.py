"""
Router configuration.

All knobs are frozen dataclasses with the deployment defaults. Operators can
override the common ones through ``AQUAFLOW_*`` environment variables; values
that fail to parse fall back to the default and integers are clamped into range.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..core.checked_math import U256_MAX
from ..core.cpmm import MAX_FEE_BPS
from ..core.routing import RoutingPolicy
from ..core.security import MAX_SLIPPAGE_BPS, SecurityConfig
from ..state.registry import RegistryConfig

PROTOCOL_FEE_BPS = 30
DEFAULT_MIN_LIQUIDITY = 1000 * 10**18


@dataclass(frozen=True)
class RouterConfig:
    # Secure mode: only verified pools with at least `min_liquidity` on both sides are routed.
    secure: bool = True
    min_liquidity: int = DEFAULT_MIN_LIQUIDITY
    max_fee_bps: int = MAX_FEE_BPS
    protocol_fee_bps: int = PROTOCOL_FEE_BPS
    # Shift-based fee deduction for the 30 / 25 bps tiers.
    fast_fee_path: bool = False
    event_log_maxlen: int = 10_000
    # Deployment chain; selects the settlement mode.
    chain_id: int = 42161
    bold_enabled: bool = True
    min_confirmation_blocks: int = 0
    security: SecurityConfig = field(default_factory=SecurityConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)

    def __post_init__(self) -> None:
        if not (0 <= self.max_fee_bps <= 10_000):
            raise ValueError(f"max_fee_bps must be in [0, 10000]: {self.max_fee_bps}")
        if self.min_liquidity < 0:
            raise ValueError("min_liquidity must be non-negative")
        if self.event_log_maxlen <= 0:
            raise ValueError("event_log_maxlen must be positive")

    def routing_policy(self) -> RoutingPolicy:
        return RoutingPolicy(
            require_verified=self.secure,
            min_liquidity=self.min_liquidity if self.secure else 0,
            max_fee_bps=self.max_fee_bps,
            fast_path=self.fast_fee_path,
        )


def _env_int(env: Mapping[str, str], name: str, default: int, *, lo: int, hi: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        v = int(raw.strip())
    except ValueError:
        return int(default)
    if v < lo:
        return int(lo)
    if v > hi:
        return int(hi)
    return int(v)


def _bool_env(env: Mapping[str, str], name: str, *, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return bool(default)
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return bool(default)


def router_config_from_env(env: Optional[Mapping[str, str]] = None) -> RouterConfig:
    """
    Build a RouterConfig from ``AQUAFLOW_*`` variables (``os.environ`` by default).

    Recognised variables: SECURE, FAST_FEE_PATH, CHAIN_ID, BOLD_ENABLED,
    MIN_CONFIRMATIONS, MIN_LIQUIDITY,
    MAX_FEE_BPS, MIN_TRADE, MAX_TRADE, MAX_DAILY_VOLUME, CIRCUIT_BREAKER,
    SUSPICIOUS_AMOUNT, EXPIRY_BUFFER, MAX_SLIPPAGE_BPS, UPDATE_FREQUENCY,
    EVENT_LOG_MAXLEN.
    """
    e = os.environ if env is None else env
    d = RouterConfig()
    ds = d.security
    dr = d.registry

    min_trade = _env_int(e, "AQUAFLOW_MIN_TRADE", ds.min_trade_amount, lo=0, hi=U256_MAX)
    max_trade = _env_int(e, "AQUAFLOW_MAX_TRADE", ds.max_trade_amount, lo=min_trade, hi=U256_MAX)
    security = SecurityConfig(
        min_trade_amount=min_trade,
        max_trade_amount=max_trade,
        max_daily_volume=_env_int(e, "AQUAFLOW_MAX_DAILY_VOLUME", ds.max_daily_volume, lo=0, hi=U256_MAX),
        circuit_breaker_threshold=_env_int(e, "AQUAFLOW_CIRCUIT_BREAKER", ds.circuit_breaker_threshold, lo=0, hi=U256_MAX),
        suspicious_amount=_env_int(e, "AQUAFLOW_SUSPICIOUS_AMOUNT", ds.suspicious_amount, lo=0, hi=U256_MAX),
        expiry_buffer_seconds=_env_int(e, "AQUAFLOW_EXPIRY_BUFFER", ds.expiry_buffer_seconds, lo=0, hi=7 * 86_400),
        max_slippage_bps=_env_int(e, "AQUAFLOW_MAX_SLIPPAGE_BPS", ds.max_slippage_bps, lo=0, hi=MAX_SLIPPAGE_BPS),
        volume_window_seconds=ds.volume_window_seconds,
    )
    registry = RegistryConfig(
        update_frequency_blocks=_env_int(e, "AQUAFLOW_UPDATE_FREQUENCY", dr.update_frequency_blocks, lo=0, hi=1_000_000),
        reference_trade_amount=dr.reference_trade_amount,
        stats_window_seconds=dr.stats_window_seconds,
        max_fee_bps=_env_int(e, "AQUAFLOW_MAX_FEE_BPS", dr.max_fee_bps, lo=0, hi=MAX_FEE_BPS),
    )
    return RouterConfig(
        secure=_bool_env(e, "AQUAFLOW_SECURE", default=d.secure),
        min_liquidity=_env_int(e, "AQUAFLOW_MIN_LIQUIDITY", d.min_liquidity, lo=0, hi=U256_MAX),
        max_fee_bps=registry.max_fee_bps,
        protocol_fee_bps=d.protocol_fee_bps,
        fast_fee_path=_bool_env(e, "AQUAFLOW_FAST_FEE_PATH", default=d.fast_fee_path),
        event_log_maxlen=_env_int(e, "AQUAFLOW_EVENT_LOG_MAXLEN", d.event_log_maxlen, lo=1, hi=1_000_000),
        chain_id=_env_int(e, "AQUAFLOW_CHAIN_ID", d.chain_id, lo=0, hi=(1 << 64) - 1),
        bold_enabled=_bool_env(e, "AQUAFLOW_BOLD_ENABLED", default=d.bold_enabled),
        min_confirmation_blocks=_env_int(e, "AQUAFLOW_MIN_CONFIRMATIONS", d.min_confirmation_blocks, lo=0, hi=1_000_000),
        security=security,
        registry=registry,
    )
