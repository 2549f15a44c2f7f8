"""
Security validation pipeline.

An intent must clear every gate, in this order, before routing is attempted:

1. router not paused
2. intent.user == caller
3. token addresses well-formed, nonzero and distinct
4. amount_in positive and within [min_trade_amount, max_trade_amount];
   min_amount_out a non-negative int
5. deadline strictly in the future and at least ``expiry_buffer_seconds`` away
6. max_slippage_bps <= MAX_SLIPPAGE_BPS
7. nonce equals the user's next expected nonce
8. per-user daily volume (epoch reset, then bound; committed on pass)
   8b. suspicious-size alert (never fails)
9. global 24h circuit breaker (committed on pass; latches ``paused`` on trip)

The first failing gate raises and nothing after it runs. Gates 8 and 9 commit
their counters as they pass; the caller is responsible for rolling back the
whole state if a later stage fails.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from .checked_math import checked_add
from .errors import (
    AmountAboveMaximum,
    AmountBelowMinimum,
    CircuitBreakerTriggered,
    DailyVolumeExceeded,
    DeadlineTooSoon,
    IdenticalTokens,
    IntentUserMismatch,
    InvalidNonce,
    NegativeAmount,
    RouterPaused,
    SlippageTooHigh,
    TransactionExpired,
    ZeroAmount,
)
from ..state.canonical import require_address
from ..state.intents import Intent
from ..state.nonces import NonceTable

MAX_SLIPPAGE_BPS = 1000
SECONDS_PER_DAY = 86_400

SEVERITY_DAILY_VOLUME = 2
SEVERITY_SUSPICIOUS_AMOUNT = 3
SEVERITY_CIRCUIT_BREAKER = 5

ALERT_DAILY_VOLUME = "DAILY_VOLUME_EXCEEDED"
ALERT_SUSPICIOUS_AMOUNT = "SUSPICIOUS_AMOUNT"
ALERT_CIRCUIT_BREAKER = "CIRCUIT_BREAKER"

# (user, alert_type, severity, amount)
AlertSink = Callable[[str, str, int, int], None]


def _no_alert(user: str, alert_type: str, severity: int, amount: int) -> None:
    return None


@dataclass(frozen=True)
class SecurityConfig:
    min_trade_amount: int = 1000
    max_trade_amount: int = 100_000 * 10**18
    max_daily_volume: int = 1_000_000 * 10**18
    circuit_breaker_threshold: int = 10_000_000 * 10**18
    suspicious_amount: int = 1_000_000 * 10**18
    expiry_buffer_seconds: int = 300
    max_slippage_bps: int = MAX_SLIPPAGE_BPS
    volume_window_seconds: int = SECONDS_PER_DAY

    def __post_init__(self) -> None:
        for name in self.__dataclass_fields__:
            v = getattr(self, name)
            if not isinstance(v, int) or isinstance(v, bool) or v < 0:
                raise ValueError(f"{name} must be a non-negative int")
        if self.min_trade_amount > self.max_trade_amount:
            raise ValueError("min_trade_amount must not exceed max_trade_amount")


@dataclass
class SecurityState:
    """
    Mutable security counters.

    Volume markers default to ``genesis_timestamp`` for users never seen.
    """
    genesis_timestamp: int = 0
    nonces: NonceTable = field(default_factory=NonceTable)
    daily_volume: Dict[str, int] = field(default_factory=dict)
    last_volume_reset: Dict[str, int] = field(default_factory=dict)
    total_volume_24h: int = 0
    last_total_volume_reset: Optional[int] = None
    paused: bool = False

    def __post_init__(self) -> None:
        if self.last_total_volume_reset is None:
            self.last_total_volume_reset = self.genesis_timestamp

    def volume_marker(self, user: str) -> int:
        return self.last_volume_reset.get(user, self.genesis_timestamp)

    def snapshot(self) -> "SecurityState":
        return copy.deepcopy(self)

    def restore(self, snap: "SecurityState") -> None:
        restored = copy.deepcopy(snap)
        self.genesis_timestamp = restored.genesis_timestamp
        self.nonces = restored.nonces
        self.daily_volume = restored.daily_volume
        self.last_volume_reset = restored.last_volume_reset
        self.total_volume_24h = restored.total_volume_24h
        self.last_total_volume_reset = restored.last_total_volume_reset
        self.paused = restored.paused


@dataclass(frozen=True)
class CheckedIntent:
    """Canonical view of an intent that cleared the pipeline."""
    user: str
    token_in: str
    token_out: str
    amount_in: int
    min_amount_out: int
    max_slippage_bps: int
    nonce: int


def _require_int(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")


# -- individual gates ---------------------------------------------------------

def check_not_paused(state: SecurityState) -> None:
    if state.paused:
        raise RouterPaused("router is paused")


def check_identity(user: str, caller: str) -> str:
    u = require_address(user, name="user")
    c = require_address(caller, name="caller")
    if u != c:
        raise IntentUserMismatch(f"intent user {u} does not match caller {c}")
    return u


def check_token_addresses(token_in: str, token_out: str) -> Tuple[str, str]:
    a = require_address(token_in, name="token_in")
    b = require_address(token_out, name="token_out")
    if a == b:
        raise IdenticalTokens(f"token_in and token_out are both {a}")
    return a, b


def check_positive_amount(amount: int, *, name: str = "amount_in") -> None:
    _require_int(name, amount)
    if amount < 0:
        raise NegativeAmount(f"{name} must not be negative: {amount}")
    if amount == 0:
        raise ZeroAmount(f"{name} must be nonzero")


def check_amount_bounds(amount_in: int, config: SecurityConfig, min_amount_out: int = 0) -> None:
    check_positive_amount(amount_in)
    _require_int("min_amount_out", min_amount_out)
    if min_amount_out < 0:
        raise NegativeAmount(f"min_amount_out must not be negative: {min_amount_out}")
    if amount_in < config.min_trade_amount:
        raise AmountBelowMinimum(f"amount_in {amount_in} below minimum {config.min_trade_amount}")
    if amount_in > config.max_trade_amount:
        raise AmountAboveMaximum(f"amount_in {amount_in} above maximum {config.max_trade_amount}")


def check_deadline(deadline: int, now: int, config: SecurityConfig) -> None:
    _require_int("deadline", deadline)
    if deadline <= now:
        raise TransactionExpired(f"deadline {deadline} is not after {now}")
    if deadline < now + config.expiry_buffer_seconds:
        raise DeadlineTooSoon(
            f"deadline {deadline} is within the {config.expiry_buffer_seconds}s expiry buffer"
        )


def check_slippage(max_slippage_bps: int, config: SecurityConfig) -> None:
    _require_int("max_slippage_bps", max_slippage_bps)
    if max_slippage_bps < 0 or max_slippage_bps > config.max_slippage_bps:
        raise SlippageTooHigh(f"max_slippage_bps {max_slippage_bps} exceeds {config.max_slippage_bps}")


def check_nonce(state: SecurityState, user: str, nonce: int) -> None:
    _require_int("nonce", nonce)
    expected = state.nonces.get_next(user)
    if nonce != expected:
        raise InvalidNonce(expected, nonce)


def check_daily_volume(
    state: SecurityState,
    config: SecurityConfig,
    user: str,
    amount_in: int,
    now: int,
    on_alert: AlertSink = _no_alert,
) -> None:
    """Epoch-reset the user's window, bound the new total, then commit it."""
    if now > state.volume_marker(user) + config.volume_window_seconds:
        state.daily_volume[user] = 0
        state.last_volume_reset[user] = now
    new_volume = checked_add(state.daily_volume.get(user, 0), amount_in)
    if new_volume > config.max_daily_volume:
        on_alert(user, ALERT_DAILY_VOLUME, SEVERITY_DAILY_VOLUME, amount_in)
        raise DailyVolumeExceeded(
            f"daily volume {new_volume} for {user} exceeds {config.max_daily_volume}"
        )
    state.daily_volume[user] = new_volume


def check_suspicious_amount(
    config: SecurityConfig, user: str, amount_in: int, on_alert: AlertSink = _no_alert
) -> None:
    if amount_in > config.suspicious_amount:
        on_alert(user, ALERT_SUSPICIOUS_AMOUNT, SEVERITY_SUSPICIOUS_AMOUNT, amount_in)


def check_circuit_breaker(
    state: SecurityState,
    config: SecurityConfig,
    user: str,
    amount_in: int,
    now: int,
    on_alert: AlertSink = _no_alert,
) -> None:
    """Bound global 24h volume. A trip latches ``paused`` before raising."""
    if now > state.last_total_volume_reset + config.volume_window_seconds:
        state.total_volume_24h = 0
        state.last_total_volume_reset = now
    new_total = checked_add(state.total_volume_24h, amount_in)
    if new_total > config.circuit_breaker_threshold:
        state.paused = True
        on_alert(user, ALERT_CIRCUIT_BREAKER, SEVERITY_CIRCUIT_BREAKER, new_total)
        raise CircuitBreakerTriggered(new_total, config.circuit_breaker_threshold)
    state.total_volume_24h = new_total


# -- pipeline -----------------------------------------------------------------

def run_pipeline(
    state: SecurityState,
    config: SecurityConfig,
    intent: Intent,
    caller: str,
    now: int,
    on_alert: Optional[AlertSink] = None,
) -> CheckedIntent:
    """
    Run every gate in order against ``intent``.

    Returns:
        The canonicalized intent

    Raises:
        AquaFlowError: The first failing gate's error
    """
    alert = on_alert if on_alert is not None else _no_alert

    check_not_paused(state)
    user = check_identity(intent.user, caller)
    token_in, token_out = check_token_addresses(intent.token_in, intent.token_out)
    check_amount_bounds(intent.amount_in, config, intent.min_amount_out)
    check_deadline(intent.deadline, now, config)
    check_slippage(intent.max_slippage_bps, config)
    check_nonce(state, user, intent.nonce)
    check_daily_volume(state, config, user, intent.amount_in, now, alert)
    check_suspicious_amount(config, user, intent.amount_in, alert)
    check_circuit_breaker(state, config, user, intent.amount_in, now, alert)

    return CheckedIntent(
        user=user,
        token_in=token_in,
        token_out=token_out,
        amount_in=intent.amount_in,
        min_amount_out=intent.min_amount_out,
        max_slippage_bps=intent.max_slippage_bps,
        nonce=intent.nonce,
    )
