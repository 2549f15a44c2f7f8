"""
Secure AquaFlow router engine.

This is the imperative shell around the pure core: it owns the deployment
state, runs the security pipeline, routes, executes, and emits events.

Every entry point is one atomic unit of work. ``_transaction`` hands the
operation a ``_Journal``, and before the operation mutates a piece of state
it records how to put that piece back: the security counters, a single pool,
or the settlement counters. If any exception escapes, the journal is replayed
newest first and the exception re-raised. The only effect that survives a
rollback is the circuit-breaker pause latch.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator, List, Optional, Set

from ..core.errors import (
    AquaFlowError,
    ErrorKind,
    InsufficientOutputAmount,
    IntentUserMismatch,
    RouterPaused,
    Unauthorized,
)
from ..core.routing import RoutingPolicy, find_route, total_price_impact_bps, validate_route
from ..core.security import SecurityState, check_positive_amount, check_token_addresses, run_pipeline
from ..core.settlement import ChainConfig, SettlementEngine
from ..state.canonical import require_address
from ..state.intents import CrossChainIntent, Intent
from ..state.pools import PoolType
from ..state.registry import PoolRegistry
from .config import RouterConfig
from .events import EventKind, EventLog
from .host import CallContext, ReserveSource, StaticReserveSource

logger = logging.getLogger(__name__)


@dataclass
class RouterState:
    """
    Everything one router deployment owns.

    Initialisation contract: owner, emergency admin and fee recipient are
    nonzero addresses; the owner is implicitly an authorized caller, updater
    and validator. The fee recipient is recorded and persisted with snapshots
    but no swap path pays it.
    """
    owner: str
    emergency_admin: str
    fee_recipient: str
    registry: PoolRegistry
    security: SecurityState
    settlement: SettlementEngine
    authorized_callers: Set[str] = field(default_factory=set)
    pool_validators: Set[str] = field(default_factory=set)
    authorized_updaters: Set[str] = field(default_factory=set)


def _require_int(name: str, value: Any) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")


class _Journal:
    """Undo actions for one entry point, replayed newest first on failure."""

    def __init__(self) -> None:
        self._undo: List[Callable[[], None]] = []

    def push(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()


@dataclass(frozen=True)
class IntentResult:
    ok: bool
    amount_out: Optional[int] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


class SecureRouter:
    def __init__(
        self,
        owner: str,
        *,
        emergency_admin: Optional[str] = None,
        fee_recipient: Optional[str] = None,
        config: Optional[RouterConfig] = None,
        chain: Optional[ChainConfig] = None,
        reserve_source: Optional[ReserveSource] = None,
        genesis_timestamp: int = 0,
        events: Optional[EventLog] = None,
    ) -> None:
        self.config = config if config is not None else RouterConfig()
        owner_addr = require_address(owner, name="owner")
        if chain is None:
            chain = ChainConfig(
                chain_id=self.config.chain_id,
                settlement_layer=1,
                bold_enabled=self.config.bold_enabled,
                min_confirmation_blocks=self.config.min_confirmation_blocks,
            )
        self.state = RouterState(
            owner=owner_addr,
            emergency_admin=require_address(emergency_admin or owner_addr, name="emergency_admin"),
            fee_recipient=require_address(fee_recipient or owner_addr, name="fee_recipient"),
            registry=PoolRegistry(config=self.config.registry),
            security=SecurityState(genesis_timestamp=genesis_timestamp),
            settlement=SettlementEngine(chain=chain),
        )
        self.reserve_source: ReserveSource = reserve_source if reserve_source is not None else StaticReserveSource()
        self.events = events if events is not None else EventLog(maxlen=self.config.event_log_maxlen)
        self.policy: RoutingPolicy = self.config.routing_policy()

    # -- plumbing ---------------------------------------------------------------

    @contextmanager
    def _transaction(self, op: str) -> Iterator[_Journal]:
        journal = _Journal()
        try:
            yield journal
        except Exception as exc:
            latched = self.state.security.paused
            journal.rollback()
            if latched:
                self.state.security.paused = True
            logger.info("%s rolled back: %s: %s", op, type(exc).__name__, exc)
            raise

    def _guard_security(self, journal: _Journal) -> None:
        security = self.state.security
        saved = security.snapshot()
        journal.push(lambda: security.restore(saved))

    def _guard_pool(self, journal: _Journal, pool_id: int) -> None:
        registry = self.state.registry
        cp = registry.checkpoint_pool(pool_id)
        journal.push(lambda: registry.restore_pool(cp))

    def _guard_settlement(self, journal: _Journal, *nonces: int) -> None:
        engine = self.state.settlement
        cp = engine.checkpoint(*nonces)
        journal.push(lambda: engine.rollback(cp))

    def _alert(self, user: str, alert_type: str, severity: int, amount: int) -> None:
        self.events.emit(EventKind.SECURITY_ALERT, user=user, alert_type=alert_type, severity=severity, amount=amount)

    def _emit(self, kind: str, **fields: object) -> None:
        self.events.emit(kind, **fields)

    def _caller(self, ctx: CallContext) -> str:
        return require_address(ctx.caller, name="caller")

    def _require_owner(self, ctx: CallContext) -> str:
        caller = self._caller(ctx)
        if caller != self.state.owner:
            raise Unauthorized(f"{caller} is not the owner")
        return caller

    def _require_role(self, ctx: CallContext, members: Set[str], role: str) -> str:
        caller = self._caller(ctx)
        if caller != self.state.owner and caller not in members:
            raise Unauthorized(f"{caller} is not an {role}")
        return caller

    @property
    def paused(self) -> bool:
        return self.state.security.paused

    @property
    def registry(self) -> PoolRegistry:
        return self.state.registry

    @property
    def settlement(self) -> SettlementEngine:
        return self.state.settlement

    # -- swaps ------------------------------------------------------------------

    def execute_intent(self, ctx: CallContext, intent: Intent) -> int:
        """
        Validate, route and execute a same-chain swap intent.

        Returns:
            The output amount credited to the user

        Raises:
            AquaFlowError: Any pipeline, routing, bound or arithmetic failure
                (state is rolled back on any exception, except a circuit-breaker pause)
        """
        with self._transaction("execute_intent") as journal:
            self._guard_security(journal)
            checked = run_pipeline(
                self.state.security, self.config.security, intent, ctx.caller, ctx.timestamp, self._alert
            )
            step = find_route(
                self.state.registry,
                checked.token_in,
                checked.token_out,
                checked.amount_in,
                checked.max_slippage_bps,
                self.policy,
            )
            route = (step,)
            validate_route(route, max_slippage_bps=checked.max_slippage_bps, require_verified=self.config.secure)
            if step.amount_out < checked.min_amount_out:
                raise InsufficientOutputAmount(
                    f"amount_out {step.amount_out} below min_amount_out {checked.min_amount_out}"
                )
            self.state.security.nonces.advance(checked.user)
            for s in route:
                self._guard_pool(journal, s.pool_id)
                self.state.registry.apply_swap(s.pool_id, s.token_in, s.amount_in, s.amount_out, now=ctx.timestamp)

            self.events.emit(
                EventKind.INTENT_EXECUTED,
                user=checked.user,
                token_in=checked.token_in,
                token_out=checked.token_out,
                amount_in=checked.amount_in,
                amount_out=step.amount_out,
                pool_id=step.pool_id,
                nonce=checked.nonce,
                price_impact_bps=total_price_impact_bps(route),
            )
            return step.amount_out

    def apply_intent(self, ctx: CallContext, intent: Intent) -> IntentResult:
        """Result-object form of ``execute_intent``; never raises AquaFlowError."""
        try:
            out = self.execute_intent(ctx, intent)
        except AquaFlowError as exc:
            return IntentResult(ok=False, error=f"{type(exc).__name__}: {exc}", error_kind=exc.kind)
        return IntentResult(ok=True, amount_out=out)

    def get_quote(self, ctx: CallContext, token_in: str, token_out: str, amount_in: int) -> int:
        """Read-only best quote; the price-impact bound is not applied."""
        a, b = check_token_addresses(token_in, token_out)
        check_positive_amount(amount_in)
        return find_route(self.state.registry, a, b, amount_in, None, self.policy).amount_out

    # -- pools ------------------------------------------------------------------

    def add_pool(
        self,
        ctx: CallContext,
        token_a: str,
        token_b: str,
        pool_address: str,
        fee_bps: Optional[int] = None,
        *,
        chain_id: Optional[int] = None,
        pool_type: PoolType = PoolType.UNISWAP_V2,
    ) -> int:
        with self._transaction("add_pool"):
            self._require_role(ctx, self.state.authorized_callers, "authorized caller")
            fee = self.config.protocol_fee_bps if fee_bps is None else fee_bps
            a = require_address(token_a, name="token_a")
            b = require_address(token_b, name="token_b")
            addr = require_address(pool_address, name="pool_address")
            reserve_a, reserve_b = self.reserve_source.fetch_reserves(addr, a, b, block_number=ctx.block_number)
            pool_id = self.state.registry.add_pool(
                a,
                b,
                addr,
                fee,
                reserve_a=reserve_a,
                reserve_b=reserve_b,
                now=ctx.timestamp,
                block_number=ctx.block_number,
                chain_id=self.config.chain_id if chain_id is None else chain_id,
                pool_type=pool_type,
            )
            self.events.emit(
                EventKind.POOL_CREATED,
                pool_id=pool_id,
                token_a=a,
                token_b=b,
                pool_address=addr,
                fee_bps=fee,
            )
            return pool_id

    def update_pool(self, ctx: CallContext, pool_id: int) -> None:
        with self._transaction("update_pool") as journal:
            self._require_role(ctx, self.state.authorized_updaters, "authorized updater")
            pool = self.state.registry.get_pool(pool_id)
            self._guard_pool(journal, pool_id)
            reserve_a, reserve_b = self.reserve_source.fetch_reserves(
                pool.pool_address, pool.token_a, pool.token_b, block_number=ctx.block_number
            )
            self.state.registry.refresh_reserves(
                pool_id, reserve_a, reserve_b, block_number=ctx.block_number, now=ctx.timestamp
            )
            stats = self.state.registry.get_stats(pool_id)
            self.events.emit(
                EventKind.POOL_UPDATED,
                pool_id=pool_id,
                reserve_a=reserve_a,
                reserve_b=reserve_b,
                tvl=stats.tvl,
            )

    def verify_pool(self, ctx: CallContext, pool_id: int, verified: bool = True) -> None:
        with self._transaction("verify_pool") as journal:
            caller = self._require_role(ctx, self.state.pool_validators, "pool validator")
            self._guard_pool(journal, pool_id)
            self.state.registry.set_verified(pool_id, verified)
            self.events.emit(EventKind.POOL_VERIFIED, pool_id=pool_id, validator=caller, verified=bool(verified))

    # -- administration ---------------------------------------------------------

    def emergency_pause(self, ctx: CallContext) -> None:
        caller = self._caller(ctx)
        if caller not in (self.state.owner, self.state.emergency_admin):
            raise Unauthorized(f"{caller} may not pause the router")
        self.state.security.paused = True
        self.events.emit(EventKind.EMERGENCY_ACTION, admin=caller, action="EMERGENCY_PAUSE", timestamp=ctx.timestamp)

    def resume(self, ctx: CallContext) -> None:
        """Owner-only unpause; also starts a fresh 24h circuit-breaker window."""
        caller = self._require_owner(ctx)
        sec = self.state.security
        sec.paused = False
        sec.total_volume_24h = 0
        sec.last_total_volume_reset = ctx.timestamp
        self.events.emit(EventKind.EMERGENCY_ACTION, admin=caller, action="RESUME", timestamp=ctx.timestamp)

    def _set_role(self, ctx: CallContext, members: Set[str], role: str, account: str, allowed: bool) -> None:
        caller = self._require_owner(ctx)
        addr = require_address(account, name=role)
        if allowed:
            members.add(addr)
        else:
            members.discard(addr)
        self.events.emit(EventKind.AUTHORIZATION_CHANGED, admin=caller, role=role, account=addr, allowed=bool(allowed))

    def set_authorized_caller(self, ctx: CallContext, account: str, allowed: bool = True) -> None:
        self._set_role(ctx, self.state.authorized_callers, "authorized_caller", account, allowed)

    def set_pool_validator(self, ctx: CallContext, account: str, allowed: bool = True) -> None:
        self._set_role(ctx, self.state.pool_validators, "pool_validator", account, allowed)

    def set_authorized_updater(self, ctx: CallContext, account: str, allowed: bool = True) -> None:
        self._set_role(ctx, self.state.authorized_updaters, "authorized_updater", account, allowed)

    # -- cross-chain ------------------------------------------------------------

    def execute_cross_chain_intent(self, ctx: CallContext, intent: CrossChainIntent) -> int:
        """
        Validate a cross-chain intent and hand it to the settlement engine.

        Addresses are canonicalised before the intent is recorded, so every
        stored settlement decodes again from a snapshot.
        """
        with self._transaction("execute_cross_chain_intent") as journal:
            if self.state.security.paused:
                raise RouterPaused("router is paused")
            user = require_address(intent.user, name="user")
            if user != self._caller(ctx):
                raise IntentUserMismatch(f"intent user {user} does not match caller {ctx.caller}")
            token_in, token_out = check_token_addresses(intent.token_in, intent.token_out)
            check_positive_amount(intent.amount_in)
            for name in ("min_amount_out", "deadline", "source_chain", "target_chain"):
                _require_int(name, getattr(intent, name))
            canonical = replace(intent, user=user, token_in=token_in, token_out=token_out)

            self._guard_settlement(journal)
            return self.state.settlement.execute_cross_chain_intent(
                canonical, now=ctx.timestamp, block_number=ctx.block_number, emit=self._emit
            )

    def challenge_settlement(self, ctx: CallContext, nonce: int, disputed_state: str) -> int:
        with self._transaction("challenge_settlement") as journal:
            self._guard_settlement(journal, nonce)
            return self.state.settlement.challenge_settlement(
                nonce,
                disputed_state,
                challenger=self._caller(ctx),
                block_number=ctx.block_number,
                emit=self._emit,
            )

    def handle_sequencer_offline(self, ctx: CallContext, last_block_time: int) -> bool:
        return self.state.settlement.handle_sequencer_offline(
            last_block_time, now=ctx.timestamp, block_number=ctx.block_number, emit=self._emit
        )
