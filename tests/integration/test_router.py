# [TESTER] v1

from __future__ import annotations

from dataclasses import replace
from typing import Optional

import pytest

from aquaflow.core.cpmm import quote
from aquaflow.core.errors import (
    CircuitBreakerTriggered,
    ErrorKind,
    IdenticalTokens,
    InsufficientOutputAmount,
    IntentUserMismatch,
    InvalidAddress,
    InvalidDisputedState,
    InvalidNonce,
    NegativeAmount,
    NoVerifiedPoolAvailable,
    PoolAlreadyExists,
    RouterPaused,
    TransactionExpired,
    Unauthorized,
    UpdateTooFrequent,
)
from aquaflow.core.security import ALERT_CIRCUIT_BREAKER, SecurityConfig
from aquaflow.core.settlement import SettlementStatus
from aquaflow.integration.config import RouterConfig
from aquaflow.integration.events import EventKind, EventLog
from aquaflow.integration.host import CallContext, StaticReserveSource
from aquaflow.integration.router import SecureRouter
from aquaflow.state.intents import CrossChainIntent, Intent

T0 = 1_700_000_000
E18 = 10**18
E24 = 10**24

OWNER = "0x" + "01" * 20
ADMIN = "0x" + "02" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
TOKEN_A = "0x" + "aa" * 20
TOKEN_B = "0x" + "bb" * 20


def _addr(i: int) -> str:
    return "0x" + f"{i:040x}"


def _ctx(caller: str = OWNER, *, block: int = 1000, ts: int = T0) -> CallContext:
    return CallContext(caller=caller, block_number=block, timestamp=ts)


def _router(config: Optional[RouterConfig] = None) -> SecureRouter:
    return SecureRouter(
        OWNER,
        emergency_admin=ADMIN,
        config=config,
        reserve_source=StaticReserveSource(default=(E24, E24)),
        genesis_timestamp=T0,
    )


def _pool(router: SecureRouter, i: int = 1, *, verified: bool = True) -> int:
    pid = router.add_pool(_ctx(), TOKEN_A, TOKEN_B, _addr(i))
    if verified:
        router.verify_pool(_ctx(), pid)
    return pid


def _intent(**kw) -> Intent:
    base = Intent(
        user=ALICE,
        token_in=TOKEN_A,
        token_out=TOKEN_B,
        amount_in=E18,
        min_amount_out=0,
        deadline=T0 + 3600,
        max_slippage_bps=100,
        nonce=0,
    )
    return replace(base, **kw)


def test_execute_intent_swaps_against_best_pool() -> None:
    router = _router()
    pid = _pool(router)

    out = router.execute_intent(_ctx(ALICE), _intent())

    assert out == quote(E24, E24, E18, 30)
    pool = router.registry.get_pool(pid)
    assert (pool.reserve_a, pool.reserve_b) == (E24 + E18, E24 - out)
    assert router.state.security.nonces.get_next(ALICE) == 1
    assert router.state.security.daily_volume[ALICE] == E18
    ev = router.events.last()
    assert ev.kind is EventKind.INTENT_EXECUTED
    assert (ev["amount_out"], ev["pool_id"], ev["nonce"]) == (out, pid, 0)


def test_nonce_replay_is_rejected() -> None:
    router = _router()
    _pool(router)
    router.execute_intent(_ctx(ALICE), _intent())
    with pytest.raises(InvalidNonce) as exc:
        router.execute_intent(_ctx(ALICE), _intent())
    assert (exc.value.expected, exc.value.got) == (1, 0)
    router.execute_intent(_ctx(ALICE), _intent(nonce=1))


def test_failed_intent_rolls_back_all_state() -> None:
    router = _router()
    pid = _pool(router)
    expected = quote(E24, E24, E18, 30)

    with pytest.raises(InsufficientOutputAmount):
        router.execute_intent(_ctx(ALICE), _intent(min_amount_out=expected + 1))

    sec = router.state.security
    assert sec.nonces.get_next(ALICE) == 0
    assert sec.daily_volume.get(ALICE, 0) == 0
    assert sec.total_volume_24h == 0
    assert router.registry.get_pool(pid).reserve_a == E24
    assert router.registry.get_stats(pid).swap_count == 0

    assert router.execute_intent(_ctx(ALICE), _intent(min_amount_out=expected)) == expected


@pytest.mark.parametrize("min_amount_out, exc", [(None, TypeError), ("1", TypeError), (-1, NegativeAmount)])
def test_bad_min_amount_out_commits_nothing(min_amount_out, exc: type) -> None:
    router = _router()
    _pool(router)
    with pytest.raises(exc):
        router.execute_intent(_ctx(ALICE), _intent(min_amount_out=min_amount_out))
    sec = router.state.security
    assert sec.nonces.get_next(ALICE) == 0
    assert sec.daily_volume.get(ALICE, 0) == 0
    assert sec.total_volume_24h == 0


class _FailingEventLog(EventLog):
    fail_on: Optional[EventKind] = None

    def emit(self, kind, **fields):
        if EventKind(kind) is self.fail_on:
            raise RuntimeError(f"cannot record {kind}")
        return super().emit(kind, **fields)


def test_unexpected_error_after_swap_rolls_back_in_place() -> None:
    events = _FailingEventLog()
    router = SecureRouter(
        OWNER,
        reserve_source=StaticReserveSource(default=(E24, E24)),
        genesis_timestamp=T0,
        events=events,
    )
    pid = _pool(router)
    live = router.registry.get_pool(pid)
    events.fail_on = EventKind.INTENT_EXECUTED

    with pytest.raises(RuntimeError):
        router.execute_intent(_ctx(ALICE), _intent())

    sec = router.state.security
    assert sec.nonces.get_next(ALICE) == 0
    assert sec.daily_volume.get(ALICE, 0) == 0
    assert sec.total_volume_24h == 0
    assert router.registry.get_pool(pid) is live
    assert (live.reserve_a, live.reserve_b) == (E24, E24)
    assert router.registry.get_stats(pid).swap_count == 0

    events.fail_on = None
    assert router.execute_intent(_ctx(ALICE), _intent()) == quote(E24, E24, E18, 30)
    assert live.reserve_a == E24 + E18


def test_duplicate_pool_address_is_rejected() -> None:
    router = _router()
    _pool(router, 1)
    with pytest.raises(PoolAlreadyExists):
        router.add_pool(_ctx(), TOKEN_A, TOKEN_B, _addr(1))
    assert len(router.registry) == 1


def test_expired_deadline_fails_before_routing() -> None:
    router = _router()
    with pytest.raises(TransactionExpired):
        router.execute_intent(_ctx(ALICE), _intent(deadline=T0))


def test_unverified_pool_is_not_routed_in_secure_mode() -> None:
    router = _router()
    _pool(router, verified=False)
    with pytest.raises(NoVerifiedPoolAvailable):
        router.execute_intent(_ctx(ALICE), _intent())
    assert router.state.security.nonces.get_next(ALICE) == 0


def test_open_mode_routes_unverified_pools() -> None:
    router = _router(RouterConfig(secure=False))
    _pool(router, verified=False)
    assert router.execute_intent(_ctx(ALICE), _intent()) == quote(E24, E24, E18, 30)


def test_circuit_breaker_pause_survives_rollback() -> None:
    config = RouterConfig(security=SecurityConfig(circuit_breaker_threshold=15 * 10**17))
    router = _router(config)
    _pool(router)
    router.execute_intent(_ctx(ALICE), _intent())

    with pytest.raises(CircuitBreakerTriggered) as exc:
        router.execute_intent(_ctx(ALICE), _intent(nonce=1))
    assert exc.value.attempted_volume == 2 * E18

    sec = router.state.security
    assert router.paused is True
    assert sec.total_volume_24h == E18
    assert sec.daily_volume[ALICE] == E18
    alerts = router.events.of_kind(EventKind.SECURITY_ALERT)
    assert alerts[-1]["alert_type"] == ALERT_CIRCUIT_BREAKER
    assert alerts[-1]["severity"] == 5

    with pytest.raises(RouterPaused):
        router.execute_intent(_ctx(ALICE), _intent(nonce=1))

    with pytest.raises(Unauthorized):
        router.resume(_ctx(ADMIN))
    router.resume(_ctx(ts=T0 + 10))
    assert router.paused is False
    assert sec.total_volume_24h == 0
    assert sec.last_total_volume_reset == T0 + 10
    router.execute_intent(_ctx(ALICE, ts=T0 + 10), _intent(nonce=1))


def test_emergency_pause_by_admin() -> None:
    router = _router()
    with pytest.raises(Unauthorized):
        router.emergency_pause(_ctx(ALICE))
    router.emergency_pause(_ctx(ADMIN))
    assert router.paused is True
    ev = router.events.last()
    assert ev.kind is EventKind.EMERGENCY_ACTION
    assert ev["action"] == "EMERGENCY_PAUSE"


def test_role_gates() -> None:
    router = _router()
    with pytest.raises(Unauthorized):
        router.add_pool(_ctx(ALICE), TOKEN_A, TOKEN_B, _addr(1))
    router.set_authorized_caller(_ctx(), ALICE)
    pid = router.add_pool(_ctx(ALICE), TOKEN_A, TOKEN_B, _addr(1))

    with pytest.raises(Unauthorized):
        router.verify_pool(_ctx(BOB), pid)
    with pytest.raises(Unauthorized):
        router.set_pool_validator(_ctx(ALICE), BOB)
    router.set_pool_validator(_ctx(), BOB)
    router.verify_pool(_ctx(BOB), pid)
    assert router.registry.get_pool(pid).is_verified is True

    router.set_authorized_caller(_ctx(), ALICE, False)
    with pytest.raises(Unauthorized):
        router.add_pool(_ctx(ALICE), TOKEN_A, TOKEN_B, _addr(2))
    assert [e["allowed"] for e in router.events.of_kind(EventKind.AUTHORIZATION_CHANGED)] == [True, True, False]


def test_add_pool_defaults() -> None:
    router = _router()
    pid = _pool(router, verified=False)
    pool = router.registry.get_pool(pid)
    assert pool.fee_bps == 30
    assert pool.is_verified is False
    assert pool.chain_id == 42161
    assert router.events.of_kind(EventKind.POOL_CREATED)[0]["pool_id"] == pid


def test_update_pool_refreshes_from_reserve_source() -> None:
    source = StaticReserveSource(default=(E24, E24))
    router = SecureRouter(OWNER, reserve_source=source, genesis_timestamp=T0)
    pid = router.add_pool(_ctx(block=1000), TOKEN_A, TOKEN_B, _addr(1))
    source.set_reserves(_addr(1), 2 * E24, 3 * E24)

    with pytest.raises(UpdateTooFrequent):
        router.update_pool(_ctx(block=1099), pid)
    with pytest.raises(Unauthorized):
        router.update_pool(_ctx(ALICE, block=1100), pid)
    router.set_authorized_updater(_ctx(), ALICE)
    router.update_pool(_ctx(ALICE, block=1100, ts=T0 + 5), pid)

    pool = router.registry.get_pool(pid)
    assert (pool.reserve_a, pool.reserve_b) == (2 * E24, 3 * E24)
    assert router.events.last()["tvl"] == 5 * E24


def test_get_quote_is_read_only() -> None:
    router = _router()
    pid = _pool(router)
    n_events = len(router.events)
    assert router.get_quote(_ctx(BOB), TOKEN_A, TOKEN_B, E18) == quote(E24, E24, E18, 30)
    # No price-impact bound applies to quotes.
    assert router.get_quote(_ctx(BOB), TOKEN_A, TOKEN_B, 100 * E24) > 0
    assert router.registry.get_pool(pid).reserve_a == E24
    assert router.registry.get_stats(pid).swap_count == 0
    assert len(router.events) == n_events


def test_apply_intent_returns_result_object() -> None:
    router = _router()
    _pool(router)
    ok = router.apply_intent(_ctx(ALICE), _intent())
    assert ok.ok is True
    assert ok.amount_out == quote(E24, E24, E18, 30)

    replay = router.apply_intent(_ctx(ALICE), _intent())
    assert replay.ok is False
    assert replay.amount_out is None
    assert replay.error_kind is ErrorKind.REPLAY_OR_ORDERING
    assert replay.error is not None and replay.error.startswith("InvalidNonce")


def _xintent(**kw) -> CrossChainIntent:
    base = CrossChainIntent(
        user=ALICE,
        source_chain=42161,
        target_chain=42170,
        token_in=TOKEN_A,
        token_out=TOKEN_B,
        amount_in=10_000,
        min_amount_out=0,
        deadline=T0 + 3600,
    )
    return replace(base, **kw)


def test_cross_chain_intent_settles_and_emits() -> None:
    router = _router()
    assert router.execute_cross_chain_intent(_ctx(ALICE, block=77), _xintent()) == 9_970
    kinds = [e.kind for e in router.events.events()[-2:]]
    assert kinds == [EventKind.SETTLEMENT_INITIATED, EventKind.CROSS_CHAIN_INTENT_CREATED]
    assert router.settlement.get_settlement(0).settlement_block == 77

    deadline = router.challenge_settlement(_ctx(BOB, block=80), 0, "0x" + "ee" * 32)
    assert deadline == 80 + 50_400
    assert router.events.last().kind is EventKind.DISPUTE_RAISED
    assert router.settlement.get_settlement(0).challenger == BOB


def test_cross_chain_intent_gates() -> None:
    router = _router()
    with pytest.raises(IntentUserMismatch):
        router.execute_cross_chain_intent(_ctx(BOB), _xintent())
    router.emergency_pause(_ctx())
    with pytest.raises(RouterPaused):
        router.execute_cross_chain_intent(_ctx(ALICE), _xintent())
    assert router.settlement.next_nonce == 0


def test_sequencer_offline_through_router() -> None:
    router = _router()
    assert router.handle_sequencer_offline(_ctx(ts=T0 + 1000), T0) is True
    assert router.settlement.fallback_mode is True
    assert router.events.last().kind is EventKind.SEQUENCER_FALLBACK


def test_get_quote_rejects_non_positive_amounts() -> None:
    router = _router()
    _pool(router)
    with pytest.raises(NegativeAmount) as exc:
        router.get_quote(_ctx(BOB), TOKEN_A, TOKEN_B, -5)
    assert exc.value.kind is ErrorKind.INPUT_VALIDATION
    with pytest.raises(TypeError):
        router.get_quote(_ctx(BOB), TOKEN_A, TOKEN_B, "5")


def test_cross_chain_intent_validates_tokens_and_amounts() -> None:
    router = _router()
    with pytest.raises(InvalidAddress):
        router.execute_cross_chain_intent(_ctx(ALICE), _xintent(token_in="USDC"))
    with pytest.raises(IdenticalTokens):
        router.execute_cross_chain_intent(_ctx(ALICE), _xintent(token_out=TOKEN_A.upper().replace("0X", "0x")))
    with pytest.raises(NegativeAmount):
        router.execute_cross_chain_intent(_ctx(ALICE), _xintent(amount_in=-1))
    with pytest.raises(TypeError):
        router.execute_cross_chain_intent(_ctx(ALICE), _xintent(deadline=str(T0 + 3600)))
    assert router.settlement.next_nonce == 0
    assert router.settlement.pending == {}


def test_cross_chain_intent_addresses_are_canonicalised() -> None:
    router = _router()
    upper = _xintent(token_in="0x" + "AA" * 20, token_out="BB" * 20)
    router.execute_cross_chain_intent(_ctx(ALICE), upper)
    recorded = router.settlement.get_settlement(0).intent
    assert (recorded.user, recorded.token_in, recorded.token_out) == (ALICE, TOKEN_A, TOKEN_B)
    assert router.events.last()["token_in"] == TOKEN_A


def test_malformed_dispute_claim_leaves_settlement_pending() -> None:
    router = _router()
    router.execute_cross_chain_intent(_ctx(ALICE), _xintent())
    with pytest.raises(InvalidDisputedState) as exc:
        router.challenge_settlement(_ctx(BOB), 0, "nothex")
    assert exc.value.kind is ErrorKind.INPUT_VALIDATION
    record = router.settlement.get_settlement(0)
    assert record.status is SettlementStatus.PENDING
    assert record.challenger is None
    router.challenge_settlement(_ctx(BOB), 0, "ee" * 32)
    assert record.status is SettlementStatus.CHALLENGED


def test_zero_fee_recipient_is_rejected() -> None:
    with pytest.raises(InvalidAddress):
        SecureRouter(OWNER, fee_recipient="0x" + "00" * 20)
    router = SecureRouter(OWNER, fee_recipient=BOB)
    assert router.state.fee_recipient == BOB
