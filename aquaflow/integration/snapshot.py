"""
Router state snapshot encoding.

Goals:
- Deterministic JSON serialization for hashing / snapshot distribution.
- Pools persisted in their packed two-word form (token word + reserve word).
- Round-trippable into a working ``SecureRouter``.
- Explicit versioning.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..core.errors import PackedReserveOverflow
from ..core.security import SecurityState
from ..core.settlement import ChainConfig, SettlementEngine, SettlementMode, SettlementRecord, SettlementStatus
from ..state.canonical import canonical_json_bytes, domain_sep_bytes, require_address, sha256_hex
from ..state.intents import CrossChainIntent
from ..state.nonces import NonceTable
from ..state.packing import reserves_fit_packed, unpack_reserves, unpack_token_data
from ..state.pools import Pool, PoolStats, PoolStatus, PoolType
from .config import RouterConfig
from .host import ReserveSource
from .router import SecureRouter

ROUTER_SNAPSHOT_VERSION = 1


def _require_int(value: Any, *, name: str, non_negative: bool = True) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if non_negative and value < 0:
        raise ValueError(f"{name} must be non-negative")
    return int(value)


def _require_list(value: Any, *, name: str, max_len: int) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"{name} must be a list")
    if len(value) > max_len:
        raise ValueError(f"too many {name} entries: {len(value)} > {max_len}")
    return value


def _hex_word(value: Any, *, name: str) -> int:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"{name} must be a 0x-prefixed hex string")
    try:
        return int(value[2:], 16)
    except ValueError as exc:
        raise ValueError(f"{name} must be valid hex") from exc


@dataclass(frozen=True)
class RouterSnapshot:
    """
    Deterministic, versioned snapshot of a router.

    The commitment is *not* included inside `data` to avoid self-reference.
    """

    version: int
    data: Dict[str, Any]

    def canonical_bytes(self) -> bytes:
        return canonical_json_bytes(self.data)

    def commitment_bytes(self) -> bytes:
        payload = domain_sep_bytes("router_snapshot", version=self.version) + self.canonical_bytes()
        return hashlib.sha256(payload).digest()

    def commitment_hex(self) -> str:
        payload = domain_sep_bytes("router_snapshot", version=self.version) + self.canonical_bytes()
        return sha256_hex(payload)


def _intent_to_obj(intent: CrossChainIntent) -> Dict[str, Any]:
    return {
        "user": intent.user,
        "source_chain": int(intent.source_chain),
        "target_chain": int(intent.target_chain),
        "token_in": intent.token_in,
        "token_out": intent.token_out,
        "amount_in": int(intent.amount_in),
        "min_amount_out": int(intent.min_amount_out),
        "deadline": int(intent.deadline),
        "settlement_mode": intent.settlement_mode,
    }


def snapshot_from_router(router: SecureRouter, *, version: int = ROUTER_SNAPSHOT_VERSION) -> RouterSnapshot:
    """
    Raises:
        PackedReserveOverflow: A pool reserve does not fit its 128-bit packed slot
    """
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")

    st = router.state
    reg = st.registry

    pools_entries = []
    for pool_id in reg.pool_ids():
        pool = reg.get_pool(pool_id)
        if not reserves_fit_packed(pool.reserve_a, pool.reserve_b):
            raise PackedReserveOverflow(
                f"pool {pool_id} reserves ({pool.reserve_a}, {pool.reserve_b}) exceed the 128-bit packed slot"
            )
        packed = reg.packed_pool(pool_id)
        stats = reg.get_stats(pool_id)
        pools_entries.append(
            {
                "pool_id": pool_id,
                "token_data": packed.token_data_hex(),
                "reserves": packed.reserves_hex(),
                "pool_address": pool.pool_address,
                "is_verified": bool(pool.is_verified),
                "created_at": int(pool.created_at),
                "last_updated": int(pool.last_updated),
                "chain_id": int(pool.chain_id),
                "pool_type": int(pool.pool_type),
                "status": pool.status.value,
                "last_refresh_block": int(pool.last_refresh_block),
                "stats": {
                    "volume_24h": int(stats.volume_24h),
                    "fees_24h": int(stats.fees_24h),
                    "swap_count": int(stats.swap_count),
                    "window_start": int(stats.window_start),
                },
            }
        )

    sec = st.security
    nonce_entries = [{"user": u, "next_nonce": int(n)} for u, n in sec.nonces.get_all().items()]
    nonce_entries.sort(key=lambda e: e["user"])
    volume_users = sorted(set(sec.daily_volume) | set(sec.last_volume_reset))
    volume_entries = [
        {
            "user": u,
            "daily_volume": int(sec.daily_volume.get(u, 0)),
            "last_reset": int(sec.volume_marker(u)),
        }
        for u in volume_users
    ]

    se = st.settlement
    settlement_entries = []
    for nonce in sorted(se.pending):
        rec = se.pending[nonce]
        settlement_entries.append(
            {
                "nonce": int(rec.nonce),
                "intent": _intent_to_obj(rec.intent),
                "mode": int(rec.mode),
                "estimated_out": int(rec.estimated_out),
                "settlement_block": rec.settlement_block,
                "state_root": rec.state_root,
                "status": rec.status.value,
                "challenger": rec.challenger,
                "disputed_state": rec.disputed_state,
                "challenge_deadline_block": rec.challenge_deadline_block,
            }
        )

    data: Dict[str, Any] = {
        "version": int(version),
        "owner": st.owner,
        "emergency_admin": st.emergency_admin,
        "fee_recipient": st.fee_recipient,
        "roles": {
            "authorized_callers": sorted(st.authorized_callers),
            "pool_validators": sorted(st.pool_validators),
            "authorized_updaters": sorted(st.authorized_updaters),
        },
        "pools": pools_entries,
        "security": {
            "genesis_timestamp": int(sec.genesis_timestamp),
            "nonces": nonce_entries,
            "volumes": volume_entries,
            "total_volume_24h": int(sec.total_volume_24h),
            "last_total_volume_reset": int(sec.last_total_volume_reset),
            "paused": bool(sec.paused),
        },
        "settlement": {
            "chain": {
                "chain_id": int(se.chain.chain_id),
                "settlement_layer": int(se.chain.settlement_layer),
                "bold_enabled": bool(se.chain.bold_enabled),
                "sequencer_address": se.chain.sequencer_address,
                "min_confirmation_blocks": int(se.chain.min_confirmation_blocks),
                "parent_router": se.chain.parent_router,
            },
            "mode_tag": int(se.mode_tag),
            "next_nonce": int(se.next_nonce),
            "sequencer_offline": bool(se.sequencer_offline),
            "fallback_mode": bool(se.fallback_mode),
            "pending": settlement_entries,
        },
    }
    return RouterSnapshot(version=version, data=data)


def _pool_from_entry(entry: Mapping[str, Any]) -> Pool:
    token_a, token_b, fee_bps = unpack_token_data(_hex_word(entry.get("token_data"), name="pool.token_data"))
    reserve_a, reserve_b = unpack_reserves(_hex_word(entry.get("reserves"), name="pool.reserves"))
    status_raw = entry.get("status", PoolStatus.ACTIVE.value)
    try:
        status = PoolStatus(str(status_raw))
    except ValueError as exc:
        raise ValueError(f"invalid pool status: {status_raw}") from exc
    return Pool(
        token_a=token_a,
        token_b=token_b,
        reserve_a=reserve_a,
        reserve_b=reserve_b,
        fee_bps=fee_bps,
        pool_address=require_address(entry.get("pool_address"), name="pool.pool_address"),
        is_verified=bool(entry.get("is_verified", False)),
        created_at=_require_int(entry.get("created_at", 0), name="pool.created_at"),
        last_updated=_require_int(entry.get("last_updated", 0), name="pool.last_updated"),
        chain_id=_require_int(entry.get("chain_id", 0), name="pool.chain_id"),
        pool_type=PoolType(_require_int(entry.get("pool_type", 0), name="pool.pool_type")),
        status=status,
        last_refresh_block=_require_int(entry.get("last_refresh_block", 0), name="pool.last_refresh_block"),
    )


def _opt_int(value: Any, *, name: str) -> Optional[int]:
    return None if value is None else _require_int(value, name=name)


def _settlement_from_entry(entry: Mapping[str, Any]) -> SettlementRecord:
    io = entry.get("intent")
    if not isinstance(io, Mapping):
        raise TypeError("settlement.intent must be an object")
    intent = CrossChainIntent(
        user=require_address(io.get("user"), name="intent.user"),
        source_chain=_require_int(io.get("source_chain"), name="intent.source_chain"),
        target_chain=_require_int(io.get("target_chain"), name="intent.target_chain"),
        token_in=require_address(io.get("token_in"), name="intent.token_in"),
        token_out=require_address(io.get("token_out"), name="intent.token_out"),
        amount_in=_require_int(io.get("amount_in"), name="intent.amount_in"),
        min_amount_out=_require_int(io.get("min_amount_out", 0), name="intent.min_amount_out"),
        deadline=_require_int(io.get("deadline"), name="intent.deadline"),
        settlement_mode=_opt_int(io.get("settlement_mode"), name="intent.settlement_mode"),
    )
    return SettlementRecord(
        nonce=_require_int(entry.get("nonce"), name="settlement.nonce"),
        intent=intent,
        mode=SettlementMode.from_tag(_require_int(entry.get("mode", 2), name="settlement.mode")),
        estimated_out=_require_int(entry.get("estimated_out", 0), name="settlement.estimated_out"),
        settlement_block=_opt_int(entry.get("settlement_block"), name="settlement.settlement_block"),
        state_root=entry.get("state_root"),
        status=SettlementStatus(str(entry.get("status", SettlementStatus.PENDING.value))),
        challenger=entry.get("challenger"),
        disputed_state=entry.get("disputed_state"),
        challenge_deadline_block=_opt_int(entry.get("challenge_deadline_block"), name="settlement.challenge_deadline_block"),
    )


def router_from_snapshot(
    snapshot: Mapping[str, Any],
    *,
    config: Optional[RouterConfig] = None,
    reserve_source: Optional[ReserveSource] = None,
    max_pools: int = 50_000,
    max_users: int = 200_000,
    max_settlements: int = 200_000,
) -> SecureRouter:
    if not isinstance(snapshot, Mapping):
        raise TypeError("snapshot must be a mapping")

    version = snapshot.get("version", ROUTER_SNAPSHOT_VERSION)
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("snapshot.version must be a positive int")
    if version != ROUTER_SNAPSHOT_VERSION:
        raise ValueError(f"unsupported snapshot version: {version}")

    settlement_obj = snapshot.get("settlement")
    if not isinstance(settlement_obj, Mapping):
        raise TypeError("snapshot.settlement must be an object")
    chain_obj = settlement_obj.get("chain")
    if not isinstance(chain_obj, Mapping):
        raise TypeError("snapshot.settlement.chain must be an object")
    chain = ChainConfig(
        chain_id=_require_int(chain_obj.get("chain_id"), name="chain.chain_id"),
        settlement_layer=_require_int(chain_obj.get("settlement_layer", 1), name="chain.settlement_layer"),
        bold_enabled=bool(chain_obj.get("bold_enabled", False)),
        sequencer_address=chain_obj.get("sequencer_address", "0x" + "00" * 20),
        min_confirmation_blocks=_require_int(chain_obj.get("min_confirmation_blocks", 0), name="chain.min_confirmation_blocks"),
        parent_router=chain_obj.get("parent_router", "0x" + "00" * 20),
    )

    sec_obj = snapshot.get("security")
    if not isinstance(sec_obj, Mapping):
        raise TypeError("snapshot.security must be an object")
    genesis = _require_int(sec_obj.get("genesis_timestamp", 0), name="security.genesis_timestamp")

    router = SecureRouter(
        _require_str_address(snapshot.get("owner"), name="owner"),
        emergency_admin=_require_str_address(snapshot.get("emergency_admin"), name="emergency_admin"),
        fee_recipient=_require_str_address(snapshot.get("fee_recipient"), name="fee_recipient"),
        config=config,
        chain=chain,
        reserve_source=reserve_source,
        genesis_timestamp=genesis,
    )
    st = router.state

    roles = snapshot.get("roles") or {}
    if not isinstance(roles, Mapping):
        raise TypeError("snapshot.roles must be an object")
    st.authorized_callers = {require_address(a, name="authorized_caller") for a in roles.get("authorized_callers", [])}
    st.pool_validators = {require_address(a, name="pool_validator") for a in roles.get("pool_validators", [])}
    st.authorized_updaters = {require_address(a, name="authorized_updater") for a in roles.get("authorized_updaters", [])}

    for entry in _require_list(snapshot.get("pools"), name="pools", max_len=max_pools):
        if not isinstance(entry, Mapping):
            raise TypeError("snapshot.pools entries must be objects")
        pool_id = _require_int(entry.get("pool_id"), name="pool.pool_id")
        pool = _pool_from_entry(entry)
        stats_obj = entry.get("stats") or {}
        stats = PoolStats(
            volume_24h=_require_int(stats_obj.get("volume_24h", 0), name="stats.volume_24h"),
            fees_24h=_require_int(stats_obj.get("fees_24h", 0), name="stats.fees_24h"),
            swap_count=_require_int(stats_obj.get("swap_count", 0), name="stats.swap_count"),
            window_start=_require_int(stats_obj.get("window_start", pool.created_at), name="stats.window_start"),
        )
        st.registry.insert_restored(pool_id, pool, stats)

    nonces = NonceTable()
    seen_users: set = set()
    for entry in _require_list(sec_obj.get("nonces"), name="nonces", max_len=max_users):
        user = require_address(entry.get("user"), name="nonce.user")
        if user in seen_users:
            raise ValueError("duplicate nonce entry (user)")
        seen_users.add(user)
        nonces.set_next(user, _require_int(entry.get("next_nonce", 0), name="nonce.next_nonce"))

    daily_volume: Dict[str, int] = {}
    last_reset: Dict[str, int] = {}
    for entry in _require_list(sec_obj.get("volumes"), name="volumes", max_len=max_users):
        user = require_address(entry.get("user"), name="volume.user")
        if user in daily_volume:
            raise ValueError("duplicate volume entry (user)")
        daily_volume[user] = _require_int(entry.get("daily_volume", 0), name="volume.daily_volume")
        last_reset[user] = _require_int(entry.get("last_reset", genesis), name="volume.last_reset")

    st.security = SecurityState(
        genesis_timestamp=genesis,
        nonces=nonces,
        daily_volume=daily_volume,
        last_volume_reset=last_reset,
        total_volume_24h=_require_int(sec_obj.get("total_volume_24h", 0), name="security.total_volume_24h"),
        last_total_volume_reset=_require_int(
            sec_obj.get("last_total_volume_reset", genesis), name="security.last_total_volume_reset"
        ),
        paused=bool(sec_obj.get("paused", False)),
    )

    pending: Dict[int, SettlementRecord] = {}
    for entry in _require_list(settlement_obj.get("pending"), name="settlements", max_len=max_settlements):
        if not isinstance(entry, Mapping):
            raise TypeError("snapshot.settlement.pending entries must be objects")
        rec = _settlement_from_entry(entry)
        if rec.nonce in pending:
            raise ValueError("duplicate settlement entry (nonce)")
        pending[rec.nonce] = rec
    next_nonce = _require_int(settlement_obj.get("next_nonce", 0), name="settlement.next_nonce")
    if pending and next_nonce <= max(pending):
        raise ValueError("settlement.next_nonce must exceed every recorded nonce")
    st.settlement = SettlementEngine(
        chain=chain,
        mode_tag=_require_int(settlement_obj.get("mode_tag", int(chain.mode)), name="settlement.mode_tag"),
        pending=pending,
        next_nonce=next_nonce,
        sequencer_offline=bool(settlement_obj.get("sequencer_offline", False)),
        fallback_mode=bool(settlement_obj.get("fallback_mode", False)),
    )
    return router


def _require_str_address(value: Any, *, name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string")
    return require_address(value, name=name)
