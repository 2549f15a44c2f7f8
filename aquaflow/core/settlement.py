"""
Chain-aware settlement for cross-chain intents.

The settlement mode is chosen once from the deployment chain id and stored as
an integer tag:

    42161 (Arbitrum One)  -> MAINNET   30 bps settlement fee
    42170 (Arbitrum Nova) -> ANYTRUST  20 bps
    anything else (Orbit) -> ORBIT     10 bps

Every accepted intent gets a settlement nonce (dense, from 0) and a persisted
``SettlementRecord``; execution then dispatches through a mode -> handler table.
When the chain has BoLD enabled, a recorded settlement can be challenged once,
opening a dispute window of ``DISPUTE_WINDOW_BLOCKS``.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum, unique
from typing import Any, Callable, Dict, Mapping, Optional

from .checked_math import checked_div, checked_mul, checked_sub
from .cpmm import BPS_DENOM
from .errors import (
    DisputesDisabled,
    InsufficientFinalityBuffer,
    InvalidDisputedState,
    InvalidSourceChain,
    SettlementAlreadyChallenged,
    UnknownSettlement,
)
from ..state.canonical import (
    ZERO_ADDRESS,
    canonical_hex_fixed_allow_0x,
    canonical_json_bytes,
    domain_sep_bytes,
    require_address,
    sha256_hex,
)
from ..state.intents import CrossChainIntent

logger = logging.getLogger(__name__)

ARBITRUM_ONE_CHAIN_ID = 42161
ARBITRUM_NOVA_CHAIN_ID = 42170

BLOCK_TIME_SECONDS = 12
DISPUTE_WINDOW_BLOCKS = 7 * 24 * 3600 // BLOCK_TIME_SECONDS
SEQUENCER_TIMEOUT_SECONDS = 300

# (event name, fields)
EventSink = Callable[..., None]


def _discard(kind: str, **fields: Any) -> None:
    return None


@unique
class SettlementMode(IntEnum):
    MAINNET = 0
    ANYTRUST = 1
    ORBIT = 2

    @classmethod
    def from_tag(cls, tag: int) -> "SettlementMode":
        """Total decoding: unknown tags fall back to ORBIT."""
        try:
            return cls(tag)
        except ValueError:
            return cls.ORBIT

    @classmethod
    def from_chain_id(cls, chain_id: int) -> "SettlementMode":
        if chain_id == ARBITRUM_ONE_CHAIN_ID:
            return cls.MAINNET
        if chain_id == ARBITRUM_NOVA_CHAIN_ID:
            return cls.ANYTRUST
        return cls.ORBIT

    @property
    def fee_bps(self) -> int:
        return _SETTLEMENT_FEE_BPS[self]


_SETTLEMENT_FEE_BPS: Dict[SettlementMode, int] = {
    SettlementMode.MAINNET: 30,
    SettlementMode.ANYTRUST: 20,
    SettlementMode.ORBIT: 10,
}


@unique
class SettlementStatus(Enum):
    PENDING = "PENDING"
    CHALLENGED = "CHALLENGED"


@dataclass(frozen=True)
class ChainConfig:
    """
    Deployment chain parameters.

    ``min_confirmation_blocks`` is added to the current timestamp when checking
    an intent deadline: blocks and seconds are treated as the same unit.
    """
    chain_id: int
    settlement_layer: int
    bold_enabled: bool
    sequencer_address: str = ZERO_ADDRESS
    min_confirmation_blocks: int = 0
    parent_router: str = ZERO_ADDRESS

    def __post_init__(self) -> None:
        sequencer = require_address(self.sequencer_address, name="sequencer_address", allow_zero=True)
        object.__setattr__(self, "sequencer_address", sequencer)
        parent = require_address(self.parent_router, name="parent_router", allow_zero=True)
        object.__setattr__(self, "parent_router", parent)
        if self.min_confirmation_blocks < 0:
            raise ValueError("min_confirmation_blocks must be non-negative")

    @property
    def mode(self) -> SettlementMode:
        return SettlementMode.from_chain_id(self.chain_id)


@dataclass
class SettlementRecord:
    nonce: int
    intent: CrossChainIntent
    mode: SettlementMode
    estimated_out: int
    settlement_block: Optional[int] = None
    state_root: Optional[str] = None
    status: SettlementStatus = SettlementStatus.PENDING
    challenger: Optional[str] = None
    disputed_state: Optional[str] = None
    challenge_deadline_block: Optional[int] = None


def estimate_output(amount_in: int, mode: SettlementMode) -> int:
    """amount_in * (10_000 - fee_bps) / 10_000 with checked arithmetic."""
    return checked_div(checked_mul(amount_in, checked_sub(BPS_DENOM, mode.fee_bps)), BPS_DENOM)


def compute_state_root(user: str, amount_in: int, deadline: int) -> str:
    """Domain-separated SHA-256 commitment to the settled intent's content."""
    payload = {
        "user": require_address(user, name="user", allow_zero=True),
        "amount_in": int(amount_in),
        "deadline": int(deadline),
    }
    return sha256_hex(domain_sep_bytes("settlement_state_root") + canonical_json_bytes(payload))


def _settle_common(record: SettlementRecord, block_number: int, emit: EventSink) -> None:
    record.settlement_block = block_number
    record.state_root = compute_state_root(record.intent.user, record.intent.amount_in, record.intent.deadline)
    emit(
        "SettlementInitiated",
        nonce=record.nonce,
        mode=int(record.mode),
        settlement_block=block_number,
        state_root=record.state_root,
    )


def _settle_mainnet(engine: "SettlementEngine", record: SettlementRecord, block_number: int, emit: EventSink) -> None:
    _settle_common(record, block_number, emit)


def _settle_anytrust(engine: "SettlementEngine", record: SettlementRecord, block_number: int, emit: EventSink) -> None:
    _settle_common(record, block_number, emit)


def _settle_orbit(engine: "SettlementEngine", record: SettlementRecord, block_number: int, emit: EventSink) -> None:
    if engine.chain.parent_router != ZERO_ADDRESS:
        logger.debug("settlement %d relays to parent router %s", record.nonce, engine.chain.parent_router)
    _settle_common(record, block_number, emit)


SettlementHandler = Callable[["SettlementEngine", SettlementRecord, int, EventSink], None]

_HANDLERS: Dict[SettlementMode, SettlementHandler] = {
    SettlementMode.MAINNET: _settle_mainnet,
    SettlementMode.ANYTRUST: _settle_anytrust,
    SettlementMode.ORBIT: _settle_orbit,
}


@dataclass
class SettlementEngine:
    chain: ChainConfig
    mode_tag: Optional[int] = None
    pending: Dict[int, SettlementRecord] = field(default_factory=dict)
    next_nonce: int = 0
    sequencer_offline: bool = False
    fallback_mode: bool = False
    dispute_window_blocks: int = DISPUTE_WINDOW_BLOCKS

    def __post_init__(self) -> None:
        if self.mode_tag is None:
            self.mode_tag = int(self.chain.mode)

    @property
    def mode(self) -> SettlementMode:
        return SettlementMode.from_tag(self.mode_tag)

    def execute_cross_chain_intent(
        self,
        intent: CrossChainIntent,
        *,
        now: int,
        block_number: int,
        emit: EventSink = _discard,
    ) -> int:
        """
        Record and settle a cross-chain intent, returning the estimated output.

        Raises:
            InvalidSourceChain: The intent does not originate on this chain
            InsufficientFinalityBuffer: deadline < now + min_confirmation_blocks
        """
        if intent.source_chain != self.chain.chain_id:
            raise InvalidSourceChain(
                f"intent source chain {intent.source_chain} != deployment chain {self.chain.chain_id}"
            )
        if intent.deadline < now + self.chain.min_confirmation_blocks:
            raise InsufficientFinalityBuffer(
                f"deadline {intent.deadline} leaves less than {self.chain.min_confirmation_blocks} for finality"
            )

        mode = self.mode
        estimate = estimate_output(intent.amount_in, mode)
        nonce = self.next_nonce
        record = SettlementRecord(nonce=nonce, intent=intent, mode=mode, estimated_out=estimate)
        self.pending[nonce] = record
        self.next_nonce = nonce + 1

        _HANDLERS[mode](self, record, block_number, emit)

        emit(
            "CrossChainIntentCreated",
            nonce=nonce,
            user=intent.user,
            source_chain=intent.source_chain,
            target_chain=intent.target_chain,
            token_in=intent.token_in,
            token_out=intent.token_out,
            amount_in=intent.amount_in,
        )
        return estimate

    def get_settlement(self, nonce: int) -> SettlementRecord:
        record = self.pending.get(nonce)
        if record is None:
            raise UnknownSettlement(f"no settlement with nonce {nonce}")
        return record

    def challenge_settlement(
        self,
        nonce: int,
        disputed_state: str,
        *,
        challenger: str,
        block_number: int,
        emit: EventSink = _discard,
    ) -> int:
        """
        Open a BoLD dispute against a recorded settlement.

        Returns:
            The block at which the dispute window closes

        Raises:
            DisputesDisabled: The chain does not run BoLD
            UnknownSettlement: No settlement with this nonce
            SettlementAlreadyChallenged: A dispute is already open
            InvalidDisputedState: disputed_state is not 32 bytes of hex
        """
        if not self.chain.bold_enabled:
            raise DisputesDisabled(f"BoLD is not enabled on chain {self.chain.chain_id}")
        record = self.get_settlement(nonce)
        if record.status == SettlementStatus.CHALLENGED:
            raise SettlementAlreadyChallenged(f"settlement {nonce} already challenged by {record.challenger}")

        try:
            disputed = canonical_hex_fixed_allow_0x(disputed_state, nbytes=32, name="disputed_state")
        except (TypeError, ValueError) as exc:
            raise InvalidDisputedState(str(exc)) from exc
        deadline = block_number + self.dispute_window_blocks
        record.status = SettlementStatus.CHALLENGED
        record.challenger = challenger
        record.disputed_state = disputed
        record.challenge_deadline_block = deadline
        emit("DisputeRaised", nonce=nonce, challenger=challenger, disputed_state=disputed)
        return deadline

    def handle_sequencer_offline(
        self,
        last_block_time: int,
        *,
        now: int,
        block_number: int,
        emit: EventSink = _discard,
    ) -> bool:
        """Flip to fallback mode when the sequencer has been silent past the timeout."""
        if now - last_block_time > SEQUENCER_TIMEOUT_SECONDS:
            self.sequencer_offline = True
            self.fallback_mode = True
            emit("SequencerFallback", offline=True, last_update_block=block_number)
        return self.sequencer_offline

    # -- rollback support -----------------------------------------------------

    def checkpoint(self, *nonces: int) -> "SettlementCheckpoint":
        """Capture the counters plus copies of the given (existing) records."""
        return SettlementCheckpoint(
            next_nonce=self.next_nonce,
            sequencer_offline=self.sequencer_offline,
            fallback_mode=self.fallback_mode,
            records={n: copy.copy(self.pending[n]) for n in nonces if n in self.pending},
        )

    def rollback(self, cp: "SettlementCheckpoint") -> None:
        for nonce in [n for n in self.pending if n >= cp.next_nonce]:
            del self.pending[nonce]
        for nonce, saved in cp.records.items():
            vars(self.pending[nonce]).update(vars(saved))
        self.next_nonce = cp.next_nonce
        self.sequencer_offline = cp.sequencer_offline
        self.fallback_mode = cp.fallback_mode


@dataclass(frozen=True)
class SettlementCheckpoint:
    next_nonce: int
    sequencer_offline: bool
    fallback_mode: bool
    records: Mapping[int, SettlementRecord]
