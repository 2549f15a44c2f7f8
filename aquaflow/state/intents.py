"""
Intent data models.

An intent is a user's request to convert ``amount_in`` of one token into at
least ``min_amount_out`` of another before ``deadline``. Intents are never
stored: their only durable trace is the advanced nonce and the volume counters.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Intent:
    """
    Same-chain swap intent.

    Fields:
        user: Address that authorizes the swap (must equal the caller)
        token_in / token_out: Token addresses
        amount_in: Gross input amount
        min_amount_out: Lowest acceptable output
        deadline: Unix timestamp expiration
        max_slippage_bps: Bound on price impact (<= 1000)
        nonce: Must equal the user's next expected nonce
    """
    user: str
    token_in: str
    token_out: str
    amount_in: int
    min_amount_out: int
    deadline: int
    max_slippage_bps: int
    nonce: int


@dataclass(frozen=True)
class CrossChainIntent:
    """Intent executed on ``source_chain`` and settled towards ``target_chain``."""
    user: str
    source_chain: int
    target_chain: int
    token_in: str
    token_out: str
    amount_in: int
    min_amount_out: int
    deadline: int
    settlement_mode: Optional[int] = None
