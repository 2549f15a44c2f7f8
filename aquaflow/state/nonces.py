"""
Nonce table for replay protection.

We track, per user address, the next expected intent nonce. Policy is strict
sequential nonces: an intent is accepted only if its nonce equals the stored
value, which then advances by exactly one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping

from .canonical import canonical_address


@dataclass
class NonceTable:
    """
    Mutable mapping: user address -> next expected nonce (default 0).
    """

    _next: Dict[str, int] = field(default_factory=dict)

    def get_next(self, user: str) -> int:
        addr = canonical_address(user, name="user")
        v = self._next.get(addr, 0)
        if not isinstance(v, int) or isinstance(v, bool) or v < 0:
            raise ValueError(f"invalid stored nonce for {user!r}: {v!r}")
        return int(v)

    def advance(self, user: str) -> int:
        """Consume the current nonce and return the new expected value."""
        addr = canonical_address(user, name="user")
        nxt = self.get_next(addr) + 1
        self._next[addr] = nxt
        return nxt

    def set_next(self, user: str, next_nonce: int) -> None:
        if not isinstance(next_nonce, int) or isinstance(next_nonce, bool) or next_nonce < 0:
            raise TypeError("next_nonce must be a non-negative int")
        self._next[canonical_address(user, name="user")] = int(next_nonce)

    def get_all(self) -> Mapping[str, int]:
        # Return a shallow copy to avoid accidental mutation during iteration.
        return dict(self._next)
