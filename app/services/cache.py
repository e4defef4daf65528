"""
Account Cache - Short-lived read cache for account snapshots keyed by email.

The clock is injected so staleness and invalidation are testable without
sleeping. One instance lives on the application state and is handed to
every ledger; ledger writes invalidate entries synchronously.
"""

import time
from collections.abc import Callable

from app.models.domain import AccountData

Clock = Callable[[], float]


class AccountCache:
    """TTL cache of AccountData keyed by normalized email."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 10000,
        clock: Clock = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError(f"TTL cannot be negative: {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[AccountData, float]] = {}

    @staticmethod
    def _key(email: str) -> str:
        return email.strip().lower()

    def get(self, email: str) -> AccountData | None:
        """Return a fresh cached account, evicting it if stale."""
        key = self._key(email)
        entry = self._entries.get(key)
        if entry is None:
            return None
        account, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return account

    def set(self, account: AccountData) -> None:
        """Cache an account snapshot until now + TTL."""
        if self.ttl_seconds == 0:
            return
        if len(self._entries) >= self.max_entries:
            self._evict_expired()
        if len(self._entries) >= self.max_entries:
            # Still full: drop the entry closest to expiry
            oldest = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[oldest]
        self._entries[self._key(account.email)] = (account, self._clock() + self.ttl_seconds)

    def invalidate(self, email: str) -> None:
        """Drop one account's entry."""
        self._entries.pop(self._key(email), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
        for k in expired:
            del self._entries[k]
