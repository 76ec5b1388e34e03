"""In-memory TTL cache of the latest snapshot per fund code."""

import time
import threading

from app.config import SNAPSHOT_CACHE_TTL
from app.models.fund import FundSnapshot


class SnapshotCache:
    """Thread-safe snapshot store; entries expire ``ttl`` seconds after set."""

    def __init__(self, default_ttl: int = SNAPSHOT_CACHE_TTL):
        self._store: dict[str, tuple[FundSnapshot, float]] = {}
        self._default_ttl = default_ttl
        self._lock = threading.Lock()

    def get(self, fund_code: str) -> FundSnapshot | None:
        with self._lock:
            entry = self._store.get(fund_code)
            if entry is None:
                return None
            snapshot, expires_at = entry
            if time.time() > expires_at:
                del self._store[fund_code]
                return None
            return snapshot

    def set(self, snapshot: FundSnapshot, ttl: int | None = None) -> None:
        ttl = ttl if ttl is not None else self._default_ttl
        expires_at = time.time() + ttl
        with self._lock:
            self._store[snapshot.code] = (snapshot, expires_at)

    def snapshots(self, fund_codes: list[str]) -> list[FundSnapshot]:
        """Live snapshots for ``fund_codes``, in that order, skipping misses."""
        found = (self.get(code) for code in fund_codes)
        return [s for s in found if s is not None]

    def missing(self, fund_codes: list[str]) -> list[str]:
        return [code for code in fund_codes if self.get(code) is None]

    def delete(self, fund_code: str) -> None:
        with self._lock:
            self._store.pop(fund_code, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


# Global cache instance
snapshot_cache = SnapshotCache()
