"""
Freshness markers: when each query key was last refreshed from the catalog.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from ..domain.entities import QueryKey


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FreshnessTracker:
    """
    In-memory map of QueryKey -> last successful refresh time.

    Only the refresh cycle of a key writes its marker; the read path only
    looks at it.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._markers: Dict[QueryKey, datetime] = {}

    def now(self) -> datetime:
        return self._clock()

    def get(self, key: QueryKey) -> Optional[datetime]:
        return self._markers.get(key)

    def is_fresh(self, key: QueryKey, ttl_seconds: int) -> bool:
        """True when the key was refreshed less than ttl_seconds ago."""
        marker = self._markers.get(key)
        if marker is None or ttl_seconds <= 0:
            return False
        return self.now() - marker < timedelta(seconds=ttl_seconds)

    def mark(self, key: QueryKey, refreshed_at: Optional[datetime] = None) -> datetime:
        refreshed_at = refreshed_at or self.now()
        self._markers[key] = refreshed_at
        return refreshed_at

    def __len__(self) -> int:
        return len(self._markers)
