"""Per-process TTL cache for provider metadata."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Optional

from chaptertrack_contracts import MetadataCandidate


class MetadataCache:
    """Bounded TTL cache of candidates keyed by external id.

    Oldest entries are evicted first once ``max_entries`` is reached.

    Args:
        ttl_seconds: Entry lifetime
        max_entries: Maximum number of cached candidates
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, MetadataCandidate]] = OrderedDict()

    def get(self, external_id: str) -> Optional[MetadataCandidate]:
        entry = self._entries.get(external_id)
        if entry is None:
            return None
        expires_at, candidate = entry
        if self._clock() >= expires_at:
            del self._entries[external_id]
            return None
        return candidate

    def set(self, candidate: MetadataCandidate) -> None:
        self._entries.pop(candidate.external_id, None)
        while len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
        self._entries[candidate.external_id] = (self._clock() + self.ttl_seconds, candidate)

    def invalidate(self, external_id: str) -> None:
        self._entries.pop(external_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
