"""
In-process cache for context results.

Entries expire after a TTL and the oldest entry is evicted once the cache is
full. Keys are SHA-256 digests of the query, its scope and the retrieval
config, so equal requests hit the same entry.
"""

import hashlib
import json
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .models import ContextResult, RetrievalConfig, SearchQuery


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        return self.hits / self.total_requests if self.total_requests else 0.0


class ResultCache:
    """TTL-bounded cache for ContextResult values"""

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_items: int = 1000,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self.max_items = max_items
        self.clock = clock
        self.stats = CacheStats()
        self._entries: Dict[str, Tuple[float, ContextResult]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def make_key(query: SearchQuery, config: RetrievalConfig) -> str:
        """Generate cache key for a query under a config"""
        filters = query.filters
        payload = json.dumps(
            [
                query.text,
                query.subject_id,
                list(query.document_ids),
                query.knowledge_base_id,
                list(filters.difficulty_range) if filters.difficulty_range else None,
                filters.chapter,
                list(filters.topics),
                list(config.cache_key_parts()),
            ],
            default=str,
        )
        digest = hashlib.sha256(payload.encode()).hexdigest()
        return f"context:{digest}"

    def get(self, key: str) -> Optional[ContextResult]:
        entry = self._entries.get(key)
        if entry is not None:
            stored_at, result = entry
            if self.clock() - stored_at < self.ttl_seconds:
                self.stats.hits += 1
                return result
            del self._entries[key]

        self.stats.misses += 1
        return None

    def set(self, key: str, result: ContextResult) -> None:
        """Store a result; empty results are never cached."""
        if not result.chunks or self.max_items <= 0:
            return

        self._entries.pop(key, None)
        while len(self._entries) >= self.max_items:
            # Remove oldest entry
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]

        self._entries[key] = (self.clock(), result)

    def invalidate(self) -> None:
        """Clear cache"""
        self._entries.clear()
