"""
Bounded in-memory cache of embeddings keyed by (text, model_id).

Entries from different models never collide. Eviction is least recently
used once max_size is reached; an optional TTL expires stale entries.
"""

import hashlib
import logging
import threading
import time
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Optional

from ragcore.retrieval.models import EmbeddingVector

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    vector: EmbeddingVector
    model_id: str
    created_at: float


@dataclass
class CacheStats:
    """Snapshot of cache occupancy."""

    size: int
    model_distribution: dict[str, int] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


def cache_key(text: str, model_id: str) -> str:
    """Hash (model_id, text) into a fixed-size cache key."""
    digest = hashlib.sha256()
    digest.update(model_id.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(text.encode("utf-8"))
    return digest.hexdigest()


class EmbeddingCache:
    """
    Thread-safe LRU cache of embedding vectors.

    A hit returns the identical EmbeddingVector object that was stored.

    Example:
        >>> cache = EmbeddingCache(max_size=2)
        >>> cache.set("hello", "BAAI/bge-small-en-v1.5", vector)
        >>> cache.get("hello", "BAAI/bge-small-en-v1.5") is vector
        True
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries before LRU eviction
            ttl_seconds: Expire entries older than this (None = never)
            clock: Monotonic time source in seconds
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return self.ttl_seconds is not None and now - entry.created_at > self.ttl_seconds

    def get(self, text: str, model_id: str) -> Optional[EmbeddingVector]:
        """Return the cached vector for (text, model_id), or None."""
        key = cache_key(text, model_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.vector

    def set(self, text: str, model_id: str, vector: EmbeddingVector) -> None:
        """Store a vector, evicting the least recently used entry when full."""
        key = cache_key(text, model_id)
        with self._lock:
            self._entries[key] = CacheEntry(vector=vector, model_id=model_id, created_at=self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        """Remove every entry for every model."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.info("Embedding cache cleared")

    def clear_model(self, model_id: str) -> int:
        """Remove only the entries of one model. Returns the number removed."""
        with self._lock:
            keys = [key for key, entry in self._entries.items() if entry.model_id == model_id]
            for key in keys:
                del self._entries[key]
        logger.info(f"Cleared {len(keys)} cached embeddings for {model_id}")
        return len(keys)

    def clear_expired(self) -> int:
        """Purge entries past their TTL. Returns the number removed."""
        if self.ttl_seconds is None:
            return 0
        now = self._clock()
        with self._lock:
            keys = [key for key, entry in self._entries.items() if self._expired(entry, now)]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug(f"Purged {len(keys)} expired embeddings")
        return len(keys)

    def get_stats(self) -> CacheStats:
        """Return size, per-model entry counts and hit/miss counters."""
        with self._lock:
            distribution = Counter(entry.model_id for entry in self._entries.values())
            return CacheStats(
                size=len(self._entries),
                model_distribution=dict(distribution),
                hits=self._hits,
                misses=self._misses,
            )
