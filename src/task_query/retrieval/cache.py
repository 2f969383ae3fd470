"""Memoized filter + score results per index snapshot and configuration."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from threading import Lock

from cachetools import LRUCache

from task_query.config import FilterSet
from task_query.types import FilterOutcome, ParsedQuery, ScoredTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CachedScores:
    outcome: FilterOutcome
    scored: tuple[ScoredTask, ...]


class ScoreCache:
    """LRU cache of scored task sets.

    Entries belong to one (snapshot version, base config fingerprint)
    generation; seeing a different generation clears every entry. Per-request
    overrides (inclusions, sort order) are part of the entry key instead, so
    they never invalidate other entries. Safe to share across threads.
    """

    def __init__(self, max_entries: int = 128) -> None:
        self.max_entries = max_entries
        self._generation: tuple[int, str] | None = None
        self._entries: LRUCache[str, CachedScores] = LRUCache(maxsize=max_entries)
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(
        self,
        *,
        version: int,
        fingerprint: str,
        query: ParsedQuery,
        filters: FilterSet,
        today: date,
        sort_order: Sequence[str] = (),
    ) -> CachedScores | None:
        key = cache_key(query, filters, today, sort_order)
        with self._lock:
            self._check_generation(version, fingerprint)
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            self.hits += 1
        logger.debug(f"Score cache hit for snapshot v{version}")
        return entry

    def put(
        self,
        *,
        version: int,
        fingerprint: str,
        query: ParsedQuery,
        filters: FilterSet,
        today: date,
        entry: CachedScores,
        sort_order: Sequence[str] = (),
    ) -> None:
        key = cache_key(query, filters, today, sort_order)
        with self._lock:
            self._check_generation(version, fingerprint)
            self._entries[key] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _check_generation(self, version: int, fingerprint: str) -> None:
        # Caller holds the lock.
        generation = (version, fingerprint)
        if generation != self._generation:
            if self._entries:
                logger.debug("Index snapshot or configuration changed; clearing score cache")
            self._entries.clear()
            self._generation = generation


def cache_key(
    query: ParsedQuery, filters: FilterSet, today: date, sort_order: Sequence[str] = ()
) -> str:
    payload = query.as_dict()
    payload.pop("original_query", None)
    payload.pop("source", None)
    payload["filters"] = filters.model_dump()
    payload["sort_order"] = list(sort_order)
    payload["today"] = today.isoformat()
    return json.dumps(payload, sort_keys=True, default=str)
