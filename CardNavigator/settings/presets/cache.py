"""Bounded least-recently-used cache of loaded presets."""
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from .preset import Preset

CACHE_CAPACITY: int = 50


@dataclass
class CacheEntry:
    name: str
    preset: Preset
    last_access: float
    seq: int


class PresetCache:
    """Keep up to ``capacity`` presets in memory.

    Reads and writes both refresh an entry's access time. When full, the entry with the
    oldest access is evicted; a strictly increasing sequence number breaks ties between
    equal timestamps. All methods are safe to call from worker threads.

    Presets are copied on the way in and out so callers never share state with the cache.
    """

    def __init__(self, capacity: int = CACHE_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError('Cache capacity must be at least 1.')
        self._capacity = capacity
        self._entries: Dict[str, CacheEntry] = {}
        self._counter = itertools.count()
        self._lock = threading.RLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._entries

    def _touch(self, entry: CacheEntry) -> None:
        entry.last_access = time.monotonic()
        entry.seq = next(self._counter)

    def get(self, name: str) -> Optional[Preset]:
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                return None
            self._touch(entry)
            return entry.preset.copy()

    def put(self, name: str, preset: Preset) -> None:
        with self._lock:
            entry = self._entries.get(name)
            if entry is not None:
                entry.preset = preset.copy()
                self._touch(entry)
                return

            if len(self._entries) >= self._capacity:
                self._evict()
            self._entries[name] = CacheEntry(name, preset.copy(), time.monotonic(), next(self._counter))

    def _evict(self) -> None:
        oldest = min(self._entries.values(), key=lambda e: (e.last_access, e.seq))
        del self._entries[oldest.name]
        logging.debug(f'Evicted preset "{oldest.name}" from cache')

    def invalidate(self, name: str) -> None:
        with self._lock:
            self._entries.pop(name, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def names(self) -> List[str]:
        """Return cached names, least recently used first."""
        with self._lock:
            entries = sorted(self._entries.values(), key=lambda e: (e.last_access, e.seq))
            return [e.name for e in entries]
