"""Key eviction: access clocks, LFU counters and the pool of eviction candidates."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from dicekv.clock import get_current_time

CLOCK_MASK = 0x00FFFFFF
COUNTER_MASK = 0xFF000000
MAX_LOG_COUNTER = 255
EPOOL_SIZE_MAX = 16
_SAMPLE_SIZE = 5


class EvictionPolicy(Enum):
    """Strategy used to free space when the key limit is reached."""

    SIMPLE_FIRST = "simple-first"
    ALL_KEYS_RANDOM = "allkeys-random"
    ALL_KEYS_LRU = "allkeys-lru"
    ALL_KEYS_LFU = "allkeys-lfu"


@dataclass
class EvictionSettings:
    """Limits and tuning for eviction."""

    policy: EvictionPolicy = EvictionPolicy.ALL_KEYS_LRU
    keys_limit: int = 10000
    eviction_ratio: float = 0.1
    lfu_log_factor: int = 10


def get_current_clock() -> int:
    """Current Unix time in seconds, truncated to 24 bits."""
    return math.floor(get_current_time().timestamp()) & CLOCK_MASK


def get_lfu_log_counter(last_accessed_at: int) -> int:
    """The 8-bit access counter kept in the top byte of an access field."""
    return (last_accessed_at & COUNTER_MASK) >> 24


def get_last_accessed_at(last_accessed_at: int) -> int:
    """The 24-bit clock part of an access field."""
    return last_accessed_at & CLOCK_MASK


def _incr_log_counter(counter: int, lfu_log_factor: int) -> int:
    # The larger the counter, the less likely it is to grow further.
    if counter == MAX_LOG_COUNTER:
        return MAX_LOG_COUNTER
    denominator = (counter * (lfu_log_factor & 0xFF) + 1) & 0xFF
    approx = math.inf if denominator == 0 else 1.0 / denominator
    if approx > random.random():
        counter += 1
    return counter


def update_lfu_last_accessed_at(
    last_accessed_at: int, settings: Optional[EvictionSettings] = None
) -> int:
    """Bump the probabilistic counter and stamp the current clock."""
    settings = settings or EvictionSettings()
    counter = _incr_log_counter(get_lfu_log_counter(last_accessed_at), settings.lfu_log_factor)
    return (counter << 24) | get_current_clock()


def update_last_accessed_at(
    last_accessed_at: int, settings: Optional[EvictionSettings] = None
) -> int:
    """Return the new access field for a touched object."""
    settings = settings or EvictionSettings()
    if settings.policy is EvictionPolicy.ALL_KEYS_LFU:
        return update_lfu_last_accessed_at(last_accessed_at, settings)
    return get_current_clock()


def get_idle_time(last_accessed_at: int) -> int:
    """Seconds since the object was last accessed, allowing for clock wrap-around."""
    now = get_current_clock()
    last = last_accessed_at & CLOCK_MASK
    if now >= last:
        return now - last
    return (CLOCK_MASK - last) + now


@dataclass
class PoolItem:
    key: str
    last_accessed_at: int


@dataclass
class EvictionPool:
    """Ordered candidates for eviction; the head is evicted first."""

    policy: EvictionPolicy = EvictionPolicy.ALL_KEYS_LRU
    max_size: int = EPOOL_SIZE_MAX
    entries: list[PoolItem] = field(default_factory=list)
    _keyset: dict[str, PoolItem] = field(default_factory=dict, repr=False)

    def _is_lfu(self) -> bool:
        return self.policy is EvictionPolicy.ALL_KEYS_LFU

    def _sort(self) -> None:
        if self._is_lfu():
            self.entries.sort(
                key=lambda it: (
                    get_lfu_log_counter(it.last_accessed_at),
                    -get_idle_time(it.last_accessed_at),
                )
            )
        else:
            self.entries.sort(key=lambda it: -get_idle_time(it.last_accessed_at))

    def _should_replace_head(self, last_accessed_at: int) -> bool:
        head = self.entries[0].last_accessed_at
        if self._is_lfu():
            counter, head_counter = get_lfu_log_counter(last_accessed_at), get_lfu_log_counter(head)
            if counter < head_counter:
                return True
            if counter == head_counter:
                return get_last_accessed_at(last_accessed_at) > get_last_accessed_at(head)
            return False
        return last_accessed_at > head

    def push(self, key: str, last_accessed_at: int) -> None:
        """Offer a key as an eviction candidate; keys already present are ignored."""
        if key in self._keyset:
            return
        item = PoolItem(key, last_accessed_at)
        if len(self.entries) < self.max_size:
            self._keyset[key] = item
            self.entries.append(item)
            self._sort()
        elif self._should_replace_head(last_accessed_at):
            head = self.entries.pop(0)
            self._keyset.pop(head.key, None)
            self._keyset[key] = item
            self.entries.append(item)

    def pop(self) -> Optional[PoolItem]:
        """Remove and return the head candidate, or None if the pool is empty."""
        if not self.entries:
            return None
        item = self.entries.pop(0)
        self._keyset.pop(item.key, None)
        return item

    def __len__(self) -> int:
        return len(self.entries)


def populate_eviction_pool(store: Any) -> None:
    """Sample a few keys of ``store`` into its eviction pool."""
    remaining = _SAMPLE_SIZE
    for key, obj in store.items():
        store.eviction_pool.push(key, obj.last_accessed_at)
        remaining -= 1
        if remaining <= 0:
            break


def _evict_first(store: Any) -> None:
    for key, _ in store.items():
        store.delete(key)
        break


def _evict_count(settings: EvictionSettings) -> int:
    return int(settings.eviction_ratio * float(settings.keys_limit))


def _evict_all_keys_random(store: Any) -> None:
    remaining = _evict_count(store.settings)
    for key, _ in store.items():
        store.delete(key)
        remaining -= 1
        if remaining <= 0:
            break


def _evict_all_keys_lru_or_lfu(store: Any) -> None:
    populate_eviction_pool(store)
    for _ in range(_evict_count(store.settings)):
        item = store.eviction_pool.pop()
        if item is None:
            return
        store.delete(item.key)


def evict(store: Any) -> None:
    """Free space in ``store`` according to its eviction policy."""
    policy = store.settings.policy
    if policy is EvictionPolicy.SIMPLE_FIRST:
        _evict_first(store)
    elif policy is EvictionPolicy.ALL_KEYS_RANDOM:
        _evict_all_keys_random(store)
    elif policy in (EvictionPolicy.ALL_KEYS_LRU, EvictionPolicy.ALL_KEYS_LFU):
        _evict_all_keys_lru_or_lfu(store)