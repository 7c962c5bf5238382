"""The key-value store: objects, expiry, eviction and change notification."""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from dicekv.clock import get_current_time
from dicekv.eviction import (
    EvictionPool,
    EvictionSettings,
    evict,
    get_current_clock,
    update_last_accessed_at,
)
from dicekv.executor import QueryExecutionError, QueryResultRow, evaluate_where_clause
from dicekv.obj import Obj, ObjEncoding, ObjType

_EXPIRE_SAMPLE_LIMIT = 20


class Operation(Enum):
    SET = "set"
    DEL = "del"


@dataclass
class WatchEvent:
    """A change to a key, sent to whoever watches the store."""

    key: str
    operation: Operation
    value: Obj


def _now_ms() -> int:
    return math.floor(get_current_time().timestamp() * 1000)


def _bad_pattern() -> ValueError:
    return ValueError("syntax error in pattern")


def _class_char(pattern: str, i: int) -> tuple[str, int]:
    if i >= len(pattern) or pattern[i] in "-]":
        raise _bad_pattern()
    if pattern[i] == "\\":
        i += 1
        if i >= len(pattern):
            raise _bad_pattern()
    return pattern[i], i + 1


def _char_class(pattern: str, i: int) -> tuple[str, int]:
    negated = i < len(pattern) and pattern[i] == "^"
    if negated:
        i += 1
    ranges: list[tuple[str, str]] = []
    while True:
        if i < len(pattern) and pattern[i] == "]" and ranges:
            i += 1
            break
        lo, i = _class_char(pattern, i)
        hi = lo
        if i < len(pattern) and pattern[i] == "-":
            hi, i = _class_char(pattern, i + 1)
        ranges.append((lo, hi))
    body = "".join(f"{re.escape(lo)}-{re.escape(hi)}" for lo, hi in ranges if lo <= hi)
    if not body:
        return ("." if negated else "(?!)"), i
    return f"[{'^' if negated else ''}{body}]", i


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    """Translate a shell-style pattern where wildcards do not cross '/'."""
    out: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "*":
            out.append("[^/]*")
            i += 1
        elif char == "?":
            out.append("[^/]")
            i += 1
        elif char == "\\":
            if i + 1 >= len(pattern):
                raise _bad_pattern()
            out.append(re.escape(pattern[i + 1]))
            i += 2
        elif char == "[":
            fragment, i = _char_class(pattern, i + 1)
            out.append(fragment)
        else:
            out.append(re.escape(char))
            i += 1
    return re.compile("".join(out), re.DOTALL)


class Store:
    """Keys mapped to objects, with per-object expiry times in Unix milliseconds."""

    def __init__(self, watch_queue: Any = None, settings: Optional[EvictionSettings] = None) -> None:
        self.watch_queue = watch_queue
        self.settings = settings or EvictionSettings()
        self.eviction_pool = EvictionPool(policy=self.settings.policy)
        self.stats: dict[str, int] = {}
        self._data: dict[str, Obj] = {}
        self._expires: dict[Obj, int] = {}

    def _notify(self, key: str, operation: Operation, obj: Obj) -> None:
        if self.watch_queue is not None:
            self.watch_queue.put(WatchEvent(key, operation, copy.copy(obj)))

    def new_obj(
        self,
        value: Any,
        exp_duration_ms: int = -1,
        obj_type: ObjType = ObjType.STRING,
        encoding: ObjEncoding = ObjEncoding.RAW,
    ) -> Obj:
        """Create an object; a non-negative duration sets its expiry."""
        obj = Obj(value=value, obj_type=obj_type, encoding=encoding,
                  last_accessed_at=get_current_clock())
        if exp_duration_ms >= 0:
            self.set_expiry(obj, exp_duration_ms)
        return obj

    def put(self, key: str, obj: Obj, keep_ttl: bool = False) -> None:
        """Store ``obj`` under ``key``, evicting first if the key limit is reached."""
        if len(self._data) >= self.settings.keys_limit:
            evict(self)
        obj.last_accessed_at = get_current_clock()
        current = self._data.get(key)
        if current is not None:
            ttl = self._expires.get(current)
            if ttl is not None and keep_ttl and ttl > 0:
                self._expires[obj] = ttl
            self._expires.pop(current, None)
        self._data[key] = obj
        self.stats["keys"] = self.stats.get("keys", 0) + 1
        self._notify(key, Operation.SET, obj)

    def put_all(self, data: Mapping[str, Obj]) -> None:
        for key, obj in data.items():
            self.put(key, obj)

    def _get(self, key: str, touch: bool) -> Optional[Obj]:
        obj = self._data.get(key)
        if obj is None:
            return None
        if self.has_expired(obj):
            self._delete_key(key, obj)
            return None
        if touch:
            obj.last_accessed_at = update_last_accessed_at(obj.last_accessed_at, self.settings)
        return obj

    def get(self, key: str) -> Optional[Obj]:
        """Return the live object for ``key`` and record the access."""
        return self._get(key, touch=True)

    def get_no_touch(self, key: str) -> Optional[Obj]:
        """Return the live object for ``key`` without recording the access."""
        return self._get(key, touch=False)

    def get_all(self, keys: Iterable[str]) -> list[Optional[Obj]]:
        return [self._get(key, touch=True) for key in keys]

    def get_del(self, key: str) -> Optional[Obj]:
        """Remove ``key`` and return its object unless it had expired."""
        obj = self._data.get(key)
        if obj is None:
            return None
        expired = self.has_expired(obj)
        self._delete_key(key, obj)
        return None if expired else obj

    def _delete_key(self, key: str, obj: Obj) -> bool:
        del self._data[key]
        self._expires.pop(obj, None)
        self.stats["keys"] = self.stats.get("keys", 0) - 1
        self._notify(key, Operation.DEL, obj)
        return True

    def delete(self, key: str) -> bool:
        obj = self._data.get(key)
        if obj is None:
            return False
        return self._delete_key(key, obj)

    def keys(self, pattern: str) -> list[str]:
        """Keys matching a glob pattern. Raises ``ValueError`` for a malformed pattern."""
        compiled = _compile_pattern(pattern)
        return [key for key in self._data if compiled.fullmatch(key)]

    def db_size(self) -> int:
        return len(self._data)

    def rename(self, source_key: str, dest_key: str) -> bool:
        """Move the object at ``source_key`` to ``dest_key``; False if the source is missing."""
        if source_key == dest_key:
            return True
        source = self._data.get(source_key)
        if source is None or self.has_expired(source):
            if source is not None:
                self._delete_key(source_key, source)
            return False
        self.put(dest_key, source)
        self._data.pop(source_key, None)
        self.stats["keys"] = self.stats.get("keys", 0) - 1
        self._notify(source_key, Operation.DEL, source)
        return True

    def set_expiry(self, obj: Obj, exp_duration_ms: int) -> None:
        self._expires[obj] = _now_ms() + exp_duration_ms

    def set_unix_time_expiry(self, obj: Obj, unix_time_sec: int) -> None:
        self._expires[obj] = unix_time_sec * 1000

    def get_expiry(self, obj: Obj) -> Optional[int]:
        """The expiry of ``obj`` in Unix milliseconds, or None if it has none."""
        return self._expires.get(obj)

    def del_expiry(self, obj: Obj) -> None:
        self._expires.pop(obj, None)

    def has_expired(self, obj: Obj) -> bool:
        expiry = self._expires.get(obj)
        return expiry is not None and expiry <= _now_ms()

    def reset(self) -> None:
        """Drop every key, expiry and eviction candidate."""
        self._data.clear()
        self._expires.clear()
        self.stats.clear()
        self.eviction_pool = EvictionPool(policy=self.settings.policy)

    def items(self) -> Iterator[tuple[str, Obj]]:
        """Iterate over a snapshot of (key, object) pairs."""
        yield from list(self._data.items())

    def cache_keys_for_query(self, where: Any) -> list[tuple[str, Obj]]:
        """Pairs whose key and value satisfy the WHERE expression."""
        matches: list[tuple[str, Obj]] = []
        for key, obj in self.items():
            try:
                matched = evaluate_where_clause(where, QueryResultRow(key, copy.copy(obj)), {})
            except QueryExecutionError:
                continue
            if matched:
                matches.append((key, obj))
        return matches

    def _expire_sample(self) -> float:
        limit = _EXPIRE_SAMPLE_LIMIT
        expired: list[str] = []
        for key, obj in self.items():
            limit -= 1
            if self.has_expired(obj):
                expired.append(key)
            if limit < 0:
                break
        for key in expired:
            self.delete(key)
        return len(expired) / _EXPIRE_SAMPLE_LIMIT

    def delete_expired_keys(self) -> None:
        """Actively remove expired keys by repeated sampling."""
        while self._expire_sample() >= 0.25:
            pass