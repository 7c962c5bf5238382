"""Append-only file of operations."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterable
from typing import Any

from dicekv.obj import Obj

FILE_MODE = 0o644

_log = logging.getLogger(__name__)


class AOF:
    """A file to which operations are appended one per line, durably."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = os.fspath(path)
        fd = os.open(self.path, os.O_APPEND | os.O_CREAT | os.O_WRONLY, FILE_MODE)
        self._file = os.fdopen(fd, "a", encoding="utf-8", newline="")
        self._lock = threading.Lock()

    def write(self, operation: str) -> None:
        """Append one operation and sync it to disk."""
        with self._lock:
            self._file.write(operation + "\n")
            self._file.flush()
            os.fsync(self._file.fileno())

    def close(self) -> None:
        with self._lock:
            if not self._file.closed:
                self._file.flush()
                self._file.close()

    def load(self) -> list[str]:
        """Read back every line of the file, without line terminators."""
        with open(self.path, "rb") as handle:
            text = handle.read().decode("utf-8", errors="surrogateescape")
        lines = text.split("\n")
        if lines[-1] == "":
            lines.pop()
        return [line[:-1] if line.endswith("\r") else line for line in lines]

    def __enter__(self) -> "AOF":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def _encode_string(value: str) -> bytes:
    data = value.encode("utf-8")
    return b"$%d\r\n" % len(data) + data + b"\r\n"


def encode(tokens: Iterable[str]) -> bytes:
    """Encode tokens as an array of bulk strings."""
    items = list(tokens)
    return b"*%d\r\n" % len(items) + b"".join(_encode_string(t) for t in items)


def _dump_key(aof: AOF, key: str, obj: Obj) -> None:
    value = obj.value if isinstance(obj.value, str) else str(obj.value)
    tokens = f"SET {key} {value}".split(" ")
    aof.write(encode(tokens).decode("utf-8"))


def dump_all(store: Any, path: str | os.PathLike[str]) -> None:
    """Append a SET record for every key in ``store`` to the file at ``path``."""
    with AOF(path) as aof:
        _log.info("rewriting AOF file at %s", os.fspath(path))
        for key, obj in store.items():
            _dump_key(aof, key, obj)
        _log.info("AOF file rewrite complete")