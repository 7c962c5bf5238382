"""Stored objects: a value together with its type, encoding and access clock."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ObjType(Enum):
    """Kind of value held by an object."""

    STRING = "string"
    INT = "int"
    JSON = "json"
    BYTE_ARRAY = "bytearray"
    SET = "set"
    HASH = "hash"


class ObjEncoding(Enum):
    """How the value of an object is represented."""

    RAW = "raw"
    INT = "int"
    EMBSTR = "embstr"
    JSON = "json"


@dataclass(eq=False)
class Obj:
    """A stored value.

    Objects compare and hash by identity, so each one can carry its own expiry
    entry even when two hold equal values.
    """

    value: Any = None
    obj_type: ObjType = ObjType.STRING
    encoding: ObjEncoding = ObjEncoding.RAW
    last_accessed_at: int = 0

    def is_json(self) -> bool:
        """Report whether the object holds a decoded JSON document."""
        return self.obj_type is ObjType.JSON and self.encoding is ObjEncoding.JSON