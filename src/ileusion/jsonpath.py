"""Scalar lookups in JSON documents.

Paths use dotted field names and zero-based indexes, for example
``rows[0].status``, ``[2].NAME`` or ``$.value``.
"""

import json
import re
import struct
from typing import Any, List, Union

_TOKEN_RE = re.compile(r"""
    \[\s*(?P<index>-?\d+)\s*\]          # [0]
  | \[\s*'(?P<squoted>[^']*)'\s*\]       # ['field name']
  | \[\s*"(?P<dquoted>[^"]*)"\s*\]       # ["field name"]
  | (?P<name>[^.\[\]]+)                  # field
  | (?P<dot>\.)
""", re.VERBOSE)

PathPart = Union[str, int]


class TokenNotFoundError(KeyError):
    """Raised when a path does not resolve to a value."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        super().__init__(path)

    def __str__(self) -> str:
        message = f"No value found for path '{self.path}'"
        if self.reason:
            message += f": {self.reason}"
        return message


def parse_path(path: str) -> List[PathPart]:
    """Split a path into field names and integer indexes."""
    path = path.strip()
    if path.startswith("$"):
        path = path[1:]

    parts: List[PathPart] = []
    pos = 0
    while pos < len(path):
        match = _TOKEN_RE.match(path, pos)
        if not match:
            raise ValueError(f"Invalid path '{path}' at position {pos}")
        pos = match.end()

        if match.group("index") is not None:
            parts.append(int(match.group("index")))
        elif match.group("squoted") is not None:
            parts.append(match.group("squoted"))
        elif match.group("dquoted") is not None:
            parts.append(match.group("dquoted"))
        elif match.group("name") is not None:
            parts.append(match.group("name").strip())
    return parts


def select_token(data: Any, path: str) -> Any:
    """Walk ``data`` along ``path``.

    An empty path selects the whole document. Raises
    ``TokenNotFoundError`` when a field or index is missing.
    """
    current = data
    for part in parse_path(path):
        if isinstance(part, int):
            if not isinstance(current, list):
                raise TokenNotFoundError(path, f"index [{part}] applied to a non-array")
            if part < 0 or part >= len(current):
                raise TokenNotFoundError(path, f"index [{part}] out of range")
            current = current[part]
        else:
            if not isinstance(current, dict):
                raise TokenNotFoundError(path, f"field '{part}' applied to a non-object")
            if part not in current:
                raise TokenNotFoundError(path, f"field '{part}' not present")
            current = current[part]
    return current


def get_json_value(json_text: str, path: str) -> Any:
    """Parse ``json_text`` and return the raw value at ``path``."""
    if json_text is None or json_text.strip() == "":
        raise ValueError("No JSON data to search")
    return select_token(json.loads(json_text), path)


# Conversions mirror the loose casts callers expect from JSON tokens:
# numbers may arrive as strings and booleans as 0/1.

def as_string(value: Any) -> str:
    if value is None:
        raise TypeError("Value is null")
    if isinstance(value, (dict, list)):
        raise TypeError(f"Cannot convert {type(value).__name__} to string")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def as_int(value: Any) -> int:
    if value is None or isinstance(value, (dict, list)):
        raise TypeError(f"Cannot convert {type(value).__name__} to int")
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Value {value} is not a whole number")
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    return int(value)


def as_double(value: Any) -> float:
    if value is None or isinstance(value, (dict, list, bool)):
        raise TypeError(f"Cannot convert {type(value).__name__} to double")
    if isinstance(value, str):
        return float(value.strip())
    return float(value)


def as_float(value: Any) -> float:
    """Like ``as_double`` but rounded to single precision."""
    return struct.unpack("f", struct.pack("f", as_double(value)))[0]


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text == "true":
            return True
        if text == "false":
            return False
        raise ValueError(f"String '{value}' is not a boolean")
    raise TypeError(f"Cannot convert {type(value).__name__} to bool")
