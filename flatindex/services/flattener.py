"""Flatten nested JSON documents into ordered (path, value) pairs.

Rendering rules:
- Object keys are joined with "."; array elements use their index with the
  same separator ("tags.0", "items.1.name").
- Every terminal scalar yields exactly one pair, in document order.
- null renders as the literal "null"; booleans as "true"/"false".
- Integers render in decimal. Floats use the shortest round-trip repr, and
  integral floats drop the fraction ("3.0" -> "3"). NaN and infinities are
  rejected.
- datetime renders as ISO-8601 UTC with millisecond precision and a "Z"
  suffix; naive datetimes are taken as UTC. date renders as YYYY-MM-DD.
- Empty objects and arrays have no leaves and yield nothing.
- A scalar document yields a single pair with the empty path.

Anything else raises MalformedDocument carrying the offending path.
"""

import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterator, Literal, NamedTuple
from uuid import UUID

from ..exceptions import MalformedDocument

PATH_SEPARATOR = "."

ValueKind = Literal["null", "bool", "number", "string", "array", "object"]


class FlatPair(NamedTuple):
    """A single flattened leaf."""

    path: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "value": self.value}


def value_kind(value: Any, path: str = "") -> ValueKind:
    """Classify a JSON-like value into its variant."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float, Decimal)):
        return "number"
    if isinstance(value, (str, datetime, date, UUID)):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    raise MalformedDocument(path, f"unsupported type {type(value).__name__}")


def render_scalar(value: Any, path: str = "") -> str:
    """Render a leaf value canonically."""
    kind = value_kind(value, path)
    if kind == "null":
        return "null"
    if kind == "bool":
        return "true" if value else "false"
    if kind == "number":
        return _render_number(value, path)
    if kind == "string":
        return _render_string(value)
    raise MalformedDocument(path, f"{kind} is not a scalar")


def _render_number(value: Any, path: str) -> str:
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise MalformedDocument(path, "non-finite number")
        if value == value.to_integral_value():
            return format(value.to_integral_value(), "f")
        return format(value.normalize(), "f")
    if not math.isfinite(value):
        raise MalformedDocument(path, "non-finite number")
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _render_string(value: Any) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _join(prefix: str, key: str) -> str:
    return f"{prefix}{PATH_SEPARATOR}{key}" if prefix else key


def iter_leaves(value: Any, prefix: str = "") -> Iterator[FlatPair]:
    """Walk a document depth-first, yielding leaves in document order."""
    kind = value_kind(value, prefix)
    if kind == "object":
        for key, child in value.items():
            if not isinstance(key, str):
                raise MalformedDocument(prefix, f"non-string key {key!r}")
            yield from iter_leaves(child, _join(prefix, key))
    elif kind == "array":
        for index, child in enumerate(value):
            yield from iter_leaves(child, _join(prefix, str(index)))
    else:
        yield FlatPair(prefix, render_scalar(value, prefix))


def flatten(document: Any) -> list[FlatPair]:
    """Flatten a document into its ordered list of leaf pairs."""
    return list(iter_leaves(document))


def flatten_to_dicts(document: Any) -> list[dict[str, str]]:
    """Flatten into the wire shape [{"path": ..., "value": ...}, ...]."""
    return [pair.to_dict() for pair in iter_leaves(document)]
