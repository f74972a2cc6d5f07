"""Core utility functions shared across modules."""

from __future__ import annotations

import json
import time
from typing import Any, Dict

from .models import JSONValue


def clone_json(value: JSONValue) -> JSONValue:
    """Return a structural copy of a JSON-like value.

    Objects and arrays are rebuilt recursively; scalars are immutable and
    shared. The result never aliases a container of the input.

    Examples:
        >>> template = {"a": {"b": "$x"}, "c": [1, 2]}
        >>> copied = clone_json(template)
        >>> copied["a"]["b"] = 7
        >>> template["a"]["b"]
        '$x'
    """
    if isinstance(value, dict):
        return {key: clone_json(item) for key, item in value.items()}
    if isinstance(value, list):
        return [clone_json(item) for item in value]
    return value


def canonical_json(value: Any) -> bytes:
    """Serialize a value to compact JSON with sorted keys."""

    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def compact_json(document: Dict[str, Any]) -> bytes:
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


def unix_timestamp_ms() -> int:
    return time.time_ns() // 1_000_000
