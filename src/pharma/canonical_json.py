"""Deterministic JSON encoding for values kept in durable storage."""

from __future__ import annotations

import json
import math
from typing import Any


class CanonicalJsonTypeError(TypeError):
    """Raised when a value cannot be stored as canonical JSON."""


def _validate(obj: Any, path: str = "$") -> None:
    if isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalJsonTypeError(
                    f"Unsupported key type at {path}: {type(key).__name__}"
                )
            _validate(value, f"{path}.{key}")
        return
    if isinstance(obj, (list, tuple)):
        for idx, item in enumerate(obj):
            _validate(item, f"{path}[{idx}]")
        return
    if obj is None or isinstance(obj, (str, int, bool)):
        return
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"Non-finite float at {path}: {obj!r}")
        return
    raise CanonicalJsonTypeError(
        f"Unsupported type at {path}: {type(obj).__name__}"
    )


def canonical_dumps(obj: Any) -> str:
    """Serialize a form snapshot or preference map to canonical JSON.

    Rules:
    - Sort dict keys recursively so equal snapshots encode identically.
    - Preserve list order.
    - UTF-8 with non-ASCII preserved.
    - No extra whitespace, no NaN/Infinity.
    """
    _validate(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def loads_object(text: str | None) -> dict | None:
    """Decode a stored value, returning None unless it is a JSON object."""
    if not text:
        return None
    try:
        value = json.loads(text)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None
