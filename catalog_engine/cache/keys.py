"""
Stable key encoding for cache keys.

Two structurally equal values always encode to the same string: mapping key
order and ``None``-valued entries are ignored, sequence order is kept.
"""
import dataclasses
import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel

CIRCULAR_MARKER = "[Circular]"
DECIMAL_TAG = "$decimal"


def _mapping_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, Enum):
        return _mapping_key(key.value)
    # Tagged so the int key 1 and the str key "1" stay distinct
    return f"${type(key).__name__}:{key}"


def _normalize(value: Any, active: set) -> Any:
    if isinstance(value, Enum):
        return _normalize(value.value, active)
    if isinstance(value, Decimal):
        return {DECIMAL_TAG: str(value)}
    if isinstance(value, (datetime, date)):
        return value.isoformat()

    is_model = isinstance(value, BaseModel)
    is_dataclass = dataclasses.is_dataclass(value) and not isinstance(value, type)
    if not (is_model or is_dataclass or isinstance(value, (Mapping, list, tuple, set, frozenset))):
        return value

    # Identity of the caller's object, taken before models become fresh dicts
    marker = id(value)
    if marker in active:
        return CIRCULAR_MARKER
    active.add(marker)
    try:
        if is_model:
            value = {name: getattr(value, name) for name in type(value).model_fields}
        elif is_dataclass:
            value = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}

        if isinstance(value, Mapping):
            entries = [
                (_mapping_key(key), _normalize(entry, active))
                for key, entry in value.items()
                if entry is not None
            ]
            entries.sort(key=lambda item: item[0])
            return dict(entries)
        if isinstance(value, (set, frozenset)):
            items = [_normalize(entry, active) for entry in value]
            return sorted(items, key=lambda item: json.dumps(item, sort_keys=True, default=str))
        return [_normalize(entry, active) for entry in value]
    finally:
        active.discard(marker)


def normalize(value: Any) -> Any:
    """Return the canonical, JSON-ready form of ``value``."""
    return _normalize(value, set())


def stable_stringify(value: Any) -> str:
    """Serialize ``value`` deterministically."""
    return json.dumps(normalize(value), separators=(",", ":"), ensure_ascii=False, default=str)


def make_cache_key(scope: str, params: Any = None) -> str:
    """
    Generate a deterministic cache key for a scoped query.

    The digest covers both the scope and the params, so equal params under
    different scopes never share a key.
    """
    raw = stable_stringify({"scope": scope, "params": params})
    return f"{scope}:{hashlib.sha256(raw.encode()).hexdigest()[:32]}"
