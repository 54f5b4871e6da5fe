"""Pharma dashboard kernel utilities."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps, loads_object
from .storage_key import (
    DRAFT_PREFIX,
    MODES,
    TABLE_PREFS_KEY,
    StorageKeyError,
    build_storage_key,
    draft_key,
    is_draft_key,
)

__all__ = [
    "CanonicalJsonTypeError",
    "canonical_dumps",
    "loads_object",
    "DRAFT_PREFIX",
    "MODES",
    "TABLE_PREFS_KEY",
    "StorageKeyError",
    "build_storage_key",
    "draft_key",
    "is_draft_key",
]
