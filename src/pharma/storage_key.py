"""Storage key derivation for form drafts."""

from __future__ import annotations

from dataclasses import dataclass


MODES = ("create", "edit", "view")
DRAFT_PREFIX = "formdraft_"
TABLE_PREFS_KEY = "tableprefs_all"


@dataclass
class StorageKeyError(ValueError):
    message: str
    field: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.message} (field={self.field})" if self.field else self.message


def build_storage_key(form_key: str, mode: str, entity_id: str | None = None) -> str:
    """Return ``form_key + "_" + mode`` plus ``"_" + entity_id`` when given."""
    if not isinstance(form_key, str) or not form_key.strip():
        raise StorageKeyError("form_key must be a non-empty string", "form_key")
    if mode not in MODES:
        raise StorageKeyError(f"mode must be one of {list(MODES)}", "mode")
    key = f"{form_key}_{mode}"
    if entity_id not in (None, ""):
        key = f"{key}_{entity_id}"
    return key


def draft_key(storage_key: str) -> str:
    return f"{DRAFT_PREFIX}{storage_key}"


def is_draft_key(key: str) -> bool:
    return isinstance(key, str) and key.startswith(DRAFT_PREFIX)
