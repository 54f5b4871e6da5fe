"""Per-table display preferences kept under one aggregate storage entry."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict

from kv_storage import KeyValueStorage, StorageError
from pharma.canonical_json import canonical_dumps, loads_object
from pharma.storage_key import TABLE_PREFS_KEY


TablePreferences = Dict[str, Any]

PREFERENCE_FIELDS = ("visible_columns", "column_widths", "page_size", "sort_field", "sort_direction")
SORT_DIRECTIONS = ("ascend", "descend")

_logger = logging.getLogger("pharma.storage")


def _issue(code: str, message: str, path: str | None = None) -> dict:
    return {"code": code, "message": message, "path": path, "detail": None}


def validate_preferences(prefs: dict) -> list[dict]:
    errors: list[dict] = []
    if not isinstance(prefs, dict):
        return [_issue("PREFS_INVALID", "preferences must be an object")]
    for key, value in prefs.items():
        if key not in PREFERENCE_FIELDS:
            errors.append(_issue("UNKNOWN_FIELD", f"Unknown preference: {key}", key))
            continue
        if value is None:
            continue
        if key == "visible_columns":
            if not isinstance(value, list) or not all(isinstance(c, str) for c in value):
                errors.append(_issue("TYPE_MISMATCH", "visible_columns must be a list of strings", key))
        elif key == "column_widths":
            if not isinstance(value, dict) or not all(
                isinstance(w, (int, float)) and not isinstance(w, bool) for w in value.values()
            ):
                errors.append(_issue("TYPE_MISMATCH", "column_widths must map columns to numbers", key))
        elif key == "page_size":
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                errors.append(_issue("TYPE_MISMATCH", "page_size must be a positive integer", key))
        elif key == "sort_field":
            if not isinstance(value, str):
                errors.append(_issue("TYPE_MISMATCH", "sort_field must be a string", key))
        elif key == "sort_direction":
            if value not in SORT_DIRECTIONS:
                errors.append(_issue("INVALID_ENUM", f"sort_direction must be one of {list(SORT_DIRECTIONS)}", key))
    return errors


class TablePreferenceStore:
    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    def load_all(self) -> Dict[str, TablePreferences]:
        try:
            raw = self._storage.get(TABLE_PREFS_KEY)
        except Exception as exc:
            _logger.warning("table_prefs_load_failed error=%s", exc)
            return {}
        parsed = loads_object(raw)
        if parsed is None:
            return {}
        return {k: v for k, v in parsed.items() if isinstance(v, dict)}

    def _persist(self, all_prefs: Dict[str, TablePreferences]) -> dict:
        try:
            self._storage.set(TABLE_PREFS_KEY, canonical_dumps(all_prefs))
        except StorageError as exc:
            _logger.warning("table_prefs_save_failed code=%s error=%s", exc.code, exc.message)
            return {"ok": False, "errors": [_issue(exc.code, exc.message, TABLE_PREFS_KEY)]}
        except Exception as exc:
            _logger.warning("table_prefs_save_failed code=STORAGE_FAILED error=%s", exc)
            return {"ok": False, "errors": [_issue("STORAGE_FAILED", str(exc), TABLE_PREFS_KEY)]}
        return {"ok": True, "errors": []}

    def save(self, table_id: str, prefs: dict) -> dict:
        all_prefs = self.load_all()
        merged = dict(all_prefs.get(table_id) or {})
        merged.update(copy.deepcopy(prefs))
        all_prefs[table_id] = merged
        result = self._persist(all_prefs)
        result["preferences"] = copy.deepcopy(merged)
        return result

    def load(self, table_id: str) -> TablePreferences | None:
        prefs = self.load_all().get(table_id)
        return copy.deepcopy(prefs) if prefs else None

    def clear(self, table_id: str) -> dict:
        all_prefs = self.load_all()
        if table_id not in all_prefs:
            return {"ok": True, "errors": []}
        del all_prefs[table_id]
        return self._persist(all_prefs)
