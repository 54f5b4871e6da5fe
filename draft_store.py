"""Form draft store with lazy expiry over a key-value backend."""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Callable, Dict

from kv_storage import KeyValueStorage, StorageError
from pharma.canonical_json import canonical_dumps, loads_object
from pharma.storage_key import draft_key, is_draft_key


DraftRecord = Dict[str, Any]
Clock = Callable[[], int]

DEFAULT_EXPIRY_HOURS = 24.0
_MINUTE_MS = 60 * 1000

_logger = logging.getLogger("pharma.storage")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> dict:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''} ago"


def format_age(elapsed_ms: int) -> str:
    minutes = int(elapsed_ms // _MINUTE_MS)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return _plural(minutes, "minute")
    hours = minutes // 60
    if hours < 24:
        return _plural(hours, "hour")
    return _plural(hours // 24, "day")


class DraftStore:
    """Keeps at most one snapshot per storage key; last write wins.

    Writes are best effort. Backend failures are logged and reported in the
    returned result, never raised.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        clock: Clock | None = None,
        expiry_hours: float = DEFAULT_EXPIRY_HOURS,
    ) -> None:
        self._storage = storage
        self._clock = clock or _now_ms
        self._expiry_ms = int(expiry_hours * 60 * 60 * 1000)

    @property
    def expiry_ms(self) -> int:
        return self._expiry_ms

    def save(self, storage_key: str, fields: dict, entity_id: str | None = None) -> dict:
        record = {
            "fields": copy.deepcopy(fields),
            "saved_at": self._clock(),
            "entity_id": entity_id,
        }
        try:
            payload = canonical_dumps(record)
        except (TypeError, ValueError) as exc:
            _logger.warning("draft_save_failed key=%s code=SERIALIZE_FAILED error=%s", storage_key, exc)
            return {"ok": False, "errors": [_issue("SERIALIZE_FAILED", str(exc), "fields")]}
        try:
            self._storage.set(draft_key(storage_key), payload)
        except StorageError as exc:
            _logger.warning("draft_save_failed key=%s code=%s error=%s", storage_key, exc.code, exc.message)
            return {"ok": False, "errors": [_issue(exc.code, exc.message, storage_key)]}
        except Exception as exc:
            _logger.warning("draft_save_failed key=%s code=STORAGE_FAILED error=%s", storage_key, exc)
            return {"ok": False, "errors": [_issue("STORAGE_FAILED", str(exc), storage_key)]}
        return {"ok": True, "errors": [], "saved_at": record["saved_at"]}

    def load(self, storage_key: str) -> DraftRecord | None:
        try:
            raw = self._storage.get(draft_key(storage_key))
        except Exception as exc:
            _logger.warning("draft_load_failed key=%s error=%s", storage_key, exc)
            return None
        parsed = loads_object(raw)
        if parsed is None:
            return None
        saved_at = parsed.get("saved_at")
        fields = parsed.get("fields")
        if not isinstance(saved_at, int) or isinstance(saved_at, bool) or not isinstance(fields, dict):
            return None
        if self._clock() - saved_at > self._expiry_ms:
            _logger.debug("draft_expired key=%s saved_at=%s", storage_key, saved_at)
            self.clear(storage_key)
            return None
        return {
            "storage_key": storage_key,
            "fields": fields,
            "saved_at": saved_at,
            "entity_id": parsed.get("entity_id"),
        }

    def clear(self, storage_key: str) -> dict:
        try:
            self._storage.remove(draft_key(storage_key))
        except Exception as exc:
            _logger.warning("draft_clear_failed key=%s error=%s", storage_key, exc)
            return {"ok": False, "errors": [_issue("STORAGE_FAILED", str(exc), storage_key)]}
        return {"ok": True, "errors": []}

    def clear_all(self) -> dict:
        removed = 0
        errors = []
        try:
            keys = [k for k in self._storage.keys() if is_draft_key(k)]
        except Exception as exc:
            _logger.warning("draft_clear_all_failed error=%s", exc)
            return {"ok": False, "errors": [_issue("STORAGE_FAILED", str(exc))], "removed": 0}
        for key in keys:
            try:
                self._storage.remove(key)
                removed += 1
            except Exception as exc:
                _logger.warning("draft_clear_failed key=%s error=%s", key, exc)
                errors.append(_issue("STORAGE_FAILED", str(exc), key))
        return {"ok": not errors, "errors": errors, "removed": removed}

    def has_data(self, storage_key: str) -> bool:
        return self.load(storage_key) is not None

    def get_age(self, storage_key: str) -> str | None:
        record = self.load(storage_key)
        if record is None:
            return None
        return format_age(self._clock() - record["saved_at"])
