"""Form session controller: hydration, autosave, restore/discard and submit."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from draft_store import DraftStore
from pharma.storage_key import build_storage_key


Issue = Dict[str, Any]
Validator = Callable[[dict, str], List[Issue]]
Persister = Callable[[str, dict, "str | None"], Any]
DraftTransform = Callable[[dict], dict]

CLOSED = "closed"
OPENING = "opening"
HYDRATED = "hydrated"
BLANK = "blank"
EDITING = "editing"
SUBMITTING = "submitting"
CANCELLED = "cancelled"

_OPEN_STATES = (HYDRATED, BLANK, EDITING)

_logger = logging.getLogger("pharma.forms")


@dataclass
class FormSessionError(Exception):
    code: str
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message}"


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


class FormSession:
    """One create/edit/view interaction with a record editor.

    Drafts are only offered, never applied on open: the caller decides with
    ``restore_draft`` or ``discard_draft``. Every change is written through
    to the draft store as a full snapshot.
    """

    def __init__(
        self,
        form_key: str,
        drafts: DraftStore,
        validate: Validator | None = None,
        persist: Persister | None = None,
        on_draft_loaded: DraftTransform | None = None,
    ) -> None:
        self.form_key = form_key
        self._drafts = drafts
        self._validate = validate
        self._persist = persist
        self._on_draft_loaded = on_draft_loaded
        self.state = CLOSED
        self.mode: str | None = None
        self.entity_id: str | None = None
        self.storage_key: str | None = None
        self.fields: dict = {}
        self.changed = False
        self.draft_offer: dict | None = None
        self.history: list[dict] = []
        self._baseline: dict = {}

    def _transition(self, to_state: str) -> None:
        self.history.append({"from": self.state, "to": to_state})
        _logger.debug("form_session form=%s %s->%s", self.form_key, self.state, to_state)
        self.state = to_state

    def _require_open(self) -> None:
        if self.state not in _OPEN_STATES:
            raise FormSessionError("SESSION_NOT_OPEN", f"session is {self.state}")

    def _require_writable(self) -> None:
        self._require_open()
        if self.mode == "view":
            raise FormSessionError("VIEW_MODE_READ_ONLY", "view mode does not accept changes")

    def _resting_state(self) -> str:
        return HYDRATED if self._baseline else BLANK

    def _draft_fields(self, draft: dict) -> dict:
        data = copy.deepcopy(draft["fields"])
        if self._on_draft_loaded is not None:
            data = self._on_draft_loaded(data)
        return data

    def snapshot(self) -> dict:
        return {
            "form_key": self.form_key,
            "state": self.state,
            "mode": self.mode,
            "entity_id": self.entity_id,
            "storage_key": self.storage_key,
            "fields": copy.deepcopy(self.fields),
            "changed": self.changed,
            "draft_offer": copy.deepcopy(self.draft_offer),
        }

    def open(self, mode: str, initial_values: dict | None = None, entity_id: str | None = None) -> dict:
        if self.state != CLOSED:
            raise FormSessionError("SESSION_ALREADY_OPEN", f"session is {self.state}")
        scoped_entity = entity_id if mode == "edit" else None
        self.storage_key = build_storage_key(self.form_key, mode, scoped_entity)
        self.mode = mode
        self.entity_id = scoped_entity
        self._transition(OPENING)
        self._baseline = copy.deepcopy(initial_values) if isinstance(initial_values, dict) else {}
        self.fields = copy.deepcopy(self._baseline)
        self.changed = False
        self.draft_offer = None
        if mode != "view":
            draft = self._drafts.load(self.storage_key)
            if draft is not None:
                self.draft_offer = {
                    "fields": self._draft_fields(draft),
                    "saved_at": draft["saved_at"],
                    "age": self._drafts.get_age(self.storage_key),
                }
        self._transition(self._resting_state())
        return self.snapshot()

    def on_fields_change(self, fields: dict) -> dict:
        self._require_writable()
        self.fields = copy.deepcopy(fields)
        self.changed = True
        self.draft_offer = None
        if self.state != EDITING:
            self._transition(EDITING)
        saved = self._drafts.save(self.storage_key, self.fields, self.entity_id)
        return {"ok": True, "draft_saved": saved["ok"], "errors": [], "warnings": saved["errors"]}

    def restore_draft(self) -> dict:
        """Apply the stored draft. The session counts as changed afterwards, so ``close`` keeps the draft."""
        self._require_writable()
        draft = self._drafts.load(self.storage_key)
        if draft is None:
            self.draft_offer = None
            return {"ok": False, "errors": [_issue("DRAFT_NOT_FOUND", "No saved draft to restore", self.storage_key)]}
        self.fields = self._draft_fields(draft)
        self.changed = True
        self.draft_offer = None
        if self.state != EDITING:
            self._transition(EDITING)
        return {"ok": True, "errors": [], "fields": copy.deepcopy(self.fields)}

    def discard_draft(self) -> dict:
        self._require_writable()
        cleared = self._drafts.clear(self.storage_key)
        self.fields = copy.deepcopy(self._baseline)
        self.changed = False
        self.draft_offer = None
        self._transition(self._resting_state())
        return {"ok": True, "errors": [], "warnings": cleared["errors"], "fields": copy.deepcopy(self.fields)}

    def submit(self) -> dict:
        self._require_writable()
        errors = self._validate(copy.deepcopy(self.fields), self.mode) if self._validate else []
        if errors:
            if self.state != EDITING:
                self._transition(EDITING)
            return {"ok": False, "errors": errors, "record": None}
        self._transition(SUBMITTING)
        record = None
        if self._persist is not None:
            try:
                record = self._persist(self.mode, copy.deepcopy(self.fields), self.entity_id)
            except Exception as exc:
                _logger.warning("form_submit_failed form=%s key=%s error=%s", self.form_key, self.storage_key, exc)
                self._transition(EDITING)
                return {"ok": False, "errors": [_issue("SUBMIT_FAILED", str(exc))], "record": None}
        self._drafts.clear(self.storage_key)
        self.changed = False
        self.draft_offer = None
        self._transition(CLOSED)
        return {"ok": True, "errors": [], "record": record}

    def close(self) -> dict:
        if self.state == CLOSED:
            return self.snapshot()
        self._require_open()
        if self.mode == "create" and not self.changed:
            self._drafts.clear(self.storage_key)
        self._transition(CANCELLED)
        self._transition(CLOSED)
        return self.snapshot()
