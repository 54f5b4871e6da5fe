"""Field validation for form submissions."""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Callable


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def enum_values(field: dict) -> list:
    options = field.get("options") or field.get("values") or []
    values = []
    for opt in options:
        if isinstance(opt, dict) and "value" in opt:
            values.append(opt["value"])
        else:
            values.append(opt)
    return values


def _apply_defaults(field_by_id: dict, data: dict) -> dict:
    updated = dict(data)
    for field_id, field in field_by_id.items():
        if "default" not in field:
            continue
        if not _is_empty(updated.get(field_id)):
            continue
        updated[field_id] = field.get("default")
    return updated


def _fields_by_id(form: dict) -> dict:
    fields = form.get("fields") or {}
    if isinstance(fields, list):
        return {f.get("id"): f for f in fields if isinstance(f, dict) and f.get("id")}
    return {fid: (fdef if isinstance(fdef, dict) else {}) for fid, fdef in fields.items()}


def validate_record_payload(form: dict, data: dict, for_create: bool) -> tuple[list[dict], dict]:
    errors: list[dict] = []
    if not isinstance(data, dict):
        return [
            {
                "code": "INVALID_PAYLOAD",
                "message": "Form data must be an object",
                "path": None,
                "detail": None,
            }
        ], {}
    field_by_id = _fields_by_id(form)

    def _add_error(code: str, message: str, path: str | None = None, detail: dict | None = None):
        errors.append({"code": code, "message": message, "path": path, "detail": detail})

    for key in data.keys():
        if key == "id":
            continue
        if key not in field_by_id:
            _add_error("UNKNOWN_FIELD", f"Unknown field: {key}", path=key)

    if for_create:
        data = _apply_defaults(field_by_id, data)
        for field_id, field in field_by_id.items():
            if field.get("required") and _is_empty(data.get(field_id)):
                _add_error("REQUIRED_FIELD", f"Missing required field: {field_id}", path=field_id)
    else:
        for field_id, val in data.items():
            field = field_by_id.get(field_id)
            if field and field.get("required") and field_id in data and _is_empty(val):
                _add_error("REQUIRED_FIELD", f"Missing required field: {field_id}", path=field_id)

    for field_id, val in data.items():
        if field_id == "id":
            continue
        field = field_by_id.get(field_id)
        if not field or _is_empty(val):
            continue
        ftype = field.get("type")
        if ftype in ("string", "text"):
            if not isinstance(val, str):
                _add_error("TYPE_MISMATCH", f"{field_id} must be a string", path=field_id)
                continue
            if "min_length" in field and len(val) < field["min_length"]:
                _add_error("TOO_SHORT", f"{field_id} must be at least {field['min_length']} characters", path=field_id)
            if "max_length" in field and len(val) > field["max_length"]:
                _add_error("TOO_LONG", f"{field_id} must be at most {field['max_length']} characters", path=field_id)
            pattern = field.get("pattern")
            if pattern and not re.match(pattern, val):
                _add_error("PATTERN_MISMATCH", f"{field_id} has an invalid format", path=field_id, detail={"pattern": pattern})
        elif ftype in ("number", "integer"):
            if not _is_number(val) or (ftype == "integer" and not isinstance(val, int)):
                _add_error("TYPE_MISMATCH", f"{field_id} must be a {ftype}", path=field_id)
                continue
            low, high = field.get("min"), field.get("max")
            if (low is not None and val < low) or (high is not None and val > high):
                _add_error("OUT_OF_RANGE", f"{field_id} must be between {low} and {high}", path=field_id, detail={"min": low, "max": high})
        elif ftype in ("boolean", "bool"):
            if not isinstance(val, bool):
                _add_error("TYPE_MISMATCH", f"{field_id} must be a boolean", path=field_id)
        elif ftype == "enum":
            allowed = enum_values(field)
            if val not in allowed:
                _add_error("INVALID_ENUM", f"{field_id} must be one of {allowed}", path=field_id)
        elif ftype == "date":
            if not isinstance(val, str):
                _add_error("TYPE_MISMATCH", f"{field_id} must be a date string", path=field_id)
            else:
                try:
                    date.fromisoformat(val)
                except ValueError:
                    _add_error("INVALID_DATE", f"{field_id} must be YYYY-MM-DD", path=field_id)
        elif ftype == "list":
            if not isinstance(val, list):
                _add_error("TYPE_MISMATCH", f"{field_id} must be a list", path=field_id)
            elif "min_length" in field and len(val) < field["min_length"]:
                _add_error("TOO_SHORT", f"{field_id} must have at least {field['min_length']} entries", path=field_id)
        # ignore unknown types for now

    return errors, data


def make_form_validator(form: dict) -> Callable[[dict, str], list[dict]]:
    def _validate(fields: dict, mode: str) -> list[dict]:
        errors, _ = validate_record_payload(form, fields, for_create=mode == "create")
        return errors

    return _validate
