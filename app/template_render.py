from __future__ import annotations

from typing import Any

from jinja2 import StrictUndefined, Undefined
from jinja2.sandbox import ImmutableSandboxedEnvironment

_ALLOWED_FILTERS = {"default", "length", "upper", "lower", "trim", "e", "escape"}

_ALLOWED_TESTS = {"defined", "undefined", "none"}


class _LockedSandbox(ImmutableSandboxedEnvironment):
    def is_safe_attribute(self, obj, attr, value) -> bool:
        return False

    def is_safe_callable(self, obj) -> bool:
        return False


def _money(value: Any, currency: str | None = None) -> str:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        amount = 0.0
    text = f"{amount:,.2f}"
    return f"{currency} {text}" if currency else text


def _env(strict: bool) -> _LockedSandbox:
    undefined_cls = StrictUndefined if strict else Undefined
    env = _LockedSandbox(autoescape=True, undefined=undefined_cls)
    env.globals = {}
    env.filters = {key: val for key, val in env.filters.items() if key in _ALLOWED_FILTERS}
    env.filters["money"] = _money
    env.tests = {key: val for key, val in env.tests.items() if key in _ALLOWED_TESTS}
    return env


def _sanitize_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _sanitize_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(val) for val in value]
    return str(value)


def _sanitize_context(context: dict[str, Any] | None) -> dict[str, Any]:
    return _sanitize_value(context or {}) or {}


def render_template(text: str | None, context: dict[str, Any], strict: bool = True) -> str:
    env = _env(strict=strict)
    tmpl = env.from_string(text or "")
    return tmpl.render(_sanitize_context(context))
