"""In-memory key-value storage backend with an origin-style byte quota."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Protocol


@dataclass
class StorageError(Exception):
    code: str
    message: str
    key: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (key={self.key})" if self.key else base


class KeyValueStorage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryKeyValueStorage:
    def __init__(self, quota_bytes: int | None = None) -> None:
        self._items: Dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def _size_with(self, key: str, value: str) -> int:
        total = 0
        for existing_key, existing_value in self._items.items():
            if existing_key == key:
                continue
            total += len(existing_key.encode("utf-8")) + len(existing_value.encode("utf-8"))
        return total + len(key.encode("utf-8")) + len(value.encode("utf-8"))

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError("VALUE_INVALID", "value must be a string", key)
        if self._quota_bytes is not None and self._size_with(key, value) > self._quota_bytes:
            raise StorageError("QUOTA_EXCEEDED", f"storage quota of {self._quota_bytes} bytes exceeded", key)
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items.keys())

    def clear(self) -> None:
        self._items.clear()
