"""DB-backed key-value storage for drafts and table preferences."""

from __future__ import annotations

import logging
import os
from contextvars import ContextVar

import psycopg2

from app.db import execute, fetch_all, fetch_one, get_conn
from kv_storage import StorageError

logger = logging.getLogger("pharma.storage")

_SCOPE: ContextVar[str] = ContextVar("storage_scope", default=os.getenv("PHARMA_STORAGE_SCOPE", "default"))

# Auto-migration allowlist (ALLOWED_AUTO_MIGRATION)
_ALLOWED_AUTO_MIGRATION_TABLES = {"kv_storage"}
_AUTO_MIGRATION_LOGGED: set[str] = set()


def get_scope() -> str:
    return _SCOPE.get()


def set_scope(value: str):
    return _SCOPE.set(value)


def reset_scope(token):
    _SCOPE.reset(token)


class DbKeyValueStorage:
    """Key-value storage partitioned by scope, one row per key."""

    def __init__(self, max_value_bytes: int | None = None) -> None:
        self._max_value_bytes = max_value_bytes
        self._ready = False

    def _ensure_table(self) -> None:
        if self._ready:
            return
        table = "kv_storage"
        if table not in _ALLOWED_AUTO_MIGRATION_TABLES:
            raise RuntimeError("auto_migration_not_allowed: kv_storage")
        with get_conn() as conn:
            execute(
                conn,
                """
                create table if not exists kv_storage (
                  scope text not null,
                  key text not null,
                  value text not null,
                  updated_at timestamptz not null default now(),
                  primary key (scope, key)
                );
                """,
                query_name="kv_storage.ensure_table",
            )
        if table not in _AUTO_MIGRATION_LOGGED:
            logger.info("auto_migration_applied table=%s", table)
            _AUTO_MIGRATION_LOGGED.add(table)
        self._ready = True

    def get(self, key: str) -> str | None:
        self._ensure_table()
        try:
            with get_conn() as conn:
                row = fetch_one(
                    conn,
                    "select value from kv_storage where scope=%s and key=%s",
                    [get_scope(), key],
                    query_name="kv_storage.get",
                )
        except psycopg2.Error as exc:
            raise StorageError("STORAGE_FAILED", str(exc).strip(), key) from exc
        return row.get("value") if row else None

    def set(self, key: str, value: str) -> None:
        if self._max_value_bytes is not None and len(value.encode("utf-8")) > self._max_value_bytes:
            raise StorageError("QUOTA_EXCEEDED", f"value exceeds {self._max_value_bytes} bytes", key)
        self._ensure_table()
        try:
            with get_conn() as conn:
                execute(
                    conn,
                    """
                    insert into kv_storage (scope, key, value, updated_at)
                    values (%s, %s, %s, now())
                    on conflict (scope, key)
                    do update set value=excluded.value, updated_at=now()
                    """,
                    [get_scope(), key, value],
                    query_name="kv_storage.set",
                )
        except psycopg2.Error as exc:
            raise StorageError("STORAGE_FAILED", str(exc).strip(), key) from exc

    def remove(self, key: str) -> None:
        self._ensure_table()
        try:
            with get_conn() as conn:
                execute(
                    conn,
                    "delete from kv_storage where scope=%s and key=%s",
                    [get_scope(), key],
                    query_name="kv_storage.remove",
                )
        except psycopg2.Error as exc:
            raise StorageError("STORAGE_FAILED", str(exc).strip(), key) from exc

    def keys(self) -> list[str]:
        self._ensure_table()
        try:
            with get_conn() as conn:
                rows = fetch_all(
                    conn,
                    "select key from kv_storage where scope=%s order by key",
                    [get_scope()],
                    query_name="kv_storage.keys",
                )
        except psycopg2.Error as exc:
            raise StorageError("STORAGE_FAILED", str(exc).strip()) from exc
        return [r["key"] for r in rows]
