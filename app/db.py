"""DB helper for the Postgres-backed storage scope."""

from __future__ import annotations

import os
import time
from contextlib import contextmanager
from typing import Any, Iterable

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool
import threading
import logging


def get_db_url() -> str:
    url = os.getenv("SUPABASE_DB_URL") or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("SUPABASE_DB_URL or DATABASE_URL is required when USE_DB=1")
    return url


_POOL: SimpleConnectionPool | None = None
_POOL_LOCK = threading.Lock()
_logger = logging.getLogger("pharma.db")
_query_logger = logging.getLogger("pharma.db.query")
_SLOW_MS = float(os.getenv("PHARMA_QUERY_SLOW_MS", "200"))
_LOG_ALL = os.getenv("PHARMA_QUERY_LOG", "").strip() == "1"


def _redact_params(params: Iterable[Any] | None) -> list[Any] | None:
    if params is None:
        return None
    redacted: list[Any] = []
    for val in params:
        if isinstance(val, (bytes, bytearray)):
            redacted.append(f"<bytes:{len(val)}>")
        elif isinstance(val, str) and len(val) > 80:
            redacted.append(f"{val[:40]}…{val[-10:]}")
        else:
            redacted.append(val)
    return redacted


def _log_query(*, query_name: str | None, params: Iterable[Any] | None, elapsed_ms: float, rowcount: int | None) -> None:
    if not query_name and not _LOG_ALL and elapsed_ms < _SLOW_MS:
        return
    message = {
        "query": query_name or "unnamed",
        "ms": round(elapsed_ms, 2),
        "rowcount": rowcount,
        "params": _redact_params(params),
    }
    if elapsed_ms >= _SLOW_MS:
        _query_logger.warning("db_slow_query=%s", message)
    else:
        _query_logger.debug("db_query=%s", message)


def init_pool(minconn: int | None = None, maxconn: int | None = None) -> None:
    global _POOL
    with _POOL_LOCK:
        if _POOL is None:
            if minconn is None:
                minconn = int(os.getenv("PHARMA_DB_POOL_MIN", "1"))
            if maxconn is None:
                maxconn = int(os.getenv("PHARMA_DB_POOL_MAX", "10"))
            _POOL = SimpleConnectionPool(minconn, maxconn, dsn=get_db_url())


def _get_pool() -> SimpleConnectionPool:
    if _POOL is None:
        init_pool()
    return _POOL


@contextmanager
def get_conn():
    pool = _get_pool()
    conn = pool.getconn()
    _logger.debug("db_conn borrowed")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)
        _logger.debug("db_conn returned")


def fetch_one(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    start = time.perf_counter()
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params or [])
        row = cur.fetchone()
        result = dict(row) if row else None
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount)
    return result


def fetch_all(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    start = time.perf_counter()
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params or [])
        result = [dict(r) for r in cur.fetchall()]
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount)
    return result


def execute(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    start = time.perf_counter()
    with conn.cursor() as cur:
        cur.execute(sql, params or [])
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount)
    return rowcount
