"""
Chunked storage for raw pointer samples and enriched attempts.

A session owns an ordered run of buckets. Appends go to the newest open
bucket; once a bucket holds `capacity` items it is sealed (is_full=1) and
never touched again, and the next item opens bucket_number + 1. Reading a
session concatenates buckets in bucket_number order, so retrieval order is
append order.
"""
import json
import logging
import sqlite3
import threading
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from analytics.metrics import attempt_stats
from backend.app.errors import UnknownSessionError
from data.models import ROUNDS

logger = logging.getLogger(__name__)

TRACE = "trace"
ATTEMPT = "attempt"

_TABLES = {
    TRACE: "trace_buckets",
    ATTEMPT: "attempt_buckets",
}

_locks_guard = threading.Lock()
# a lock lives only while some writer holds a reference to it
_session_locks: "weakref.WeakValueDictionary[tuple[str, str], threading.Lock]" = weakref.WeakValueDictionary()


def _session_lock(kind: str, session_id: str) -> threading.Lock:
    with _locks_guard:
        lock = _session_locks.get((kind, session_id))
        if lock is None:
            lock = threading.Lock()
            _session_locks[(kind, session_id)] = lock
        return lock


@dataclass(frozen=True)
class AppendResult:
    bucket_number: int
    appended: int
    buckets_touched: int


@dataclass
class _Bucket:
    row_id: Optional[int]
    bucket_number: int
    user_id: Optional[str]
    items: list[dict[str, Any]]
    is_full: bool = False


def _table(kind: str) -> str:
    try:
        return _TABLES[kind]
    except KeyError:
        raise ValueError(f"unknown bucket kind: {kind}")


def _load_json_list(raw: Optional[str]) -> list[dict[str, Any]]:
    try:
        items = json.loads(raw) if raw else []
    except json.JSONDecodeError:
        return []
    if not isinstance(items, list):
        return []
    return [i for i in items if isinstance(i, dict)]


def _dump(items: list[dict[str, Any]]) -> str:
    return json.dumps(items, ensure_ascii=False, separators=(",", ":"))


def _save_bucket(cur: sqlite3.Cursor, kind: str, session_id: str, bucket: _Bucket) -> None:
    table = _table(kind)
    payload = _dump(bucket.items)
    if kind == TRACE:
        first_t = bucket.items[0].get("t_ms") if bucket.items else None
        last_t = bucket.items[-1].get("t_ms") if bucket.items else None
        if bucket.row_id is None:
            cur.execute(
                f"""
                INSERT INTO {table} (session_id, user_id, bucket_number, count, is_full, first_t_ms, last_t_ms, items_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (session_id, bucket.user_id, bucket.bucket_number, len(bucket.items), int(bucket.is_full), first_t, last_t, payload),
            )
        else:
            cur.execute(
                f"""
                UPDATE {table}
                SET user_id = ?, count = ?, is_full = ?, first_t_ms = ?, last_t_ms = ?, items_json = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (bucket.user_id, len(bucket.items), int(bucket.is_full), first_t, last_t, payload, bucket.row_id),
            )
        return

    if bucket.row_id is None:
        cur.execute(
            f"""
            INSERT INTO {table} (session_id, user_id, bucket_number, count, is_full, items_json)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (session_id, bucket.user_id, bucket.bucket_number, len(bucket.items), int(bucket.is_full), payload),
        )
    else:
        cur.execute(
            f"""
            UPDATE {table}
            SET user_id = ?, count = ?, is_full = ?, items_json = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (bucket.user_id, len(bucket.items), int(bucket.is_full), payload, bucket.row_id),
        )


def append_items(
    db_path: Path,
    kind: str,
    session_id: str,
    user_id: Optional[str],
    items: list[dict[str, Any]],
    capacity: int,
) -> AppendResult:
    if not isinstance(items, list) or not items:
        raise ValueError("items must be a non-empty list")
    if capacity < 1:
        raise ValueError("capacity must be positive")
    table = _table(kind)

    with _session_lock(kind, session_id):
        with sqlite3.connect(db_path, timeout=30.0) as conn:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            exists = cur.execute("SELECT 1 FROM sessions WHERE session_id = ?", (session_id,)).fetchone()
            if exists is None:
                conn.rollback()
                raise UnknownSessionError(session_id)

            row = cur.execute(
                f"""
                SELECT id, bucket_number, user_id, items_json
                FROM {table}
                WHERE session_id = ? AND is_full = 0
                ORDER BY bucket_number DESC
                LIMIT 1
                """,
                (session_id,),
            ).fetchone()

            if row is None:
                last = cur.execute(
                    f"SELECT MAX(bucket_number) FROM {table} WHERE session_id = ?",
                    (session_id,),
                ).fetchone()
                next_number = (last[0] or 0) + 1
                bucket = _Bucket(row_id=None, bucket_number=next_number, user_id=user_id, items=[])
            else:
                row_id, bucket_number, bucket_user, items_json = row
                bucket = _Bucket(
                    row_id=row_id,
                    bucket_number=bucket_number,
                    user_id=bucket_user,
                    items=_load_json_list(items_json),
                )
                if user_id and not bucket.user_id:
                    bucket.user_id = user_id

            touched = 1
            for item in items:
                if len(bucket.items) >= capacity:
                    bucket.is_full = True
                    _save_bucket(cur, kind, session_id, bucket)
                    bucket = _Bucket(
                        row_id=None,
                        bucket_number=bucket.bucket_number + 1,
                        user_id=user_id or bucket.user_id,
                        items=[],
                    )
                    touched += 1
                bucket.items.append(item)

            _save_bucket(cur, kind, session_id, bucket)
            conn.commit()

    return AppendResult(bucket_number=bucket.bucket_number, appended=len(items), buckets_touched=touched)


def append_samples(
    db_path: Path,
    session_id: str,
    user_id: Optional[str],
    samples: list[dict[str, Any]],
    capacity: int,
) -> AppendResult:
    return append_items(db_path, TRACE, session_id, user_id, samples, capacity)


def append_attempts(
    db_path: Path,
    session_id: str,
    user_id: Optional[str],
    attempts: list[dict[str, Any]],
    capacity: int,
) -> AppendResult:
    return append_items(db_path, ATTEMPT, session_id, user_id, attempts, capacity)


def read_items(db_path: Path, kind: str, session_id: str, round_no: Optional[int] = None) -> list[dict[str, Any]]:
    table = _table(kind)
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(
            f"SELECT items_json FROM {table} WHERE session_id = ? ORDER BY bucket_number ASC",
            (session_id,),
        ).fetchall()

    items: list[dict[str, Any]] = []
    for (items_json,) in rows:
        for item in _load_json_list(items_json):
            if round_no is not None and item.get("round") != round_no:
                continue
            items.append(item)
    return items


def get_session_samples(db_path: Path, session_id: str, round_no: Optional[int] = None) -> list[dict[str, Any]]:
    return read_items(db_path, TRACE, session_id, round_no)


def get_session_attempts(db_path: Path, session_id: str, round_no: Optional[int] = None) -> list[dict[str, Any]]:
    return read_items(db_path, ATTEMPT, session_id, round_no)


def get_attempt_stats(db_path: Path, session_id: str) -> dict[str, Any]:
    return attempt_stats(get_session_attempts(db_path, session_id), ROUNDS)


def get_samples_in_range(
    db_path: Path,
    session_id: str,
    start_t_ms: Optional[float] = None,
    end_t_ms: Optional[float] = None,
    round_no: Optional[int] = None,
) -> list[dict[str, Any]]:
    samples = get_session_samples(db_path, session_id, round_no)
    out = []
    for s in samples:
        t_ms = s.get("t_ms")
        if t_ms is None:
            continue
        if start_t_ms is not None and t_ms < start_t_ms:
            continue
        if end_t_ms is not None and t_ms > end_t_ms:
            continue
        out.append(s)
    return out


def list_buckets(db_path: Path, kind: str, session_id: str) -> list[dict[str, Any]]:
    table = _table(kind)
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT bucket_number, user_id, count, is_full, created_at, updated_at
            FROM {table}
            WHERE session_id = ?
            ORDER BY bucket_number ASC
            """,
            (session_id,),
        ).fetchall()
    return [
        {
            "bucketNumber": bucket_number,
            "userId": user_id,
            "count": count,
            "isFull": bool(is_full),
            "createdAt": created_at,
            "updatedAt": updated_at,
        }
        for bucket_number, user_id, count, is_full, created_at, updated_at in rows
    ]


def purge_expired_buckets(db_path: Path, retention_days: int) -> int:
    if retention_days <= 0 or not db_path.exists():
        return 0
    removed = 0
    with sqlite3.connect(db_path) as conn:
        for table in _TABLES.values():
            cur = conn.execute(
                f"DELETE FROM {table} WHERE created_at < datetime('now', ?)",
                (f"-{int(retention_days)} days",),
            )
            removed += cur.rowcount
        conn.commit()
    if removed:
        logger.info("Purged %d raw buckets older than %d days", removed, retention_days)
    return removed
