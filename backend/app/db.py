import json
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Optional


def ensure_db(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(path) as conn:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                user_id TEXT,
                participant_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                game_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS trace_buckets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                user_id TEXT,
                bucket_number INTEGER NOT NULL,
                count INTEGER NOT NULL DEFAULT 0,
                is_full INTEGER NOT NULL DEFAULT 0,
                first_t_ms REAL,
                last_t_ms REAL,
                items_json TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(session_id, bucket_number),
                FOREIGN KEY(session_id) REFERENCES sessions(session_id)
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS attempt_buckets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                user_id TEXT,
                bucket_number INTEGER NOT NULL,
                count INTEGER NOT NULL DEFAULT 0,
                is_full INTEGER NOT NULL DEFAULT 0,
                items_json TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(session_id, bucket_number),
                FOREIGN KEY(session_id) REFERENCES sessions(session_id)
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS round_summaries (
                session_id TEXT NOT NULL,
                round INTEGER NOT NULL,
                user_id TEXT,
                participant_id TEXT NOT NULL,
                counts_json TEXT NOT NULL,
                features_json TEXT NOT NULL,
                feature_version TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY(session_id, round)
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS session_summaries (
                session_id TEXT PRIMARY KEY,
                user_id TEXT,
                participant_id TEXT NOT NULL,
                features_json TEXT NOT NULL,
                feature_version TEXT NOT NULL,
                label_level TEXT NOT NULL DEFAULT 'unknown',
                label_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_trace_session_open ON trace_buckets(session_id, is_full);"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_attempt_session_open ON attempt_buckets(session_id, is_full);"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_round_participant ON round_summaries(participant_id, created_at);"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_session_participant ON session_summaries(participant_id, created_at);"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_session_label ON session_summaries(label_level);"
        )


def create_session(
    db_path: Path,
    participant_id: str,
    session_id: Optional[str] = None,
    user_id: Optional[str] = None,
    game: Optional[dict[str, Any]] = None,
) -> Optional[dict[str, Any]]:
    session_id = session_id or uuid.uuid4().hex
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO sessions (session_id, user_id, participant_id, game_json)
            VALUES (?, ?, ?, ?)
            """,
            (
                session_id,
                user_id,
                participant_id,
                json.dumps(game or {}, ensure_ascii=False, separators=(",", ":")),
            ),
        )
        conn.commit()
    return get_session(db_path, session_id)


def get_session(db_path: Path, session_id: str) -> Optional[dict[str, Any]]:
    with sqlite3.connect(db_path) as conn:
        row = conn.execute(
            """
            SELECT session_id, user_id, participant_id, status, game_json, created_at
            FROM sessions
            WHERE session_id = ?
            """,
            (session_id,),
        ).fetchone()
    if row is None:
        return None
    session_id, user_id, participant_id, status, game_json, created_at = row
    try:
        game = json.loads(game_json) if game_json else {}
    except json.JSONDecodeError:
        game = {}
    return {
        "sessionId": session_id,
        "userId": user_id,
        "participantId": participant_id,
        "status": status,
        "game": game if isinstance(game, dict) else {},
        "createdAt": created_at,
    }


def session_exists(db_path: Path, session_id: str) -> bool:
    with sqlite3.connect(db_path) as conn:
        row = conn.execute("SELECT 1 FROM sessions WHERE session_id = ?", (session_id,)).fetchone()
    return row is not None


def session_user_id(db_path: Path, session_id: str) -> Optional[str]:
    with sqlite3.connect(db_path) as conn:
        row = conn.execute("SELECT user_id FROM sessions WHERE session_id = ?", (session_id,)).fetchone()
    if row is None:
        return None
    return row[0]
