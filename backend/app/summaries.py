import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

from analytics.metrics import round_counts, summarize_round, summarize_session
from backend.app.buckets import get_session_attempts
from backend.app.db import session_user_id
from data.models import ROUNDS, Label

logger = logging.getLogger(__name__)


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _load_dict(raw: Optional[str]) -> dict[str, Any]:
    try:
        value = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def compute_round_features(db_path: Path, session_id: str, round_no: int) -> Optional[dict[str, Any]]:
    attempts = get_session_attempts(db_path, session_id, round_no)
    return summarize_round(attempts)


def compute_session_features(db_path: Path, session_id: str) -> dict[str, Any]:
    per_round = {r: compute_round_features(db_path, session_id, r) for r in ROUNDS}
    return summarize_session(per_round)


def save_round_summary(
    db_path: Path,
    session_id: str,
    participant_id: str,
    round_no: int,
    feature_version: str = "v1",
) -> Optional[dict[str, Any]]:
    features = compute_round_features(db_path, session_id, round_no)
    if features is None:
        return None

    user_id = session_user_id(db_path, session_id)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO round_summaries (
                session_id, round, user_id, participant_id, counts_json, features_json, feature_version
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id, round) DO UPDATE SET
                user_id = excluded.user_id,
                participant_id = excluded.participant_id,
                counts_json = excluded.counts_json,
                features_json = excluded.features_json,
                feature_version = excluded.feature_version,
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                session_id,
                round_no,
                user_id,
                participant_id,
                _dump(round_counts(features)),
                _dump(features),
                feature_version,
            ),
        )
        conn.commit()

    logger.info("Round summary computed: session=%s round=%s hitRate=%s", session_id, round_no, features["hitRate"])
    return get_round_summary(db_path, session_id, round_no)


def get_round_summary(db_path: Path, session_id: str, round_no: int) -> Optional[dict[str, Any]]:
    with sqlite3.connect(db_path) as conn:
        row = conn.execute(
            """
            SELECT session_id, round, user_id, participant_id, counts_json, features_json,
                   feature_version, created_at, updated_at
            FROM round_summaries
            WHERE session_id = ? AND round = ?
            """,
            (session_id, round_no),
        ).fetchone()
    if row is None:
        return None
    session_id, round_no, user_id, participant_id, counts_json, features_json, version, created_at, updated_at = row
    return {
        "sessionId": session_id,
        "round": round_no,
        "userId": user_id,
        "participantId": participant_id,
        "counts": _load_dict(counts_json),
        "features": _load_dict(features_json),
        "featureVersion": version,
        "createdAt": created_at,
        "updatedAt": updated_at,
    }


def save_session_summary(
    db_path: Path,
    session_id: str,
    participant_id: str,
    label: Optional[Label] = None,
    feature_version: str = "v1",
) -> dict[str, Any]:
    """
    Recompute and upsert the session summary. Without an explicit label the
    stored one is kept, so annotation survives feature recomputation.
    """
    features = compute_session_features(db_path, session_id)
    user_id = session_user_id(db_path, session_id)
    new_label = label or Label()

    label_update = ""
    if label is not None:
        label_update = "label_level = excluded.label_level, label_json = excluded.label_json,"

    with sqlite3.connect(db_path) as conn:
        conn.execute(
            f"""
            INSERT INTO session_summaries (
                session_id, user_id, participant_id, features_json, feature_version, label_level, label_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
                user_id = excluded.user_id,
                participant_id = excluded.participant_id,
                features_json = excluded.features_json,
                feature_version = excluded.feature_version,
                {label_update}
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                session_id,
                user_id,
                participant_id,
                _dump(features),
                feature_version,
                new_label.level,
                _dump(new_label.to_dict()),
            ),
        )
        conn.commit()

    logger.info("Session summary computed: session=%s features=%d", session_id, len(features))
    summary = get_session_summary(db_path, session_id)
    return summary if summary is not None else {}


_SESSION_COLUMNS = """
    session_id, user_id, participant_id, features_json, feature_version, label_json, created_at, updated_at
"""


def _session_row_to_dict(row: tuple) -> dict[str, Any]:
    session_id, user_id, participant_id, features_json, version, label_json, created_at, updated_at = row
    return {
        "sessionId": session_id,
        "userId": user_id,
        "participantId": participant_id,
        "features": _load_dict(features_json),
        "featureVersion": version,
        "label": _load_dict(label_json),
        "createdAt": created_at,
        "updatedAt": updated_at,
    }


def get_session_summary(db_path: Path, session_id: str) -> Optional[dict[str, Any]]:
    with sqlite3.connect(db_path) as conn:
        row = conn.execute(
            f"SELECT {_SESSION_COLUMNS} FROM session_summaries WHERE session_id = ?",
            (session_id,),
        ).fetchone()
    if row is None:
        return None
    return _session_row_to_dict(row)


def update_label(db_path: Path, session_id: str, label: Label) -> Optional[dict[str, Any]]:
    with sqlite3.connect(db_path) as conn:
        cur = conn.execute(
            """
            UPDATE session_summaries
            SET label_level = ?, label_json = ?, updated_at = CURRENT_TIMESTAMP
            WHERE session_id = ?
            """,
            (label.level, _dump(label.to_dict()), session_id),
        )
        conn.commit()
        updated = cur.rowcount
    if not updated:
        return None
    logger.info("Label updated: session=%s level=%s source=%s", session_id, label.level, label.source)
    return get_session_summary(db_path, session_id)


def query_training_data(
    db_path: Path,
    label_level: Optional[str] = None,
    participant_id: Optional[str] = None,
    limit: int = 1000,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    safe_limit = max(1, min(5000, int(limit)))
    safe_offset = max(0, int(offset))

    clauses = []
    params: list[Any] = []
    if label_level:
        clauses.append("label_level = ?")
        params.append(label_level)
    if participant_id:
        clauses.append("participant_id = ?")
        params.append(participant_id)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    with sqlite3.connect(db_path) as conn:
        total = conn.execute(f"SELECT COUNT(*) FROM session_summaries {where}", params).fetchone()[0]
        rows = conn.execute(
            f"""
            SELECT {_SESSION_COLUMNS}
            FROM session_summaries
            {where}
            ORDER BY created_at DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            [*params, safe_limit, safe_offset],
        ).fetchall()
    return [_session_row_to_dict(r) for r in rows], int(total)
