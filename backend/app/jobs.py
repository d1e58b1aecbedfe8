"""
Work that runs after an ingestion request has been acknowledged.

The job functions never raise: the caller already has its 200, so failures
go to the log and the batch is dropped.
"""
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

from analytics.enrichment import enrich_attempts
from backend.app.buckets import append_attempts, append_samples, get_session_samples
from backend.app.db import session_exists
from backend.app.errors import UnknownSessionError
from data.models import Attempt, InvalidRecordError, PointerSample

logger = logging.getLogger(__name__)


def _load_samples(db_path: Path, session_id: str) -> list[PointerSample]:
    samples = []
    for raw in get_session_samples(db_path, session_id):
        try:
            samples.append(PointerSample.from_dict(raw))
        except InvalidRecordError as exc:
            logger.warning("Skipping stored sample for session %s: %s", session_id, exc)
    return samples


def enrich_and_store(
    db_path: Path,
    session_id: str,
    user_id: Optional[str],
    attempts: list[Attempt],
    capacity: int,
) -> list[dict[str, Any]]:
    if not session_exists(db_path, session_id):
        raise UnknownSessionError(session_id)
    samples = _load_samples(db_path, session_id)
    enriched = enrich_attempts(attempts, samples)
    result = append_attempts(db_path, session_id, user_id, enriched, capacity)
    full = sum(1 for a in enriched if a.get("featureSource") == "full")
    logger.info(
        "Motor attempts logged: session=%s count=%d full=%d bucket=%d",
        session_id,
        result.appended,
        full,
        result.bucket_number,
    )
    return enriched


def ingest_samples_job(
    db_path: Path,
    session_id: str,
    user_id: Optional[str],
    samples: list[dict[str, Any]],
    capacity: int,
) -> None:
    try:
        result = append_samples(db_path, session_id, user_id, samples, capacity)
    except UnknownSessionError as exc:
        logger.warning("Dropping pointer samples: %s", exc)
        return
    except sqlite3.Error:
        logger.exception("Error processing pointer samples for session %s", session_id)
        return
    logger.info(
        "Pointer samples logged: session=%s count=%d bucket=%d",
        session_id,
        result.appended,
        result.bucket_number,
    )


def ingest_attempts_job(
    db_path: Path,
    session_id: str,
    user_id: Optional[str],
    attempts: list[Attempt],
    capacity: int,
) -> None:
    try:
        enrich_and_store(db_path, session_id, user_id, attempts, capacity)
    except UnknownSessionError as exc:
        logger.warning("Dropping motor attempts: %s", exc)
    except sqlite3.Error:
        logger.exception("Error processing motor attempts for session %s", session_id)
