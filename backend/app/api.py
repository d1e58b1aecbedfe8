import logging
import sqlite3
from typing import Any, Callable, Optional

from fastapi import APIRouter, BackgroundTasks, FastAPI, HTTPException, Request

from backend.app import buckets, summaries
from backend.app.config import Settings, load_settings
from backend.app.db import create_session, ensure_db, get_session, session_exists, session_user_id
from backend.app.jobs import ingest_attempts_job, ingest_samples_job
from backend.app.log import setup_logging
from data.models import Attempt, InvalidRecordError, Label, PointerSample, parse_round

logger = logging.getLogger(__name__)

router = APIRouter()


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _require_str(body: dict[str, Any], field: str) -> str:
    value = body.get(field)
    if value is None or not str(value).strip():
        raise HTTPException(status_code=400, detail=f"{field}_required")
    return str(value).strip()


def _optional_str(body: dict[str, Any], field: str) -> Optional[str]:
    value = body.get(field)
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


def _parse_round(value: Any) -> int:
    try:
        return parse_round(value)
    except InvalidRecordError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _parse_batch(body: dict[str, Any], field: str, item_name: str, parse: Callable[[Any], Any], limit: int) -> list:
    items = body.get(field)
    if not isinstance(items, list) or not items:
        raise HTTPException(status_code=400, detail=f"{field}_must_be_nonempty_list")
    if len(items) > limit:
        raise HTTPException(status_code=400, detail="batch_too_large")
    parsed = []
    for idx, raw in enumerate(items):
        try:
            parsed.append(parse(raw))
        except InvalidRecordError as exc:
            raise HTTPException(status_code=400, detail=f"{item_name}_{idx}_invalid:{exc}")
    return parsed


def _require_session(settings: Settings, session_id: str) -> None:
    if not session_exists(settings.db_path, session_id):
        raise HTTPException(status_code=404, detail=f"unknown_session:{session_id}")


@router.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


# ---- sessions ----

@router.post("/api/sessions")
def register_session(body: dict[str, Any], request: Request) -> dict[str, Any]:
    settings = _settings(request)
    participant_id = _require_str(body, "participantId")
    game = body.get("game")
    if game is not None and not isinstance(game, dict):
        raise HTTPException(status_code=400, detail="game_must_be_object")
    try:
        session = create_session(
            settings.db_path,
            participant_id=participant_id,
            session_id=_optional_str(body, "sessionId"),
            user_id=_optional_str(body, "userId"),
            game=game,
        )
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="session_already_exists")
    return {"ok": True, "session": session}


@router.get("/api/sessions/{session_id}")
def read_session(session_id: str, request: Request) -> dict[str, Any]:
    session = get_session(_settings(request).db_path, session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"unknown_session:{session_id}")
    return {"ok": True, "session": session}


# ---- pointer trace ----

@router.post("/api/motor/trace")
def log_pointer_samples(body: dict[str, Any], request: Request, background_tasks: BackgroundTasks) -> dict[str, Any]:
    settings = _settings(request)
    session_id = _require_str(body, "sessionId")
    samples = _parse_batch(body, "samples", "sample", PointerSample.from_dict, settings.max_batch_items)
    _require_session(settings, session_id)

    user_id = _optional_str(body, "userId") or session_user_id(settings.db_path, session_id)
    background_tasks.add_task(
        ingest_samples_job,
        settings.db_path,
        session_id,
        user_id,
        [s.to_dict() for s in samples],
        settings.trace_bucket_capacity,
    )
    return {"ok": True, "received": len(samples), "processing": True}


@router.get("/api/motor/trace/{session_id}")
def get_pointer_samples(
    session_id: str,
    request: Request,
    round: Optional[int] = None,
    start: Optional[float] = None,
    end: Optional[float] = None,
) -> dict[str, Any]:
    settings = _settings(request)
    round_no = _parse_round(round) if round is not None else None
    if start is not None or end is not None:
        samples = buckets.get_samples_in_range(settings.db_path, session_id, start, end, round_no)
    else:
        samples = buckets.get_session_samples(settings.db_path, session_id, round_no)
    return {
        "ok": True,
        "sessionId": session_id,
        "round": round_no if round_no is not None else "all",
        "count": len(samples),
        "buckets": buckets.list_buckets(settings.db_path, buckets.TRACE, session_id),
        "samples": samples,
    }


# ---- attempts ----

@router.post("/api/motor/attempts")
def log_attempts(body: dict[str, Any], request: Request, background_tasks: BackgroundTasks) -> dict[str, Any]:
    settings = _settings(request)
    session_id = _require_str(body, "sessionId")
    attempts = _parse_batch(body, "attempts", "attempt", Attempt.from_dict, settings.max_batch_items)
    _require_session(settings, session_id)

    user_id = _optional_str(body, "userId") or session_user_id(settings.db_path, session_id)
    background_tasks.add_task(
        ingest_attempts_job,
        settings.db_path,
        session_id,
        user_id,
        attempts,
        settings.attempt_bucket_capacity,
    )
    return {"ok": True, "received": len(attempts), "processing": True}


@router.get("/api/motor/attempts/{session_id}")
def get_attempts(session_id: str, request: Request, round: Optional[int] = None) -> dict[str, Any]:
    settings = _settings(request)
    round_no = _parse_round(round) if round is not None else None
    attempts = buckets.get_session_attempts(settings.db_path, session_id, round_no)
    return {
        "ok": True,
        "sessionId": session_id,
        "round": round_no if round_no is not None else "all",
        "count": len(attempts),
        "buckets": buckets.list_buckets(settings.db_path, buckets.ATTEMPT, session_id),
        "attempts": attempts,
    }


@router.get("/api/motor/attempts/{session_id}/stats")
def get_attempt_stats(session_id: str, request: Request) -> dict[str, Any]:
    stats = buckets.get_attempt_stats(_settings(request).db_path, session_id)
    return {"ok": True, "sessionId": session_id, **stats}


# ---- summaries ----

@router.post("/api/motor/summary/round")
def compute_round_summary(body: dict[str, Any], request: Request) -> dict[str, Any]:
    settings = _settings(request)
    session_id = _require_str(body, "sessionId")
    participant_id = _require_str(body, "participantId")
    if body.get("round") is None:
        raise HTTPException(status_code=400, detail="round_required")
    round_no = _parse_round(body.get("round"))

    summary = summaries.save_round_summary(
        settings.db_path, session_id, participant_id, round_no, settings.feature_version
    )
    if summary is None:
        raise HTTPException(status_code=404, detail="no_attempts_for_round")
    return {"ok": True, "summary": summary}


@router.post("/api/motor/summary/session")
def compute_session_summary(body: dict[str, Any], request: Request) -> dict[str, Any]:
    settings = _settings(request)
    session_id = _require_str(body, "sessionId")
    participant_id = _require_str(body, "participantId")
    label = None
    if body.get("label") is not None:
        try:
            label = Label.from_dict(body["label"])
        except InvalidRecordError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    summary = summaries.save_session_summary(
        settings.db_path, session_id, participant_id, label, settings.feature_version
    )
    return {"ok": True, "summary": summary}


@router.get("/api/motor/summary/round/{session_id}/{round_no}")
def get_round_summary(session_id: str, round_no: int, request: Request) -> dict[str, Any]:
    summary = summaries.get_round_summary(_settings(request).db_path, session_id, _parse_round(round_no))
    if summary is None:
        raise HTTPException(status_code=404, detail="summary_not_found")
    return {"ok": True, "summary": summary}


@router.get("/api/motor/summary/session/{session_id}")
def get_session_summary(session_id: str, request: Request) -> dict[str, Any]:
    summary = summaries.get_session_summary(_settings(request).db_path, session_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="summary_not_found")
    return {"ok": True, "summary": summary}


@router.patch("/api/motor/summary/session/{session_id}/label")
def update_label(session_id: str, body: dict[str, Any], request: Request) -> dict[str, Any]:
    try:
        label = Label.from_dict(body.get("label"))
    except InvalidRecordError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    summary = summaries.update_label(_settings(request).db_path, session_id, label)
    if summary is None:
        raise HTTPException(status_code=404, detail="summary_not_found")
    return {"ok": True, "summary": summary}


@router.get("/api/motor/training")
def get_training_data(
    request: Request,
    labelLevel: Optional[str] = None,
    participantId: Optional[str] = None,
    limit: int = 1000,
    offset: int = 0,
) -> dict[str, Any]:
    safe_limit = max(1, min(5000, int(limit)))
    safe_offset = max(0, int(offset))
    rows, total = summaries.query_training_data(
        _settings(request).db_path,
        label_level=labelLevel,
        participant_id=participantId,
        limit=safe_limit,
        offset=safe_offset,
    )
    return {
        "ok": True,
        "summaries": rows,
        "total": total,
        "limit": safe_limit,
        "offset": safe_offset,
    }


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()

    app = FastAPI(title="Motorcheck API", version="0.1.0")
    app.state.settings = settings
    app.include_router(router)

    @app.on_event("startup")
    def _startup() -> None:
        setup_logging(settings.log_level)
        ensure_db(settings.db_path)
        buckets.purge_expired_buckets(settings.db_path, settings.raw_retention_days)
        logger.info("Motorcheck API ready, db=%s", settings.db_path)

    return app


app = create_app()
