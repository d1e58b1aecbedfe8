import os
from dataclasses import dataclass
from pathlib import Path

from config.settings import StoreConfig

_STORE_DEFAULTS = StoreConfig()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    db_path: Path
    trace_bucket_capacity: int = _STORE_DEFAULTS.trace_bucket_capacity
    attempt_bucket_capacity: int = _STORE_DEFAULTS.attempt_bucket_capacity
    raw_retention_days: int = _STORE_DEFAULTS.raw_retention_days
    max_batch_items: int = 10000
    log_level: str = "INFO"
    feature_version: str = "v1"


def load_settings() -> Settings:
    root_dir = Path(__file__).resolve().parents[2]
    db_default = root_dir / "backend" / "data" / "motor.db"
    db_path = Path(os.getenv("MOTORCHECK_DB_PATH", str(db_default))).expanduser()
    return Settings(
        db_path=db_path,
        trace_bucket_capacity=max(1, _env_int("MOTORCHECK_TRACE_BUCKET_CAPACITY", _STORE_DEFAULTS.trace_bucket_capacity)),
        attempt_bucket_capacity=max(
            1, _env_int("MOTORCHECK_ATTEMPT_BUCKET_CAPACITY", _STORE_DEFAULTS.attempt_bucket_capacity)
        ),
        raw_retention_days=max(0, _env_int("MOTORCHECK_RAW_RETENTION_DAYS", _STORE_DEFAULTS.raw_retention_days)),
        max_batch_items=max(1, _env_int("MOTORCHECK_MAX_BATCH_ITEMS", 10000)),
        log_level=os.getenv("MOTORCHECK_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        feature_version=os.getenv("MOTORCHECK_FEATURE_VERSION", "v1").strip() or "v1",
    )
