from dataclasses import dataclass
import os
from pathlib import Path

try:
    from dotenv import load_dotenv
    load_dotenv()
except Exception:
    pass


@dataclass(frozen=True)
class Settings:
    db_path: Path
    kv_dir: Path
    lms_base_url: str
    lms_token: str
    user_id: str
    fetch_concurrency: int
    submission_concurrency: int
    undo_seconds: float
    fetch_interval_minutes: int
    cache_ttl_seconds: float
    log_level: str
    timezone: str


def _int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise RuntimeError(f"{name} must not be negative, got {value}")
    return value


def load_settings() -> Settings:
    db_raw = os.getenv("DUESYNC_DB_PATH", "data/duesync.db").strip()
    kv_raw = os.getenv("DUESYNC_KV_DIR", "data/kv").strip()
    user_id = os.getenv("DUESYNC_USER_ID", "local").strip()
    log_level = os.getenv("DUESYNC_LOG_LEVEL", "INFO").strip().upper()
    tz = os.getenv("DUESYNC_TZ", "UTC").strip() or "UTC"

    if not user_id:
        raise RuntimeError("DUESYNC_USER_ID must not be empty")

    # LMS credentials may also come from the settings table
    return Settings(
        db_path=Path(db_raw),
        kv_dir=Path(kv_raw),
        lms_base_url=os.getenv("LMS_BASE_URL", "").strip(),
        lms_token=os.getenv("LMS_TOKEN", "").strip(),
        user_id=user_id,
        fetch_concurrency=_int("DUESYNC_FETCH_CONCURRENCY", 5),
        submission_concurrency=_int("DUESYNC_SUBMISSION_CONCURRENCY", 4),
        undo_seconds=_float("DUESYNC_UNDO_SECONDS", 7),
        fetch_interval_minutes=_int("DUESYNC_FETCH_INTERVAL_MINUTES", 60),
        cache_ttl_seconds=_float("DUESYNC_CACHE_TTL_SECONDS", 300),
        log_level=log_level,
        timezone=tz,
    )
