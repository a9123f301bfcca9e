"""Application configuration helpers."""

from __future__ import annotations

import logging
import os
import re

from dataclasses import dataclass, field
from functools import cached_property, lru_cache
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from redis import Redis


load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE_TIME = "02:00"
DEFAULT_SNAPSHOT_EXEMPT_EVENTS = (
    "login",
    "logout",
    "password_reset",
    "password_reset_requested",
    "email_verified",
    "export",
)

_SCHEDULE_TIME_PATTERN = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_origins(raw: Optional[str]) -> List[str]:
    if not raw:
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _parse_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_backoff(
    raw: Optional[str], default: Tuple[float, ...]
) -> Tuple[float, ...]:
    if not raw:
        return default
    try:
        delays = tuple(float(item) for item in _parse_list(raw))
    except ValueError:
        return default
    if not delays or any(delay < 0 for delay in delays):
        return default
    return delays


def parse_schedule_time(raw: Optional[str]) -> str:
    """Return ``raw`` when it is a valid ``HH:MM`` time, else the default."""

    if raw is None:
        return DEFAULT_SCHEDULE_TIME
    candidate = raw.strip()
    if not _SCHEDULE_TIME_PATTERN.match(candidate):
        logger.warning(
            "config.invalid_schedule_time value=%r fallback=%s",
            raw,
            DEFAULT_SCHEDULE_TIME,
        )
        return DEFAULT_SCHEDULE_TIME
    return candidate


@dataclass(frozen=True)
class Config:
    """Central application configuration."""

    database_url: str
    redis_url: Optional[str]
    pool_size: int = 5
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800
    app_port: int = 5001
    sqlalchemy_echo: bool = False
    flask_secret: str = "dev"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    jwt_secret: str = "change_me"
    jwt_algorithm: str = "HS256"
    require_auth: bool = True
    retention_days: int = 90
    scheduled_cleanup_enabled: bool = True
    cleanup_schedule_time: str = DEFAULT_SCHEDULE_TIME
    model_types_cache_ttl: int = 3600
    export_chunk_size: int = 500
    record_max_attempts: int = 3
    record_backoff: Tuple[float, ...] = (1.0, 5.0, 10.0)
    fallback_log_path: str = "storage/audit-fallback.log"
    queue_name: str = "audit"
    snapshot_exempt_events: Tuple[str, ...] = DEFAULT_SNAPSHOT_EXEMPT_EVENTS
    database_ssl_mode: Optional[str] = None

    @cached_property
    def redis(self) -> Optional[Redis]:
        """Create a Redis client if a URL is configured."""

        if not self.redis_url:
            return None
        return Redis.from_url(self.redis_url, decode_responses=True)

    @property
    def schedule_hour_minute(self) -> Tuple[int, int]:
        hour, minute = parse_schedule_time(self.cleanup_schedule_time).split(
            ":"
        )
        return int(hour), int(minute)


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Return the singleton configuration instance."""

    default_db = "sqlite+pysqlite:///:memory:"
    exempt = _parse_list(os.getenv("AUDITLOG_SNAPSHOT_EXEMPT_EVENTS"))
    return Config(
        database_url=os.getenv("DATABASE_URL", default_db),
        redis_url=os.getenv("REDIS_URL"),
        pool_size=_parse_int(os.getenv("DB_POOL_SIZE"), 5),
        max_overflow=_parse_int(os.getenv("DB_MAX_OVERFLOW"), 5),
        pool_timeout=_parse_int(os.getenv("DB_POOL_TIMEOUT"), 30),
        pool_recycle=_parse_int(os.getenv("DB_POOL_RECYCLE"), 1800),
        app_port=_parse_int(os.getenv("APP_PORT"), 5001),
        sqlalchemy_echo=_parse_bool(os.getenv("SQLALCHEMY_ECHO")),
        flask_secret=os.getenv("FLASK_SECRET", "dev"),
        cors_origins=_parse_origins(os.getenv("CORS_ORIGINS")),
        jwt_secret=os.getenv("JWT_SECRET", "change_me"),
        jwt_algorithm=os.getenv("JWT_ALGO", "HS256"),
        require_auth=_parse_bool(os.getenv("AUDITLOG_REQUIRE_AUTH"), True),
        retention_days=_parse_int(os.getenv("AUDITLOG_RETENTION_DAYS"), 90),
        scheduled_cleanup_enabled=_parse_bool(
            os.getenv("AUDITLOG_SCHEDULED_CLEANUP_ENABLED"), True
        ),
        cleanup_schedule_time=parse_schedule_time(
            os.getenv("AUDITLOG_CLEANUP_SCHEDULE_TIME")
        ),
        model_types_cache_ttl=_parse_int(
            os.getenv("AUDITLOG_MODEL_TYPES_CACHE_TTL"), 3600
        ),
        export_chunk_size=_parse_int(
            os.getenv("AUDITLOG_EXPORT_CHUNK_SIZE"), 500
        ),
        record_max_attempts=max(
            _parse_int(os.getenv("AUDITLOG_RECORD_MAX_ATTEMPTS"), 3), 1
        ),
        record_backoff=_parse_backoff(
            os.getenv("AUDITLOG_RECORD_BACKOFF"), (1.0, 5.0, 10.0)
        ),
        fallback_log_path=os.getenv(
            "AUDITLOG_FALLBACK_LOG_PATH", "storage/audit-fallback.log"
        ),
        queue_name=os.getenv("AUDITLOG_QUEUE_NAME", "audit"),
        snapshot_exempt_events=(
            tuple(exempt) if exempt else DEFAULT_SNAPSHOT_EXEMPT_EVENTS
        ),
        database_ssl_mode=os.getenv("DATABASE_SSL_MODE"),
    )


def reset_config(
    overrides: Optional[dict[str, Optional[str]]] = None,
) -> Config:
    """Reset cached configuration and optionally override env vars."""

    if overrides:
        for key, value in overrides.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
    get_config.cache_clear()
    return get_config()
