"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "agora.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime settings, usually read from the environment."""

    # Rate limiting
    address_capacity: float = 100.0
    address_refill_rate: float = 10.0
    credential_capacity: float = 60.0
    credential_refill_rate: float = 1.0
    sweep_interval: float = 300.0
    bucket_idle_seconds: float = 3600.0

    # Sessions and protocol
    operation_timeout: float = 10.0
    session_drain_seconds: float = 1.0
    heartbeat_seconds: float = 30.0
    session_queue_size: int = 1000

    # Change feed and cache
    feed_retry_delay: float = 5.0
    feed_snapshot_size: int = 100
    cache_size: int = 100

    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            address_capacity=_env_float(
                "RATE_LIMIT_ADDRESS_CAPACITY", defaults.address_capacity
            ),
            address_refill_rate=_env_float(
                "RATE_LIMIT_ADDRESS_REFILL", defaults.address_refill_rate
            ),
            credential_capacity=_env_float(
                "RATE_LIMIT_CREDENTIAL_CAPACITY", defaults.credential_capacity
            ),
            credential_refill_rate=_env_float(
                "RATE_LIMIT_CREDENTIAL_REFILL", defaults.credential_refill_rate
            ),
            sweep_interval=_env_float(
                "RATE_LIMIT_SWEEP_INTERVAL", defaults.sweep_interval
            ),
            bucket_idle_seconds=_env_float(
                "RATE_LIMIT_IDLE_SECONDS", defaults.bucket_idle_seconds
            ),
            operation_timeout=_env_float(
                "OPERATION_TIMEOUT", defaults.operation_timeout
            ),
            session_drain_seconds=_env_float(
                "SESSION_DRAIN_SECONDS", defaults.session_drain_seconds
            ),
            session_queue_size=_env_int(
                "SESSION_QUEUE_SIZE", defaults.session_queue_size
            ),
            heartbeat_seconds=_env_float(
                "HEARTBEAT_SECONDS", defaults.heartbeat_seconds
            ),
            feed_retry_delay=_env_float("FEED_RETRY_DELAY", defaults.feed_retry_delay),
            feed_snapshot_size=_env_int(
                "FEED_SNAPSHOT_SIZE", defaults.feed_snapshot_size
            ),
            cache_size=_env_int("CACHE_SIZE", defaults.cache_size),
            cors_origins=_env_list("CORS_ORIGINS", defaults.cors_origins),
        )
