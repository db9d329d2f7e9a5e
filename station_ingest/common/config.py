from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv

from ..domain.errors import ConfigError


DEFAULT_ENV_FILE = ".env"

_TRUE_VALUES = ("true", "1", "yes", "on")


@dataclass(frozen=True)
class Settings:
    mqtt_host: str
    mqtt_port: int
    mqtt_topic: str
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_client_id: str

    database_url: str

    batch_size: int
    batch_interval_seconds: float
    store_timeout_seconds: float

    ingest_workers: int
    ingest_queue_size: int
    ingest_enqueue_timeout: float

    preload_cache: bool
    log_level: str

    @property
    def safe_database_url(self) -> str:
        """database_url without the password, for logs."""
        scheme, sep, rest = self.database_url.partition("://")
        if not sep or "@" not in rest:
            return self.database_url
        credentials, _, host = rest.rpartition("@")
        user = credentials.split(":", 1)[0]
        return f"{scheme}://{user}:***@{host}"


def _get_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if not value > 0:
        raise ConfigError(f"{name} must be > 0, got {value}")
    return value


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    # Supabase / plain PostgreSQL credentials
    db_host = os.getenv("DB_HOST", "localhost")
    db_port = _get_int("DB_PORT", 5432)
    db_user = os.getenv("DB_USER", "postgres")
    db_password = os.getenv("DB_PASSWORD", "")
    db_name = os.getenv("DB_NAME", "postgres")
    return (
        f"postgresql+psycopg2://{quote_plus(db_user)}:{quote_plus(db_password)}"
        f"@{db_host}:{db_port}/{db_name}"
    )


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("INGEST_ENV_FILE", DEFAULT_ENV_FILE)
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        mqtt_host=os.getenv("MQTT_HOST", "localhost"),
        mqtt_port=_get_int("MQTT_PORT", 1883),
        mqtt_topic=os.getenv("MQTT_TOPIC", "application/#"),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_client_id=os.getenv("MQTT_CLIENT_ID", "station-ingest"),
        database_url=_database_url(),
        batch_size=_get_int("BATCH_SIZE", 100),
        batch_interval_seconds=_get_float("BATCH_INTERVAL_SECONDS", 5.0),
        store_timeout_seconds=_get_float("STORE_TIMEOUT_SECONDS", 10.0),
        ingest_workers=_get_int("INGEST_WORKERS", 4),
        ingest_queue_size=_get_int("INGEST_QUEUE_SIZE", 1000),
        ingest_enqueue_timeout=_get_float("INGEST_ENQUEUE_TIMEOUT", 5.0),
        preload_cache=_get_bool("PRELOAD_CACHE", True),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
