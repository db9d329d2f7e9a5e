from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from .config import Settings


logger = logging.getLogger(__name__)


def build_connect_args(database_url: str, timeout_seconds: float) -> Dict[str, Any]:
    """Driver-level timeouts so no store call blocks indefinitely."""
    backend = make_url(database_url).get_backend_name()
    timeout_ms = int(timeout_seconds * 1000)

    if backend == "postgresql":
        # statement_timeout covers upserts and bulk inserts; connect_timeout is whole seconds
        return {
            "connect_timeout": max(1, int(timeout_seconds)),
            "options": f"-c statement_timeout={timeout_ms}",
        }
    if backend == "sqlite":
        return {"timeout": timeout_seconds, "check_same_thread": False}
    return {}


def create_store_engine(settings: Settings, pool_size: int = 5) -> Engine:
    backend = make_url(settings.database_url).get_backend_name()
    kwargs: Dict[str, Any] = {
        "pool_pre_ping": True,
        "connect_args": build_connect_args(settings.database_url, settings.store_timeout_seconds),
    }
    if backend != "sqlite":
        kwargs.update(
            pool_size=pool_size,
            max_overflow=10,
            pool_recycle=300,
            pool_timeout=settings.store_timeout_seconds,
        )

    # Never log the password
    logger.info("[DB] Creating engine url=%s timeout=%.1fs",
                settings.safe_database_url, settings.store_timeout_seconds)
    return create_engine(settings.database_url, **kwargs)


def check_connection(engine: Engine) -> bool:
    """Connectivity probe; logs the outcome instead of raising."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Connection test OK")
        return True
    except Exception:
        logger.exception("[DB] Connection test FAILED")
        return False
