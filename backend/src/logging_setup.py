"""
Structured JSON logging for the backend ingestion service.

``configure_logging`` installs a single JSON formatter on the root logger.
``log_config_summary`` logs the effective configuration at startup with the
broker password and database credentials masked.

CHANGELOG:
- 2026-10-18: Mask credentials embedded in DATABASE_URL (STORY-109)
- 2026-10-18: Initial creation (STORY-106)
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from datetime import UTC, datetime

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

logger = logging.getLogger(__name__)


class _JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger, writing to stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def masked_secret(value: str | None) -> str:
    """Return a short non-reversible fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def masked_database_url(url: str) -> str:
    """Render *url* with its password hidden."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable>"


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup, excluding secrets.

    Args:
        settings: A BackendSettings instance (or any object with the same attrs).
    """
    logger.info(
        "Backend starting with config: "
        "mqtt_broker_url=%s, mqtt_username=%s, mqtt_password_masked=%s, "
        "database_url=%s, ingest_enabled=%s, topic_root=%s, "
        "mqtt_keepalive_s=%s, mqtt_connect_timeout_s=%s, mqtt_reconnect_period_s=%s",
        settings.mqtt_broker_url,  # type: ignore[attr-defined]
        settings.mqtt_username or "-",  # type: ignore[attr-defined]
        masked_secret(settings.mqtt_password),  # type: ignore[attr-defined]
        masked_database_url(settings.database_url),  # type: ignore[attr-defined]
        settings.ingest_enabled,  # type: ignore[attr-defined]
        settings.topic_root,  # type: ignore[attr-defined]
        settings.mqtt_keepalive_s,  # type: ignore[attr-defined]
        settings.mqtt_connect_timeout_s,  # type: ignore[attr-defined]
        settings.mqtt_reconnect_period_s,  # type: ignore[attr-defined]
    )
