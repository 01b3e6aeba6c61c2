"""Logging setup shared by the scripts."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

LEVEL_ENV = "SPECTRAL_STORE_LOG_LEVEL"
JSON_LOGS_ENV = "SPECTRAL_STORE_JSON_LOGS"


def _json_logs_enabled() -> bool:
    return os.getenv(JSON_LOGS_ENV, "false").strip().lower() in {"1", "true", "yes"}


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure root logging once. Explicit arguments beat SPECTRAL_STORE_* env vars."""
    if level is None:
        level = os.getenv(LEVEL_ENV, "INFO")
    if json_logs is None:
        json_logs = _json_logs_enabled()

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(message)s" if json_logs else "%(asctime)s %(levelname)s:%(name)s:%(message)s",
    )


def log_event(logger: logging.Logger, event: str, *, json_logs: bool | None = None, **fields: Any) -> None:
    """Emit one structured event at INFO."""
    if json_logs is None:
        json_logs = _json_logs_enabled()

    payload = {"event": event, **fields}
    if json_logs:
        logger.info(json.dumps(payload, default=str))
    else:
        logger.info(payload)
