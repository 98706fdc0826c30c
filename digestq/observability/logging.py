"""
Logger setup for digestq.

One stream handler is attached to the root logger the first time a logger is
requested. Level comes from DIGESTQ_LOG_LEVEL, then LOG_LEVEL, then INFO.
Session-scoped code logs through SessionLogger so every line carries a
redacted user id.
"""

from __future__ import annotations

import logging
import os
from collections.abc import MutableMapping
from typing import Any, Final

from digestq.utils.redaction import redact

_HANDLER_ATTACHED: bool = False
_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _resolve_level() -> int:
    level_name = os.getenv("DIGESTQ_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "INFO"
    return getattr(logging, level_name.upper(), logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger; attaches the shared stream handler on first use."""
    global _HANDLER_ATTACHED

    level = _resolve_level()
    root = logging.getLogger()
    if not _HANDLER_ATTACHED:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
        _HANDLER_ATTACHED = True
    root.setLevel(level)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger


class SessionLogger(logging.LoggerAdapter):
    """Prefixes messages with the (hashed) user id of a digest session."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[user={self.extra['user']}] {msg}", kwargs


def session_logger(logger: logging.Logger, user_id: str | None) -> SessionLogger:
    return SessionLogger(logger, {"user": redact(user_id)})
