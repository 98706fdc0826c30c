"""Centralized configuration for the digest backend.

Re-exports everything from digestq.infrastructure.settings so callers can
import a single module, then adds typed constants for token budgeting,
categorization, the LLM and the API. Environment variable overrides use safe
defaults so the app starts without extra env configuration.
"""

from __future__ import annotations

import os

from digestq.infrastructure.settings import *  # noqa: F401, F403  re-export existing


def _env(key: str, default: str) -> str:
    return os.getenv(key, default)


# --- App ---
APP_VERSION: str = "1.0.0"

# --- Token Budget ---
DEFAULT_TOKEN_LIMIT: int = int(_env("DIGESTQ_TOKEN_LIMIT", "10000"))
CHARS_PER_TOKEN: int = 4
MESSAGE_MAX_CHARS: int = int(_env("DIGESTQ_MESSAGE_MAX_CHARS", "4000"))
# Split points are only accepted in the last 20% of the window.
NATURAL_BREAK_RATIO: float = 0.8

# --- Categorization ---
PREVIEW_MAX_CHARS: int = 200
PRECLASSIFY_MIN_CONFIDENCE: float = 0.8

# --- LLM ---
LLM_TIMEOUT_SECONDS: int = int(_env("DIGESTQ_LLM_TIMEOUT", "30"))
LLM_MAX_RETRIES: int = int(_env("DIGESTQ_LLM_MAX_RETRIES", "3"))

# --- API ---
API_BATCH_SIZE_MAX: int = 500
