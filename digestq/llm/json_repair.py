"""JSON extraction and repair for LLM responses.

Handles common LLM JSON formatting issues:
- Markdown code blocks
- Prose before/after the JSON payload
- Missing commas between fields
- Trailing commas
"""

from __future__ import annotations

import json
import re
from typing import Any

from digestq.observability.logging import get_logger

logger = get_logger(__name__)


def _strip_fences(text: str) -> str:
    text = re.sub(r"```json\s*", "", text)
    text = re.sub(r"```\s*", "", text)
    return text.strip()


def _outer_json(text: str) -> str | None:
    """Widest {...} or [...] span in the text, whichever starts first."""
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    if end <= start:
        return None
    return text[start : end + 1]


def extract_json(text: str) -> Any:
    """Parse JSON from a model response, repairing it if needed.

    Raises:
        json.JSONDecodeError: If the text cannot be repaired into valid JSON
    """
    text = _strip_fences(text)

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("JSON parse error (attempting repair): %s", e)

        json_text = _outer_json(text)
        if json_text is None:
            raise

        # Attempt 1: payload surrounded by prose
        try:
            return json.loads(json_text)
        except json.JSONDecodeError:
            pass

        # Attempt 2: missing commas between fields
        repaired = re.sub(r'"\s*\n\s*"', '",\n"', json_text)
        repaired = re.sub(r"(\d+\.?\d*|true|false|null)\s*\n\s*\"", r'\1,\n"', repaired)
        repaired = re.sub(r'\}\s*\n\s*"', '},\n"', repaired)
        repaired = re.sub(r'\]\s*\n\s*"', '],\n"', repaired)
        repaired = re.sub(r"\}\s*\n\s*\{", "},\n{", repaired)

        try:
            result = json.loads(repaired)
            logger.info("JSON repair succeeded (missing commas fixed)")
            return result
        except json.JSONDecodeError:
            pass

        # Attempt 3: trailing commas before } or ]
        repaired = re.sub(r",\s*([\}\]])", r"\1", repaired)
        try:
            result = json.loads(repaired)
            logger.info("JSON repair succeeded (trailing commas removed)")
            return result
        except json.JSONDecodeError as repair_error:
            logger.warning("JSON repair failed: %s", repair_error)

        raise
