# kousei/utils/helpers.py
from __future__ import annotations
import json
import re
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


# Generic text & JSON helpers
def normalize_whitespace(s: str) -> str:
    """Collapse consecutive whitespace and strip ends."""
    return re.sub(r"\s+", " ", s or "").strip()


def preview(s: str, limit: int = 40) -> str:
    """Short single-line preview for logs; callers pass already-masked text."""
    s = normalize_whitespace(s)
    return s if len(s) <= limit else s[:limit] + "…"


def extract_json_from_llm_response(content: str) -> Dict[str, Any]:
    """
    Find and parse the first JSON object in a model response.
    Tolerant to ```json fences and pre/post text; returns {} when nothing parses.
    """
    if not content:
        return {}
    fenced = _FENCED_JSON.search(content)
    candidate = fenced.group(1) if fenced else content
    try:
        m = re.search(r"\{[\s\S]*\}", candidate)
        if not m:
            return {}
        data = json.loads(m.group(0))
        return data if isinstance(data, dict) else {}
    except json.JSONDecodeError as e:
        logger.warning("extract_json_from_llm_response: parse failed: %s", e)
        return {}
