"""
JSON extraction utilities for LLM responses.

Models asked for JSON still wrap it in markdown fences or prose. These
helpers locate the payload, parse it, and make one repair attempt
before giving up. They never raise; failure is None.
"""

import json
import re
from typing import Any, Dict, Optional

from mathgrader.config.logging_config import get_logger

logger = get_logger(__name__)

_FENCE = re.compile(r'```(?:[a-zA-Z]+)?\s*\n?(.*?)```', re.DOTALL)
_TRAILING_COMMA = re.compile(r',\s*([}\]])')
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f]')

_QUOTE_MAP = str.maketrans({
    '“': '"',
    '”': '"',
    '‘': "'",
    '’': "'",
})


def _strip_fence(text: str) -> str:
    """Return the body of the first fenced block, or the text itself."""
    match = _FENCE.search(text)
    return match.group(1).strip() if match else text


def _slice_between(text: str, opener: str, closer: str) -> Optional[str]:
    start = text.find(opener)
    end = text.rfind(closer)
    if start < 0 or end <= start:
        return None
    return text[start:end + 1]


def _loads_with_repair(payload: str) -> Optional[Any]:
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        logger.debug(f"JSON parse error: {e}")

    repaired = _TRAILING_COMMA.sub(r'\1', payload.translate(_QUOTE_MAP))
    repaired = _CONTROL_CHARS.sub('', repaired)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError:
        return None


def extract_json_from_response(raw_response: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Extract a JSON object from an LLM response.

    Args:
        raw_response: The raw text response from an LLM

    Returns:
        Parsed dictionary, or None if no object could be parsed
    """
    if not raw_response:
        return None

    payload = _slice_between(_strip_fence(raw_response.strip()), '{', '}')
    if payload is None:
        return None

    parsed = _loads_with_repair(payload)
    return parsed if isinstance(parsed, dict) else None

