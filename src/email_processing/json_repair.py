"""
Best-effort JSON repair for LLM output.

LLM text is not a reliable machine format. Parsing is attempted as-is first;
on failure exactly one repair pass runs (isolate the outermost JSON value,
normalise quote characters, quote bare keys, drop trailing commas). Every
repair is logged because a rising repair rate means the prompt needs work.
"""

import json
import logging
import re
from typing import Any, Optional

from src.email_processing.errors import MalformedResponseError

logger = logging.getLogger(__name__)

_QUOTE_TRANSLATION = str.maketrans({
    "“": '"',
    "”": '"',
    "„": '"',
    "″": '"',
    "‘": "'",
    "’": "'",
    "′": "'",
})

_BARE_KEY = re.compile(r'([{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)')
_SINGLE_QUOTED_KEY = re.compile(r"([{,]\s*)'([^'\"\n]*)'(\s*:)")
_SINGLE_QUOTED_VALUE = re.compile(r"([:\[,]\s*)'([^'\"\n]*)'(\s*[,}\]])")
_TRAILING_COMMA = re.compile(r',(\s*[}\]])')


def extract_json_block(text: str) -> Optional[str]:
    """Slice the outermost object or array out of surrounding prose."""
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    if end <= start:
        return None
    return text[start:end + 1]


def repair_json_text(text: str) -> str:
    """Apply the fixed set of textual repairs."""
    repaired = extract_json_block(text.strip()) or text.strip()
    repaired = repaired.translate(_QUOTE_TRANSLATION)
    repaired = _SINGLE_QUOTED_KEY.sub(r'\1"\2"\3', repaired)
    repaired = _BARE_KEY.sub(r'\1"\2"\3', repaired)
    # Applied twice so adjacent array members both get converted
    repaired = _SINGLE_QUOTED_VALUE.sub(r'\1"\2"\3', repaired)
    repaired = _SINGLE_QUOTED_VALUE.sub(r'\1"\2"\3', repaired)
    repaired = _TRAILING_COMMA.sub(r'\1', repaired)
    return repaired


def parse_json_response(text: str) -> Any:
    """
    Parse LLM output as JSON, with a single repair attempt.

    Args:
        text: Raw response text

    Returns:
        Parsed JSON value

    Raises:
        MalformedResponseError: If the text is not JSON even after repair
    """
    if text is None or not text.strip():
        raise MalformedResponseError("Empty response from LLM", raw_text=text)

    try:
        return json.loads(text)
    except json.JSONDecodeError as first_error:
        repaired = repair_json_text(text)
        try:
            value = json.loads(repaired)
        except json.JSONDecodeError as second_error:
            logger.error(
                f"Failed to parse LLM response even after repair: {second_error}. "
                f"Response preview: {text[:200]!r}"
            )
            raise MalformedResponseError(
                f"Failed to parse LLM response: {first_error}", raw_text=text
            ) from second_error

        logger.warning(
            f"LLM response required JSON repair ({first_error}); "
            f"original length {len(text)}, repaired length {len(repaired)}"
        )
        return value
