"""
JSON helpers shared by the prompt parsers.

LLM output is often wrapped in markdown fences, preceded by prose, or
slightly malformed. These helpers recover the JSON payload where possible.
"""

import json
import re
from typing import Any

import structlog

log = structlog.get_logger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")


def strip_markdown_fences(text: str) -> str:
    """Return the contents of the first fenced block, or the stripped text."""
    text = text.strip()
    match = _FENCED_JSON.search(text)
    if match:
        return match.group(1).strip()
    return text


def repair_json(text: str) -> str:
    """Attempt to repair common LLM JSON generation errors.

    Handles:
    1. Trailing commas before closing brackets ([...,] or {...,})
    2. Missing commas between adjacent objects (} {)
    3. Truncated JSON (unclosed brackets/braces)
    """
    text = re.sub(r",\s*\]", "]", text)
    text = re.sub(r",\s*\}", "}", text)
    text = re.sub(r"(\})\s*\n\s*(\{)", r"\1,\n\2", text)

    open_braces = text.count("{") - text.count("}")
    open_brackets = text.count("[") - text.count("]")
    if open_braces > 0 or open_brackets > 0:
        text = text.rstrip().rstrip(",")
        text += "]" * open_brackets + "}" * open_braces

    return text


def loads_lenient(response_text: str) -> Any:
    """
    Parse JSON from an LLM response.

    Tries, in order: the fenced block (or whole text), the outermost
    {...} span, and a repaired version of the text.

    Raises:
        ValueError: If no JSON can be recovered
    """
    text = strip_markdown_fences(response_text)

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            pass

    repaired = repair_json(text)
    try:
        data = json.loads(repaired)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in LLM response: {e}") from e

    log.warning(
        "llm_json_repaired",
        original_length=len(text),
        repaired_length=len(repaired),
    )
    return data
