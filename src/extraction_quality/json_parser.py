"""
JSON decoding for raw model completions.

Decoding is strict: the completion must be valid JSON ("json") or one valid
JSON value per non-blank line ("jsonl"). The only tolerated wrapper is a
single markdown code fence around the whole completion. NaN and Infinity
literals are rejected.
"""

import json
import logging
import re
from typing import Any, List, Optional, Tuple

from .config import JSONL

logger = logging.getLogger(__name__)

WRAPPING_FENCE = re.compile(r"```[A-Za-z]*[ \t]*\n?(.*?)\n?[ \t]*```", re.DOTALL)


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def loads_strict(text: str) -> Any:
    """json.loads that refuses NaN, Infinity and -Infinity."""
    return json.loads(text, parse_constant=_reject_constant)


def parse_llm_json(response_text: str) -> Tuple[Optional[Any], Optional[str]]:
    """
    Parse a single JSON value from a model response.

    Handles:
    - Clean JSON (object, array or scalar)
    - The same JSON wrapped in one markdown code block (```json ... ```)

    Prose around the JSON, trailing commas and other repairs are not
    attempted: such responses are reported as invalid.

    Returns:
        Tuple of (decoded value or None, error_message or None)
    """
    if not isinstance(response_text, str) or not response_text.strip():
        return None, "Empty response"

    text = unwrap_code_fence(response_text)

    try:
        result = loads_strict(text)
    except (ValueError, RecursionError) as e:
        return None, f"Failed to parse JSON: {e}"

    # a bare null carries nothing to score
    if result is None:
        return None, "Response decoded to null"

    return result, None


def parse_jsonl(response_text: str) -> Tuple[Optional[List[Any]], Optional[str]]:
    """
    Parse line-delimited JSON: one value per non-blank line.

    A wrapping code fence is tolerated; every remaining line must parse on its own.

    Returns:
        Tuple of (list of decoded lines or None, error_message or None)
    """
    if not isinstance(response_text, str) or not response_text.strip():
        return None, "Empty response"

    lines = split_json_lines(response_text)
    if not lines:
        return None, "Empty response"

    records = []
    for index, line in enumerate(lines, start=1):
        try:
            records.append(loads_strict(line))
        except (ValueError, RecursionError) as e:
            return None, f"Line {index} is not valid JSON: {e}"

    return records, None


def decode_output(response_text: str, output_format: str) -> Tuple[Optional[Any], Optional[str]]:
    """Decode a raw completion according to the requested output format."""
    if output_format == JSONL:
        return parse_jsonl(response_text)
    return parse_llm_json(response_text)


def unwrap_code_fence(text: str) -> str:
    """
    Strip a markdown code fence that wraps the entire text.

    Fences that only cover part of the text are left alone, so prose
    around a fenced block still fails to decode.
    """
    stripped = (text or "").strip()
    match = WRAPPING_FENCE.fullmatch(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def split_json_lines(text: str) -> List[str]:
    """Non-blank lines of a line-delimited completion, wrapping fence removed."""
    return [line for line in unwrap_code_fence(text).split("\n") if line.strip()]
