"""
Extraction prompt assembly.
Combines a caller-supplied system/user prompt pair with the document text
and the output-format instructions every model receives.
"""

import json
from typing import Any, Dict, Optional, Tuple

from . import config
from .config import JSONL

DOCUMENT_PLACEHOLDER = "{document}"
TRUNCATION_MARKER = "\n\n[TRUNCATED]"

JSON_INSTRUCTIONS = """## OUTPUT FORMAT
Return ONLY one valid JSON object.
Do NOT include any commentary before or after the JSON and do NOT wrap it in markdown code blocks.
Use null for information that is not present in the document."""

JSONL_INSTRUCTIONS = """## OUTPUT FORMAT
Return ONLY JSON Lines: one complete JSON object per line, one line per extracted record.
Do NOT include any commentary, blank lines or markdown code blocks.
Use null for information that is not present in the document."""

SCHEMA_INSTRUCTIONS = """The output must conform to this JSON Schema:
{schema}"""


def build_extraction_prompt(
    system_prompt: str,
    user_prompt: str,
    document_text: str,
    output_format: str = "json",
    schema: Optional[Dict[str, Any]] = None,
    max_document_chars: Optional[int] = None,
) -> Tuple[str, str]:
    """
    Build the prompt pair sent to every model.

    The document replaces a {document} placeholder in the user prompt, or is
    appended after it when there is none.

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    limit = max_document_chars or config.MAX_DOCUMENT_CHARS
    document_text = document_text or "No document text available"
    if len(document_text) > limit:
        document_text = document_text[:limit] + TRUNCATION_MARKER

    if DOCUMENT_PLACEHOLDER in user_prompt:
        prompt = user_prompt.replace(DOCUMENT_PLACEHOLDER, document_text)
    else:
        prompt = f"{user_prompt.rstrip()}\n\n<document>\n{document_text}\n</document>"

    sections = [prompt, JSONL_INSTRUCTIONS if output_format == JSONL else JSON_INSTRUCTIONS]
    if schema:
        sections.append(SCHEMA_INSTRUCTIONS.format(schema=json.dumps(schema, indent=2)))

    return system_prompt, "\n\n".join(sections)
