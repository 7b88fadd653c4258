"""
Normalization of scalar values before cross-model comparison.
"""

import math
import re
from typing import Any, Optional

from . import config

# Grouped numbers: "24 500 000", "24,500,000", "1 234.50" (incl. no-break/thin spaces)
GROUPED_NUMBER = re.compile(r"^[-+]?\d{1,3}(?:[ ,\u00a0\u202f]\d{3})+(?:\.\d+)?$")
GROUP_SEPARATORS = re.compile(r"[ ,\u00a0\u202f]")


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def scalar_to_text(value: Any) -> str:
    """Render a JSON scalar the way it reads in JSON ("true", "3", "3.5")."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def canonicalize_number(text: str) -> str:
    """Drop group separators from a grouped number; other text is returned unchanged."""
    if GROUPED_NUMBER.match(text):
        return GROUP_SEPARATORS.sub("", text)
    return text


def normalize_value(value: Any, canonicalize_numbers: Optional[bool] = None) -> Optional[str]:
    """
    Normalize a scalar for consensus comparison.

    Baseline is trim + case-fold. With numeric canonicalization enabled
    (NUMERIC_CANONICALIZATION, on by default), grouped numbers compare equal
    to their plain form: "24 500 000" -> "24500000".
    """
    if value is None:
        return None
    if canonicalize_numbers is None:
        canonicalize_numbers = config.NUMERIC_CANONICALIZATION

    text = scalar_to_text(value).strip().casefold()
    if canonicalize_numbers:
        text = canonicalize_number(text)
    return text


def is_scalar(value: Any) -> bool:
    return value is not None and not isinstance(value, (dict, list))
