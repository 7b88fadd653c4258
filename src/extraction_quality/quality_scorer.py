"""
Quality scoring for individual model outputs.

Each dimension is an independent function returning an int in [0, 100]:

    syntax        (0.25)  raw text parses cleanly as JSON
    structural    (0.20)  sensible object shape and nesting
    completeness  (0.20)  breadth, depth and population of fields
    content       (0.20)  plausible, meaningful values
    consensus     (0.15)  agreement with sibling outputs (needs the full set)

score_output() combines the four independent dimensions; the consensus
dimension is filled in once every sibling output is available. Scoring is
total: a failing dimension degrades to 0 instead of raising.
"""

import logging
import math
import re
from collections import Counter
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pendulum

from .config import JSONL
from .field_paths import (
    extract_all_field_paths,
    get_value_at_path,
    iter_arrays,
    iter_keys,
    iter_leaves,
    max_depth,
)
from .json_parser import decode_output, loads_strict, split_json_lines, unwrap_code_fence
from .models import ModelOutput, QualityScores
from .normalizers import is_scalar, normalize_value, round_half_up

logger = logging.getLogger(__name__)

WEIGHTS: Dict[str, float] = {
    "syntax": 0.25,
    "structural": 0.20,
    "completeness": 0.20,
    "content": 0.20,
    "consensus": 0.15,
}

STRING_LITERAL = re.compile(r'"(?:[^"\\]|\\.)*"')
TRAILING_COMMA = re.compile(r",\s*[}\]]")
SINGLE_QUOTED = re.compile(r"'[^'\n]*'\s*:|:\s*'[^'\n]*'")
NUMERIC_STRING = re.compile(r"^-?(?:0|[1-9]\d*)(?:\.\d+)?$")
BULLET_LINE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+\S", re.MULTILINE)
NUMBERED_KEY = re.compile(r"^(.*?)[_\-]?(\d+)$")

DATE_KEY = re.compile(
    r"(date|_at$|_on$|^dob$|birthday|deadline|expir|issued|valid_(from|until|to))",
    re.IGNORECASE,
)
DATE_SHAPE = re.compile(
    r"^(\d{4}-\d{1,2}-\d{1,2}([T ][\d:.]+(Z|[+-]\d{2}:?\d{2})?)?"
    r"|\d{1,2}[./-]\d{1,2}[./-]\d{2,4}"
    r"|\d{1,2}\s+[A-Za-z]{3,9}\.?\s+\d{4}"
    r"|[A-Za-z]{3,9}\.?\s+\d{1,2},?\s+\d{4})$"
)
NON_NEGATIVE_KEY = re.compile(r"(amount|price|total|count|quantity|qty|age|cost|fee|salary|num_|number_of)", re.IGNORECASE)
YEAR_KEY = re.compile(r"(^|_)year($|_)", re.IGNORECASE)
MAX_PLAUSIBLE_MAGNITUDE = 1e12

PLACEHOLDER_VALUES = {
    "n/a", "na", "none", "null", "nil", "unknown", "tbd", "todo", "xxx", "...",
    "-", "--", "string", "value", "text", "example", "sample", "lorem ipsum",
    "not available", "not specified", "placeholder",
}

NAMING_PATTERNS = {
    "snake": re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)+$"),
    "camel": re.compile(r"^[a-z][a-z0-9]*([A-Z][a-z0-9]*)+$"),
    "pascal": re.compile(r"^[A-Z][a-z0-9]+([A-Z][a-z0-9]*)*$"),
    "kebab": re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]+)+$"),
}
SINGLE_LOWER_WORD = re.compile(r"^[a-z][a-z0-9]*$")

# UTF-8 read as Latin-1/cp1252 ("GÃ¶teborg"), replacement chars, double-escaped
# unicode and letters swallowed into "?"
MOJIBAKE = re.compile(
    "[ÃÂ][\u0080-¿ŒœŠšŸŽžƒ"
    "ˆ˜‘-„†-•…‰‹›€™]"
    "|â€|�|\\\\u[0-9a-fA-F]{4}|[A-Za-z]\\?[a-z]"
)

HALLUCINATION_PATTERNS = [
    re.compile(r"\b(john|jane)\s+doe\b", re.IGNORECASE),
    re.compile(r"lorem ipsum", re.IGNORECASE),
    re.compile(r"\bexample\.(com|org|net)\b", re.IGNORECASE),
    re.compile(r"\bacme\b", re.IGNORECASE),
    re.compile(r"\b123[-. ]?456[-. ]?7890\b|\(?555\)?[-. ]\d{3}[-. ]?\d{4}\b|\b555[-. ]\d{4}\b"),
    re.compile(r"0?123456789|([1-9])\1{6,}"),
]


# ═══════════════════════════════════════════════════════════════════════════════
# Syntax
# ═══════════════════════════════════════════════════════════════════════════════

def calculate_syntax_score(raw_text: str, decoded_value: Any, output_format: str = "json") -> int:
    """
    Score how cleanly the raw text is JSON.

    Points:
        40  parses as JSON without any cleanup (per line for jsonl)
        15  no markdown code fence
        15  no prose around the JSON body
        15  numbers are not stringified
        15  no trailing commas or single-quoted keys/values
    """
    if not isinstance(raw_text, str) or decoded_value is None:
        return 0

    text = raw_text.strip()
    score = 0

    if output_format == JSONL:
        lines = [line for line in text.split("\n") if line.strip()]
        parsed = sum(1 for line in lines if _parses(line))
        score += round_half_up(40 * parsed / len(lines)) if lines else 0
    elif _parses(text):
        score += 40

    if unwrap_code_fence(text) == text:
        score += 15

    if not _has_surrounding_text(text, output_format):
        score += 15

    score += round_half_up(15 * (1 - _stringified_number_ratio(decoded_value)))

    # string contents are not formatting
    bare = STRING_LITERAL.sub('""', text)
    formatting = 15
    if TRAILING_COMMA.search(bare):
        formatting -= 8
    if SINGLE_QUOTED.search(bare):
        formatting -= 7
    score += formatting

    return score


def _parses(text: str) -> bool:
    try:
        loads_strict(text)
        return True
    except (ValueError, RecursionError):
        return False


def _has_surrounding_text(text: str, output_format: str) -> bool:
    """True when anything besides JSON and a wrapping code fence is present."""
    if output_format == JSONL:
        return not all(_parses(line) for line in split_json_lines(text))
    return not _parses(unwrap_code_fence(text))


def _stringified_number_ratio(value: Any) -> float:
    """Share of numeric-looking leaves that were emitted as strings."""
    numeric = 0
    stringified = 0
    for _, leaf in iter_leaves(value):
        if isinstance(leaf, bool):
            continue
        if isinstance(leaf, (int, float)):
            numeric += 1
        elif isinstance(leaf, str) and NUMERIC_STRING.match(leaf.strip()):
            stringified += 1
    total = numeric + stringified
    return stringified / total if total else 0.0


# ═══════════════════════════════════════════════════════════════════════════════
# Structural
# ═══════════════════════════════════════════════════════════════════════════════

def calculate_structural_score(decoded_value: Any) -> int:
    """
    Score the shape of the decoded value.

    Points:
        30  root is a non-empty object (arrays of objects get partial credit)
        20  genuine nesting (nested objects; scalar arrays get partial credit)
        15  consistent nesting depth across sibling sections
        20  missing scalars are null rather than empty/placeholder strings
        15  list-like data in arrays, compound entities in objects
    """
    if isinstance(decoded_value, dict):
        score = 30 if decoded_value else 10
    elif isinstance(decoded_value, list):
        all_objects = bool(decoded_value) and all(isinstance(i, dict) for i in decoded_value)
        score = 15 if all_objects else 5
    else:
        return 0

    # Nesting is judged inside the records of an array root
    bodies = _records(decoded_value)
    if any(_has_nested_object(body) for body in bodies):
        score += 20
    elif any(max_depth(body) >= 2 for body in bodies):
        score += 10

    score += _depth_consistency_points(decoded_value)

    leaves = [leaf for _, leaf in iter_leaves(decoded_value)]
    if leaves:
        misused = sum(
            1 for leaf in leaves
            if isinstance(leaf, str) and (not leaf.strip() or leaf.strip().lower() in ("null", "none"))
        )
        score += round_half_up(20 * (1 - misused / len(leaves)))
    else:
        score += 20

    score += max(0, 15 - 5 * _shape_violations(decoded_value))

    return score


def _has_nested_object(value: Dict) -> bool:
    for child in value.values():
        if isinstance(child, dict):
            return True
        if isinstance(child, list) and any(isinstance(i, (dict, list)) for i in child):
            return True
    return False


def _depth_consistency_points(value: Any) -> int:
    sections = value.values() if isinstance(value, dict) else value
    depths = [max_depth(section) for section in sections if isinstance(section, (dict, list))]
    if len(depths) < 2:
        return 15

    spread = float(np.std(depths))
    if spread <= 0.5:
        return 15
    elif spread <= 1.0:
        return 10
    elif spread <= 2.0:
        return 5
    return 0


def _shape_violations(value: Any) -> int:
    """Count list data packed into strings and objects flattened into numbered keys."""
    violations = 0

    for _, leaf in iter_leaves(value):
        if not isinstance(leaf, str):
            continue
        if len(BULLET_LINE.findall(leaf)) >= 2:
            violations += 1
        elif leaf.count(";") >= 2 and "." not in leaf:
            violations += 1

    def visit(node: Any) -> None:
        nonlocal violations
        if isinstance(node, dict):
            stems = Counter()
            for key in node:
                match = NUMBERED_KEY.match(str(key))
                if match and match.group(1):
                    stems[match.group(1)] += 1
            violations += sum(1 for count in stems.values() if count >= 2)
            for child in node.values():
                visit(child)
        elif isinstance(node, list):
            for item in node:
                visit(item)

    visit(value)
    return violations


# ═══════════════════════════════════════════════════════════════════════════════
# Completeness
# ═══════════════════════════════════════════════════════════════════════════════

def calculate_completeness_score(decoded_value: Any, expected_fields: Optional[Sequence[str]] = None) -> int:
    """
    Score how much information the output carries.

    Points:
        35  share of expected top-level fields populated (schema properties
            when known, otherwise the output's own top-level keys)
        25  depth of nested information
        25  non-null leaf ratio
        15  arrays are non-empty
    """
    records = _records(decoded_value)
    if not records and not isinstance(decoded_value, list):
        return 0

    score = 0

    top_keys: List[str] = []
    for record in records:
        for key in record:
            if key not in top_keys:
                top_keys.append(key)
    expected = list(expected_fields) if expected_fields else top_keys
    if expected:
        populated = sum(
            1 for key in expected
            if any(_is_populated(record.get(key)) for record in records)
        )
        score += round_half_up(35 * populated / len(expected))

    leaves = [leaf for _, leaf in iter_leaves(decoded_value)]
    filled = [leaf for leaf in leaves if _is_populated(leaf)]

    depth = max_depth(decoded_value)
    score += min(10, 5 * max(0, depth - 1)) + round_half_up(15 * min(1.0, len(filled) / 15))

    if leaves:
        score += round_half_up(25 * len(filled) / len(leaves))

    arrays = [a for a in iter_arrays(decoded_value) if a is not decoded_value]
    if arrays:
        score += round_half_up(15 * sum(1 for a in arrays if a) / len(arrays))
    else:
        score += 15

    return score


def _records(value: Any) -> List[Dict]:
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return []


def _is_populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return True


# ═══════════════════════════════════════════════════════════════════════════════
# Content
# ═══════════════════════════════════════════════════════════════════════════════

def calculate_content_score(decoded_value: Any) -> int:
    """
    Score the plausibility of extracted values.

    Points:
        20  date-like values are recognisable dates
        20  numbers have plausible magnitudes
        20  text values are meaningful (not placeholders)
        15  one key naming convention throughout
        10  non-ASCII letters intact (no mojibake)
        15  no signs of invented data
    """
    if not isinstance(decoded_value, (dict, list)):
        return 0

    leaves = list(iter_leaves(decoded_value))
    strings = [leaf for _, leaf in leaves if isinstance(leaf, str) and leaf.strip()]

    score = _date_points(leaves)
    score += _number_points(leaves)

    if strings:
        meaningful = sum(1 for s in strings if _is_meaningful(s))
        score += round_half_up(20 * meaningful / len(strings))
    else:
        score += 20

    score += round_half_up(15 * _naming_consistency(decoded_value))
    score += _encoding_points(strings + list(dict.fromkeys(iter_keys(decoded_value))))
    score += max(0, 15 - 5 * _hallucination_signals(strings))

    return score


def _leaf_key(path: str) -> str:
    return path.rsplit(".", 1)[-1]


def _date_points(leaves) -> int:
    candidates = [
        leaf.strip() for path, leaf in leaves
        if isinstance(leaf, str) and leaf.strip()
        and (DATE_KEY.search(_leaf_key(path)) or DATE_SHAPE.match(leaf.strip()))
    ]
    if not candidates:
        return 20
    recognized = sum(1 for c in candidates if is_recognizable_date(c))
    return round_half_up(20 * recognized / len(candidates))


def is_recognizable_date(text: str) -> bool:
    """True when the text parses as a date (ISO 8601 strictly, other layouts leniently)."""
    if not any(ch.isdigit() for ch in text):
        return False
    try:
        pendulum.parse(text, strict=False)
        return True
    except (ValueError, OverflowError, TypeError):
        return False


def _number_points(leaves) -> int:
    numbers = [
        (_leaf_key(path), leaf) for path, leaf in leaves
        if isinstance(leaf, (int, float)) and not isinstance(leaf, bool)
    ]
    if not numbers:
        return 20
    plausible = sum(1 for key, number in numbers if _is_plausible_number(key, number))
    return round_half_up(20 * plausible / len(numbers))


def _is_plausible_number(key: str, number: float) -> bool:
    if not math.isfinite(number) or abs(number) > MAX_PLAUSIBLE_MAGNITUDE:
        return False
    if number < 0 and NON_NEGATIVE_KEY.search(key):
        return False
    if YEAR_KEY.search(key) and not 1800 <= number <= 2200:
        return False
    return True


def _is_meaningful(text: str) -> bool:
    stripped = text.strip()
    if len(stripped) < 2 and not stripped.isalnum():
        return False
    if stripped.casefold() in PLACEHOLDER_VALUES:
        return False
    return not re.fullmatch(r"[\W_]+", stripped)


def _naming_consistency(value: Any) -> float:
    """Share of keys following the dominant naming convention (1.0 when undecidable)."""
    keys = list(dict.fromkeys(iter_keys(value)))
    if not keys:
        return 1.0

    styles = Counter()
    ambiguous = 0
    for key in keys:
        if SINGLE_LOWER_WORD.match(key):
            ambiguous += 1
            continue
        for style, pattern in NAMING_PATTERNS.items():
            if pattern.match(key):
                styles[style] += 1
                break
        else:
            styles["other"] += 1

    if not styles:
        return 1.0

    dominant, count = styles.most_common(1)[0]
    if dominant in ("snake", "camel", "kebab"):
        count += ambiguous
    return count / len(keys)


def _encoding_points(texts: List[str]) -> int:
    candidates = [t for t in texts if not t.isascii() or MOJIBAKE.search(t)]
    if not candidates:
        return 10
    intact = sum(1 for t in candidates if not MOJIBAKE.search(t))
    return round_half_up(10 * intact / len(candidates))


def _hallucination_signals(strings: List[str]) -> int:
    """Number of distinct invented-data signals across string values."""
    signals = sum(1 for pattern in HALLUCINATION_PATTERNS if any(pattern.search(s) for s in strings))

    # One value copied into most fields
    if len(strings) >= 4:
        value, count = Counter(s.strip().casefold() for s in strings).most_common(1)[0]
        if len(value) > 3 and count / len(strings) > 0.6:
            signals += 1

    return signals


# ═══════════════════════════════════════════════════════════════════════════════
# Consensus
# ═══════════════════════════════════════════════════════════════════════════════

def calculate_consensus_score(
    output: ModelOutput,
    siblings: Sequence[ModelOutput],
    canonicalize_numbers: Optional[bool] = None
) -> int:
    """
    Score agreement of one output with its siblings for the same request.

    Half the points come from field presence (how many siblings share each of
    this output's field paths), half from scalar values at those paths.
    Returns 0 unless at least two outputs (this one included) decoded.
    """
    others = [s for s in siblings if s is not output and s.decoded_value is not None]
    if output.decoded_value is None or not others:
        return 0

    own_paths = extract_all_field_paths(output.decoded_value)
    if not own_paths:
        return 0

    other_paths = [set(extract_all_field_paths(o.decoded_value)) for o in others]
    field_agreement = float(np.mean([
        sum(1 for paths in other_paths if path in paths) / len(others)
        for path in own_paths
    ]))

    value_agreement_scores = []
    for path in own_paths:
        mine = get_value_at_path(output.decoded_value, path)
        if not is_scalar(mine):
            continue
        theirs = [
            normalize_value(value, canonicalize_numbers)
            for value in (get_value_at_path(o.decoded_value, path) for o in others)
            if is_scalar(value)
        ]
        if not theirs:
            continue
        normalized = normalize_value(mine, canonicalize_numbers)
        value_agreement_scores.append(sum(1 for t in theirs if t == normalized) / len(theirs))

    value_agreement = float(np.mean(value_agreement_scores)) if value_agreement_scores else field_agreement

    return _clamp(round_half_up(50 * field_agreement + 50 * value_agreement))


# ═══════════════════════════════════════════════════════════════════════════════
# Combination
# ═══════════════════════════════════════════════════════════════════════════════

def calculate_overall_score(scores: QualityScores) -> Optional[int]:
    """
    Weighted overall score:
        0.25*syntax + 0.20*structural + 0.20*completeness + 0.20*content + 0.15*consensus
    rounded half up to an int.

    A consensus score that was never computed counts as 0; any other missing
    sub-score means there is no overall score.
    """
    if None in (scores.syntax, scores.structural, scores.completeness, scores.content):
        return None
    consensus = scores.consensus or 0
    return round_half_up(
        0.25 * scores.syntax
        + 0.20 * scores.structural
        + 0.20 * scores.completeness
        + 0.20 * scores.content
        + 0.15 * consensus
    )


def score_output(
    raw_text: str,
    decoded_value: Any,
    output_format: str = "json",
    expected_fields: Optional[Sequence[str]] = None
) -> QualityScores:
    """
    Compute the independent sub-scores and a provisional overall score.

    Returns all-None scores when the output did not decode. In jsonl mode
    the structural, completeness and content scores are averaged over records.
    """
    if decoded_value is None:
        return QualityScores()

    if output_format == JSONL and isinstance(decoded_value, list):
        records = decoded_value
    else:
        records = [decoded_value]

    scores = QualityScores(
        syntax=_safe_score("syntax", calculate_syntax_score, raw_text, decoded_value, output_format),
        structural=_mean_score("structural", calculate_structural_score, records),
        completeness=_mean_score(
            "completeness", lambda record: calculate_completeness_score(record, expected_fields), records
        ),
        content=_mean_score("content", calculate_content_score, records),
        consensus=0,
    )
    scores.overall = calculate_overall_score(scores)
    return scores


def score_raw_output(
    raw_text: str,
    output_format: str = "json",
    expected_fields: Optional[Sequence[str]] = None
) -> QualityScores:
    """Decode a raw completion and score it."""
    decoded_value, _ = decode_output(raw_text, output_format)
    return score_output(raw_text, decoded_value, output_format, expected_fields)


def expected_fields_from_schema(schema: Any) -> Optional[List[str]]:
    """Top-level property names declared by a schema (or by its array items)."""
    if not isinstance(schema, dict):
        return None
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        items = schema.get("items")
        properties = items.get("properties") if isinstance(items, dict) else None
    if isinstance(properties, dict) and properties:
        return list(properties.keys())
    return None


def _clamp(value: float) -> int:
    return int(max(0, min(100, value)))


def _safe_score(name: str, fn: Callable[..., int], *args) -> int:
    try:
        return _clamp(fn(*args))
    except Exception as e:
        logger.warning(f"{name} score failed, defaulting to 0: {e}")
        return 0


def _mean_score(name: str, fn: Callable[[Any], int], records: List[Any]) -> int:
    if not records:
        return 0
    return _clamp(round_half_up(float(np.mean([_safe_score(name, fn, record) for record in records]))))


def score_consensus(
    output: ModelOutput,
    siblings: Sequence[ModelOutput],
    canonicalize_numbers: Optional[bool] = None
) -> int:
    """Consensus sub-score that degrades to 0 instead of raising."""
    return _safe_score("consensus", calculate_consensus_score, output, siblings, canonicalize_numbers)
