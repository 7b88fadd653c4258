"""
JSON Schema validation of model outputs.

Collects every violation (not just the first) with a JSON pointer path and
the schema keyword that failed. Supports single-object ("json") and
line-delimited ("jsonl") outputs. Never raises: a malformed schema makes
every candidate invalid.
"""

import logging
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from .config import JSONL
from .json_parser import loads_strict, split_json_lines
from .models import ValidationError, ValidationResult

logger = logging.getLogger(__name__)

# Keyword groups used to classify violations for analytics
MISSING_KEYWORDS = {"required", "dependentRequired", "dependencies"}
TYPE_KEYWORDS = {"type", "enum", "const"}
FORMAT_KEYWORDS = {"format", "pattern", "minLength", "maxLength", "minimum", "maximum",
                   "exclusiveMinimum", "exclusiveMaximum", "multipleOf"}


def is_valid_schema(schema: Any) -> bool:
    """
    Check whether a schema is a usable JSON Schema document.

    Returns False (never raises) for non-object schemas and for schemas that
    fail their dialect's metaschema.
    """
    if not isinstance(schema, dict):
        return False

    try:
        validator_cls = validator_for(schema, default=Draft202012Validator)
        validator_cls.check_schema(schema)
        return True
    except SchemaError:
        return False
    except Exception as e:
        logger.warning(f"Schema check failed unexpectedly: {e}")
        return False


def validate_against_schema(
    data: Any,
    schema: Dict[str, Any],
    output_format: str = "json"
) -> ValidationResult:
    """
    Validate data against a JSON Schema.

    Args:
        data: Decoded value for "json"; raw multi-line text for "jsonl"
        schema: JSON Schema document
        output_format: "json" or "jsonl"

    Returns:
        ValidationResult with every violation found
    """
    if not is_valid_schema(schema):
        return ValidationResult(
            valid=False,
            errors=[ValidationError(
                message="Schema is not a valid JSON Schema; output cannot be validated",
                keyword="schema",
            )],
        )

    validator_cls = validator_for(schema, default=Draft202012Validator)
    validator = validator_cls(schema, format_checker=FormatChecker())

    if output_format == JSONL:
        return _validate_json_lines(data, validator)
    return _validate_json(data, validator)


def validate_output(
    raw_text: str,
    decoded_value: Any,
    schema: Dict[str, Any],
    output_format: str = "json"
) -> ValidationResult:
    """Validate a model output; a single-object output that did not parse is one error."""
    if output_format == JSONL:
        return validate_against_schema(raw_text, schema, output_format)

    if decoded_value is None:
        return ValidationResult(
            valid=False,
            errors=[ValidationError(message="Output is not valid JSON", keyword="parse")],
        )
    return validate_against_schema(decoded_value, schema, output_format)


def _validate_json(data: Any, validator, line: Optional[int] = None) -> ValidationResult:
    """Validate a single JSON value."""
    errors = _collect_errors(data, validator, line)
    return ValidationResult(valid=not errors, errors=errors)


def _validate_json_lines(raw_text: Any, validator) -> ValidationResult:
    """Validate JSON Lines: one JSON value per non-blank line, wrapping fence tolerated."""
    if isinstance(raw_text, list):
        # Already decoded lines
        return _validate_records(list(enumerate(raw_text, start=1)), validator)
    if not isinstance(raw_text, str):
        return ValidationResult(
            valid=False,
            errors=[ValidationError(message="Output is not valid JSON Lines text", keyword="parse")],
        )

    records = []
    all_errors: List[ValidationError] = []
    for index, line in enumerate(split_json_lines(raw_text), start=1):
        try:
            records.append((index, loads_strict(line)))
        except (ValueError, RecursionError) as e:
            all_errors.append(ValidationError(line=index, message=f"Line is not valid JSON: {e}"))

    result = _validate_records(records, validator)
    all_errors.extend(result.errors)
    all_errors.sort(key=lambda err: err.line)
    return ValidationResult(valid=not all_errors, errors=all_errors)


def _validate_records(records, validator) -> ValidationResult:
    errors: List[ValidationError] = []
    for index, obj in records:
        errors.extend(_collect_errors(obj, validator, index))
    return ValidationResult(valid=not errors, errors=errors)


def _collect_errors(data: Any, validator, line: Optional[int]) -> List[ValidationError]:
    try:
        return [_to_validation_error(err, line) for err in validator.iter_errors(data)]
    except Exception as e:
        # Unresolvable $ref and similar schema problems surface only at validation time
        logger.warning(f"Schema validation aborted: {e}")
        return [ValidationError(line=line, message=f"Validation could not complete: {e}", keyword="schema")]


def _to_validation_error(err, line: Optional[int]) -> ValidationError:
    path = _json_pointer(err.absolute_path)
    if err.validator == "required":
        missing = _missing_property(err)
        if missing is not None:
            path = f"{path}/{_escape_pointer(missing)}"

    return ValidationError(
        line=line,
        message=err.message,
        path=path,
        keyword=str(err.validator),
    )


def _missing_property(err) -> Optional[str]:
    """Name of the property a 'required' error refers to."""
    if not isinstance(err.instance, dict) or not isinstance(err.validator_value, list):
        return None
    for prop in err.validator_value:
        if prop not in err.instance and err.message == f"{prop!r} is a required property":
            return prop
    return None


def _escape_pointer(part: Any) -> str:
    return str(part).replace("~", "~0").replace("/", "~1")


def _json_pointer(parts) -> str:
    return "".join(f"/{_escape_pointer(p)}" for p in parts)


def classify_error(error: ValidationError) -> str:
    """Bucket a violation as missing, type_mismatch, format_violation or other."""
    if error.keyword in MISSING_KEYWORDS:
        return "missing"
    if error.keyword in TYPE_KEYWORDS:
        return "type_mismatch"
    if error.keyword in FORMAT_KEYWORDS:
        return "format_violation"
    return "other"


def format_validation_errors(errors: List[ValidationError]) -> str:
    """
    Human-readable description of validation errors, one per line.

    Example:
        Line 2 - Path: /age - '30' is not of type 'number', 'null'
    """
    if not errors:
        return "No errors"

    lines = []
    for err in errors:
        parts = []
        if err.line:
            parts.append(f"Line {err.line}")
        if err.path:
            parts.append(f"Path: {err.path}")
        parts.append(err.message)
        lines.append(" - ".join(parts))
    return "\n".join(lines)
