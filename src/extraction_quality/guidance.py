"""
Prompt improvement guidance from validation failures.

Every output gets a three-level verdict:

    json_valid        the completion decoded as JSON (or JSON Lines)
    attributes_valid  no required attribute missing, no attribute outside the schema
    formats_valid     values match the declared types, formats, enums and patterns

plus concrete suggestions to add to the extraction prompt.

Usage:
    guidance = generate_prompt_guidance(output, schema)
    if not guidance.validation_passed:
        print("\\n".join(guidance.guidance))
"""

import json
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from .json_parser import unwrap_code_fence
from .models import ModelOutput, PromptGuidance, ValidationError
from .schema_validator import classify_error

FORMAT_GUIDANCE = {
    "date": '❌ Date Format: Add to prompt: "Dates must be in ISO 8601 format: YYYY-MM-DD (e.g., 2024-01-15)"',
    "date-time": (
        '❌ DateTime Format: Add to prompt: "DateTimes must be in ISO 8601 format: '
        'YYYY-MM-DDTHH:MM:SSZ (e.g., 2024-01-15T14:30:00Z)"'
    ),
    "email": '❌ Email Format: Add to prompt: "Emails must be valid format: user@domain.com"',
    "uri": '❌ URL Format: Add to prompt: "URLs must include protocol: https://example.com"',
    "uuid": '❌ UUID Format: Add to prompt: "UUIDs must be valid format: 123e4567-e89b-12d3-a456-426614174000"',
}

TYPE_EXAMPLES = {
    "string": '"text here"',
    "number": "123",
    "integer": "42",
    "boolean": "true or false",
    "array": "[item1, item2]",
    "object": "{key: value}",
    "null": "null",
}

MAX_EXAMPLE_FIELDS = 3

# Violations about attribute names rather than values
NAME_KEYWORDS = {"additionalProperties", "unevaluatedProperties", "propertyNames"}


def generate_prompt_guidance(output: ModelOutput, schema: Optional[Dict[str, Any]] = None) -> PromptGuidance:
    """
    Judge one output on three levels and suggest prompt changes.

    Args:
        output: Scored (and, with a schema, validated) model output
        schema: JSON Schema the output was validated against, if any

    Returns:
        PromptGuidance; failed model calls get a verdict but no suggestions
    """
    json_valid = output.is_qualifying
    if output.error_message is not None:
        return PromptGuidance(model=output.model, json_valid=False, attributes_valid=False, formats_valid=False)

    guidance = _fence_guidance(output.raw_text)
    if not json_valid:
        guidance.extend(_json_guidance(output.raw_text))
        return PromptGuidance(
            model=output.model,
            json_valid=False,
            attributes_valid=False,
            formats_valid=False,
            guidance=guidance,
        )

    errors = output.validation.errors if output.validation is not None else []
    missing = _dedupe(_field_name(e.path) for e in errors if classify_error(e) == "missing")
    unexpected = _unexpected_attributes(output.decoded_value, schema)
    name_errors = [e for e in errors if e.keyword in NAME_KEYWORDS]
    format_errors = [e for e in errors if classify_error(e) != "missing" and e.keyword not in NAME_KEYWORDS]

    guidance.extend(_attribute_guidance(missing, unexpected, schema))
    guidance.extend(_format_guidance(format_errors, schema))

    result = PromptGuidance(
        model=output.model,
        json_valid=True,
        attributes_valid=not missing and not unexpected and not name_errors,
        formats_valid=not format_errors,
        missing_attributes=missing,
        unexpected_attributes=unexpected,
        guidance=guidance,
    )
    if result.validation_passed and not guidance:
        result.guidance.append("✅ Validation passed! Consider testing with additional documents to ensure consistency.")
    return result


def aggregate_guidance(results: Sequence[PromptGuidance]) -> List[str]:
    """Guidance across many outputs, most frequent first, with repeat counts."""
    counts = Counter(msg for result in results for msg in result.guidance if not msg.startswith("✅"))
    return [
        f"{msg} ({count}× occurrences)" if count > 1 else msg
        for msg, count in counts.most_common()
    ]


# ═══════════════════════════════════════════════════════════════════════════════
# Level 1: JSON validity
# ═══════════════════════════════════════════════════════════════════════════════

def _fence_guidance(raw_text: str) -> List[str]:
    if "```" not in (raw_text or ""):
        return []
    return ['❌ JSON Error: Add to prompt: "Return ONLY valid JSON. Do not wrap in markdown code blocks (```json)."']


def _json_guidance(raw_text: str) -> List[str]:
    text = unwrap_code_fence(raw_text)
    if not text:
        return ['❌ JSON Error: Empty response. Add to prompt: "Always answer with a JSON object, use null for missing data."']

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if starts and (min(starts) > 0 or text[-1] not in "}]"):
        return ['❌ JSON Error: Add to prompt: "Output ONLY the JSON object. No explanatory text before or after."']
    if starts:
        return [
            '❌ JSON Error: Add to prompt: "Ensure valid JSON syntax: use double quotes for strings, '
            'no trailing commas, proper brackets, no NaN or Infinity."'
        ]
    return [
        '❌ JSON Error: Emphasize JSON format: "Your response must be valid, parseable JSON. '
        'Test your output with a JSON validator."'
    ]


# ═══════════════════════════════════════════════════════════════════════════════
# Level 2: Attribute names
# ═══════════════════════════════════════════════════════════════════════════════

def _unexpected_attributes(decoded_value: Any, schema: Optional[Dict[str, Any]]) -> List[str]:
    """Top-level keys the schema does not declare (records of an array or JSON Lines included)."""
    properties = _record_properties(schema)
    if properties is None:
        return []
    records = decoded_value if isinstance(decoded_value, list) else [decoded_value]
    return _dedupe(
        key for record in records if isinstance(record, dict)
        for key in record if key not in properties
    )


def _record_properties(schema: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(schema, dict):
        return None
    properties = schema.get("properties")
    if isinstance(properties, dict):
        return properties
    items = schema.get("items")
    if isinstance(items, dict) and isinstance(items.get("properties"), dict):
        return items["properties"]
    return None


def _attribute_guidance(missing: List[str], unexpected: List[str], schema: Optional[Dict[str, Any]]) -> List[str]:
    guidance = []

    if missing:
        names = ", ".join(f'"{name}"' for name in missing)
        guidance.append(
            f'⚠️ Missing Fields: Add to prompt: "REQUIRED fields that MUST be included: {names}. '
            f'Use null if data is not available."'
        )
        example = ", ".join(
            f'"{name}": {_example_value(_schema_at(schema, "/" + name.replace(".", "/")))}'
            for name in missing[:MAX_EXAMPLE_FIELDS]
        )
        guidance.append(f"💡 Add example structure: {{{example}, ...}}")

    if unexpected:
        names = ", ".join(f'"{name}"' for name in unexpected)
        declared = ", ".join(f'"{name}"' for name in (_record_properties(schema) or {}))
        guidance.append(
            f'⚠️ Unexpected Fields: Model returned: {names}. Add to prompt: "Use ONLY these field names: '
            f'{declared}. Do not add extra fields."'
        )

    return guidance


# ═══════════════════════════════════════════════════════════════════════════════
# Level 3: Value formats
# ═══════════════════════════════════════════════════════════════════════════════

def _format_guidance(errors: List[ValidationError], schema: Optional[Dict[str, Any]]) -> List[str]:
    guidance = []
    constrained = []

    for error in errors:
        name = _field_name(error.path)
        node = _schema_at(schema, error.path)

        if error.keyword == "type":
            expected = _type_names(node)
            message = (
                f"❌ Type Error ({name}): Add to prompt: \"The '{name}' field must be {expected}, "
                f'not a different type. Example: {_type_example(node)}"'
            )
        elif error.keyword in ("enum", "const"):
            allowed = node.get("enum", [node.get("const")]) if isinstance(node, dict) else []
            message = f"❌ Invalid Value ({name}): Must be one of: {', '.join(json.dumps(v) for v in allowed)}"
        elif error.keyword == "format":
            fmt = node.get("format") if isinstance(node, dict) else None
            message = FORMAT_GUIDANCE.get(
                "uri" if fmt == "url" else fmt,
                f"⚠️ Format Violation: Ensure '{fmt or name}' format is followed exactly as specified.",
            )
        elif error.keyword == "schema":
            message = "⚠️ Schema Error: The schema could not be applied. Fix the schema before tuning the prompt."
        elif error.keyword == "pattern":
            message = (
                "⚠️ Format Pattern: Some fields don't match expected patterns. Add specific format examples "
                'in prompt (e.g., phone: "+1-555-123-4567", postal: "12345").'
            )
        else:
            constrained.append(name)
            continue

        if message not in guidance:
            guidance.append(message)

    if constrained:
        names = ", ".join(f"'{name}'" for name in _dedupe(constrained))
        guidance.append(f"⚠️ Constraint Violation: State the allowed length or range for {names} in the prompt.")

    return guidance


def _type_names(node: Any) -> str:
    declared = node.get("type") if isinstance(node, dict) else None
    if isinstance(declared, list):
        return " or ".join(declared)
    return declared or "the declared type"


def _type_example(node: Any) -> str:
    declared = node.get("type") if isinstance(node, dict) else None
    if isinstance(declared, list):
        declared = next((t for t in declared if t != "null"), None)
    return TYPE_EXAMPLES.get(declared, "see schema")


def _example_value(node: Any) -> str:
    if not isinstance(node, dict):
        return "null"
    declared = node.get("type")
    if isinstance(declared, list):
        declared = next((t for t in declared if t != "null"), None)

    if node.get("enum"):
        return json.dumps(node["enum"][0])
    if declared == "string":
        if node.get("format") == "date":
            return '"2024-01-15"'
        if node.get("format") == "email":
            return '"user@example.com"'
        return '"example"'
    return {"number": "0", "integer": "0", "boolean": "false", "array": "[]", "object": "{}"}.get(declared, "null")


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════

def _pointer_parts(path: Optional[str]) -> List[str]:
    return [p.replace("~1", "/").replace("~0", "~") for p in (path or "").split("/") if p]


def _field_name(path: Optional[str]) -> str:
    """Dotted name for a JSON pointer, array indices dropped ("/items/0/sku" -> "items.sku")."""
    parts = [p for p in _pointer_parts(path) if not p.isdigit()]
    return ".".join(parts) or "(root)"


def _schema_at(schema: Any, path: Optional[str]) -> Any:
    """Sub-schema that governs the value at a JSON pointer, or None."""
    node = schema
    for part in _pointer_parts(path):
        if not isinstance(node, dict):
            return None
        properties = node.get("properties")
        if isinstance(properties, dict) and part in properties:
            node = properties[part]
        elif isinstance(node.get("items"), dict):
            node = node["items"]
            if not part.isdigit():
                node = (node.get("properties") or {}).get(part)
        else:
            return None
    return node


def _dedupe(values) -> List[str]:
    return list(dict.fromkeys(values))
