"""
Batch analytics across many extraction runs.

Aggregates per-model reliability (success, JSON validity, schema validity,
score, nulls, latency, cost), per-attribute schema failures and per-request
pass/fail status.
"""

from typing import Any, Dict, List, Sequence

import numpy as np

from .models import AttributeFailure, ExtractionRun, ModelOutput, ModelSummary, RequestSummary
from .schema_validator import classify_error

ROOT_ATTRIBUTE = "(root)"

ALL_PASSED = "all_passed"
PARTIAL = "partial"
ALL_FAILED = "all_failed"


def count_null_values(value: Any) -> int:
    """Number of null leaves (array elements included) in a decoded value."""
    if value is None:
        return 1
    if isinstance(value, dict):
        return sum(count_null_values(v) for v in value.values())
    if isinstance(value, list):
        return sum(count_null_values(v) for v in value)
    return 0


def passed_validation(output: ModelOutput) -> bool:
    """Schema verdict when a schema was applied, otherwise JSON validity."""
    if output.validation is not None:
        return output.validation.valid
    return output.is_qualifying


def summarize_models(runs: Sequence[ExtractionRun]) -> Dict[str, ModelSummary]:
    """
    Aggregate per-model metrics across runs.

    Returns:
        Dict mapping model -> ModelSummary, in first-seen order
    """
    by_model: Dict[str, List[ModelOutput]] = {}
    for run in runs:
        for output in run.outputs:
            by_model.setdefault(output.model, []).append(output)

    summaries = {}
    for model, outputs in by_model.items():
        attempts = len(outputs)
        successes = [o for o in outputs if o.error_message is None]
        decoded = [o for o in outputs if o.is_qualifying]
        validated = [o for o in outputs if o.validation is not None]
        overall = [o.scores.overall for o in decoded if o.scores.overall is not None]
        null_counts = [count_null_values(o.decoded_value) for o in decoded]
        latencies = [o.usage["latency_ms"] for o in outputs if o.usage.get("latency_ms") is not None]

        summaries[model] = ModelSummary(
            model=model,
            attempts=attempts,
            success_count=len(successes),
            failure_count=attempts - len(successes),
            success_rate=len(successes) / attempts if attempts > 0 else 0,
            json_validity_rate=len(decoded) / attempts if attempts > 0 else 0,
            schema_validity_rate=(
                sum(1 for o in validated if o.validation.valid) / len(validated) if validated else None
            ),
            avg_overall_score=float(np.mean(overall)) if overall else None,
            avg_null_count=float(np.mean(null_counts)) if null_counts else None,
            total_null_count=sum(null_counts),
            avg_latency_ms=float(np.mean(latencies)) if latencies else None,
            total_cost_usd=float(sum(o.usage.get("cost_usd") or 0.0 for o in outputs)),
        )

    return summaries


def collect_attribute_failures(runs: Sequence[ExtractionRun]) -> List[AttributeFailure]:
    """
    Count missing / type mismatch / format violation errors per attribute path.

    Returns:
        AttributeFailure list sorted by total failures, most failing first
    """
    failures: Dict[str, AttributeFailure] = {}
    all_models = []

    for run in runs:
        for output in run.outputs:
            if output.model not in all_models:
                all_models.append(output.model)
            if output.validation is None:
                continue

            for error in output.validation.errors:
                kind = classify_error(error)
                if kind == "other":
                    continue

                path = error.path or ROOT_ATTRIBUTE
                failure = failures.setdefault(path, AttributeFailure(attribute_path=path))
                if kind == "missing":
                    failure.missing_count += 1
                elif kind == "type_mismatch":
                    failure.type_mismatch_count += 1
                else:
                    failure.format_violation_count += 1
                if output.model not in failure.affected_models:
                    failure.affected_models.append(output.model)

    for failure in failures.values():
        failure.pattern = _failure_pattern(failure, len(all_models))

    return sorted(failures.values(), key=lambda f: f.total_failures, reverse=True)


def _failure_pattern(failure: AttributeFailure, total_models: int) -> str:
    if len(failure.affected_models) == total_models:
        return f"All {total_models} models fail - attribute may be missing or vague"
    elif failure.type_mismatch_count > failure.missing_count:
        return "Type mismatch common - clarify expected type in prompt"
    elif failure.missing_count > 0:
        return "Missing in some documents - may not exist in all sources"
    return ""


def summarize_requests(runs: Sequence[ExtractionRun]) -> List[RequestSummary]:
    """Per-request count of models that passed validation."""
    summaries = []
    for run in runs:
        passed = sum(1 for o in run.outputs if passed_validation(o))
        total = len(run.outputs)

        if passed == total and total > 0:
            status = ALL_PASSED
        elif passed == 0:
            status = ALL_FAILED
        else:
            status = PARTIAL

        summaries.append(RequestSummary(
            request_id=run.request_id,
            models_passed=passed,
            models_total=total,
            status=status,
        ))
    return summaries
