"""
Cross-model consensus analysis for one extraction request.

Given every model output for the same request, determines which fields the
models agree on, which values they agree on, why they disagree where they
do, and which model to recommend.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from .field_paths import extract_all_field_paths, get_value_at_path
from .models import (
    AgreedField,
    ConsensusAnalysis,
    DisputedField,
    FieldConsensus,
    HighConfidenceValue,
    LowConfidenceValue,
    ModelOutput,
    Recommendations,
    TopModel,
    UniqueField,
    ValueConsensus,
    ValueGroup,
)
from .normalizers import is_scalar, normalize_value, round_half_up

logger = logging.getLogger(__name__)

AGREEMENT_THRESHOLD = 0.7
SIMILARITY_THRESHOLD = 0.8
MAX_DISTINCT_VALUES = 5
TOP_N = 3

NO_MODEL = "none"

STRENGTH_THRESHOLDS = [
    ("syntax", 90, "Perfect JSON syntax"),
    ("structural", 85, "Excellent structure"),
    ("completeness", 85, "High completeness"),
    ("content", 85, "Quality content extraction"),
    ("consensus", 85, "Strong consensus with other models"),
]


def analyze_consensus(
    outputs: Sequence[ModelOutput],
    canonicalize_numbers: Optional[bool] = None
) -> ConsensusAnalysis:
    """
    Compare all outputs for one request.

    Args:
        outputs: Every attempted output, failed ones included (they count
            towards the failure rate)
        canonicalize_numbers: Override NUMERIC_CANONICALIZATION for value
            comparison

    Returns:
        ConsensusAnalysis; never raises
    """
    qualifying = [o for o in outputs if o.is_qualifying]
    total = len(outputs)

    if not qualifying:
        return _empty_analysis(total)

    if len(qualifying) == 1:
        return _single_model_analysis(qualifying[0], total)

    field_consensus = analyze_field_consensus(qualifying)
    value_consensus = analyze_value_consensus(qualifying, field_consensus.agreed_fields, canonicalize_numbers)
    recommendations = generate_recommendations(qualifying, total)

    logger.info(
        f"Consensus over {len(qualifying)}/{total} outputs: "
        f"{len(field_consensus.agreed_fields)} agreed, "
        f"{len(field_consensus.disputed_fields)} disputed, "
        f"{len(field_consensus.unique_fields)} unique fields"
    )

    return ConsensusAnalysis(
        field_consensus=field_consensus,
        value_consensus=value_consensus,
        recommendations=recommendations,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Field consensus
# ═══════════════════════════════════════════════════════════════════════════════

def analyze_field_consensus(outputs: Sequence[ModelOutput]) -> FieldConsensus:
    """Partition every field path into agreed, disputed and unique."""
    field_to_models: Dict[str, List[str]] = {}

    for output in outputs:
        for path in extract_all_field_paths(output.decoded_value):
            holders = field_to_models.setdefault(path, [])
            if output.model not in holders:
                holders.append(output.model)

    total = len(outputs)
    agreed: List[AgreedField] = []
    disputed: List[DisputedField] = []
    unique: List[UniqueField] = []

    for path, models in field_to_models.items():
        count = len(models)
        if count >= total * AGREEMENT_THRESHOLD:
            agreed.append(AgreedField(field=path, agreement_percent=round_half_up(count / total * 100)))
        elif count > 1:
            disputed.append(DisputedField(field=path, present_in=list(models)))
        else:
            unique.append(UniqueField(field=path, model=models[0]))

    agreed.sort(key=lambda f: f.agreement_percent, reverse=True)

    return FieldConsensus(
        agreed_fields=agreed,
        disputed_fields=disputed,
        unique_fields=unique,
        total_unique_fields=len(field_to_models),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Value consensus
# ═══════════════════════════════════════════════════════════════════════════════

def analyze_value_consensus(
    outputs: Sequence[ModelOutput],
    agreed_fields: Sequence[AgreedField],
    canonicalize_numbers: Optional[bool] = None
) -> ValueConsensus:
    """
    Compare scalar values of agreed fields across outputs.

    Values are grouped by normalized form; each group keeps the first value
    seen as its representative. Share is measured against all outputs.
    """
    high: List[HighConfidenceValue] = []
    low: List[LowConfidenceValue] = []

    for agreed in agreed_fields:
        groups: Dict[str, ValueGroup] = {}

        for output in outputs:
            value = get_value_at_path(output.decoded_value, agreed.field)
            if not is_scalar(value):
                continue
            key = normalize_value(value, canonicalize_numbers)
            group = groups.setdefault(key, ValueGroup(value=value, models=[]))
            group.models.append(output.model)

        if not groups:
            continue

        _, top_group = max(groups.items(), key=lambda item: len(item[1].models))
        share = len(top_group.models) / len(outputs)

        if share >= AGREEMENT_THRESHOLD:
            high.append(HighConfidenceValue(
                field=agreed.field,
                value=top_group.value,
                agreement_percent=round_half_up(share * 100),
                models_agreed=list(top_group.models),
            ))
        else:
            low.append(LowConfidenceValue(
                field=agreed.field,
                values=list(groups.values()),
                disagreement_reason=determine_disagreement_reason(list(groups.keys())),
            ))

    return ValueConsensus(high_confidence=high, low_confidence=low)


def determine_disagreement_reason(distinct_values: Sequence[str]) -> str:
    """Classify a disagreement from the distinct normalized values."""
    if len(distinct_values) > MAX_DISTINCT_VALUES:
        return "High variance - many different values extracted"

    all_similar = all(
        levenshtein_similarity(a, b) > SIMILARITY_THRESHOLD
        for a in distinct_values
        for b in distinct_values
    )
    if all_similar:
        return "Formatting differences - values are similar but not identical"

    if len(distinct_values) == 2:
        return "Binary disagreement - models split into two camps"

    return "Models extracted different information"


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - edit_distance / max_length; identical strings are 1.0, an empty side 0.0."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current

    return 1 - previous[-1] / max(len(a), len(b))


# ═══════════════════════════════════════════════════════════════════════════════
# Recommendations
# ═══════════════════════════════════════════════════════════════════════════════

def generate_recommendations(outputs: Sequence[ModelOutput], total_outputs: int) -> Recommendations:
    """Rank qualifying outputs and derive warnings and a summary."""
    ranked = sorted(outputs, key=_overall, reverse=True)

    top_models = [
        TopModel(
            model=output.model,
            score=_overall(output),
            reason=_rank_reason(_overall(output), rank),
            strengths=identify_strengths(output),
        )
        for rank, output in enumerate(ranked[:TOP_N])
    ]

    return Recommendations(
        best_model=ranked[0].model,
        best_score=_overall(ranked[0]),
        top_models=top_models,
        warnings=generate_warnings(ranked, total_outputs),
        summary=generate_summary(len(outputs), total_outputs, top_models),
    )


def _overall(output: ModelOutput) -> int:
    return output.scores.overall or 0


def _rank_reason(score: int, rank: int) -> str:
    if rank == 0:
        if score >= 90:
            return "Exceptional quality with highest consistency and completeness"
        elif score >= 80:
            return "Highest quality score with strong structural consistency"
        elif score >= 70:
            return "Best among tested models with good overall quality"
        return "Highest score but quality could be improved"
    elif rank == 1:
        return "Strong second choice with good consensus agreement"
    return "Reliable extraction with acceptable quality"


def identify_strengths(output: ModelOutput) -> List[str]:
    strengths = [
        label for name, threshold, label in STRENGTH_THRESHOLDS
        if (getattr(output.scores, name) or 0) >= threshold
    ]
    return strengths or ["Functional output"]


def generate_warnings(ranked: Sequence[ModelOutput], total_outputs: int) -> List[str]:
    """Each warning is triggered independently."""
    warnings = []

    if total_outputs:
        failure_rate = (total_outputs - len(ranked)) / total_outputs * 100
        if failure_rate >= 50:
            warnings.append(f"{round_half_up(failure_rate)}% of models failed to produce valid JSON")

    if ranked and _overall(ranked[0]) < 60:
        warnings.append("Best model quality is below recommended threshold (60/100)")

    if len(ranked) >= 3:
        mean_consensus = float(np.mean([o.scores.consensus or 0 for o in ranked]))
        if mean_consensus < 50:
            warnings.append("Low consensus among models - results may vary significantly")

        if all(_overall(o) < 70 for o in ranked[:TOP_N]):
            warnings.append("All models struggled with this document - consider refining prompts")

    return warnings


def generate_summary(valid_count: int, total_count: int, top_models: Sequence[TopModel]) -> str:
    """One sentence banded by success rate and average top-3 score."""
    success_rate = round_half_up(valid_count / total_count * 100) if total_count else 0
    avg_top = round_half_up(float(np.mean([m.score for m in top_models]))) if top_models else 0

    if success_rate >= 80 and avg_top >= 80:
        return f"Excellent results: {success_rate}% success rate, average top-3 score: {avg_top}/100"
    elif success_rate >= 60 and avg_top >= 70:
        return f"Good results: {success_rate}% success rate, average top-3 score: {avg_top}/100"
    elif success_rate >= 40:
        return (
            f"Moderate results: {success_rate}% success rate, average top-3 score: {avg_top}/100, "
            f"consider using stronger models"
        )
    return (
        f"Poor results: {success_rate}% success rate, average top-3 score: {avg_top}/100, "
        f"prompt refinement recommended"
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Degenerate cases
# ═══════════════════════════════════════════════════════════════════════════════

def _empty_analysis(total_outputs: int) -> ConsensusAnalysis:
    logger.warning(f"No valid output among {total_outputs} models")
    return ConsensusAnalysis(
        field_consensus=FieldConsensus(),
        value_consensus=ValueConsensus(),
        recommendations=Recommendations(
            best_model=NO_MODEL,
            best_score=0,
            top_models=[],
            warnings=["No models produced valid output"],
            summary="All models failed to produce valid JSON: 0% success rate",
        ),
    )


def _single_model_analysis(output: ModelOutput, total_outputs: int) -> ConsensusAnalysis:
    paths = extract_all_field_paths(output.decoded_value)
    score = _overall(output)
    success_rate = round_half_up(100 / total_outputs) if total_outputs else 0

    warnings = ["Only one model succeeded - no cross-validation possible"]
    warnings.extend(generate_warnings([output], total_outputs))

    return ConsensusAnalysis(
        field_consensus=FieldConsensus(
            agreed_fields=[AgreedField(field=path, agreement_percent=100) for path in paths],
            total_unique_fields=len(paths),
        ),
        value_consensus=ValueConsensus(),
        recommendations=Recommendations(
            best_model=output.model,
            best_score=score,
            top_models=[TopModel(
                model=output.model,
                score=score,
                reason="Only model with valid output",
                strengths=identify_strengths(output),
            )],
            warnings=warnings,
            summary=(
                f"Single model output: {success_rate}% success rate, score {score}/100, "
                f"consensus analysis not available"
            ),
        ),
    )
