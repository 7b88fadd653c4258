"""
Markdown report generation for extraction runs.
"""

import math
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .analytics import collect_attribute_failures, count_null_values, summarize_models, summarize_requests
from .guidance import aggregate_guidance, generate_prompt_guidance
from .models import AttributeFailure, ExtractionRun, ModelOutput, ModelSummary, PromptGuidance
from .schema_validator import format_validation_errors

MAX_LISTED_FIELDS = 25


def format_value(value, truncate: bool = False) -> str:
    """Format a value for display in a table cell."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value == int(value):
            return str(int(value))
        return f"{value:.4f}" if abs(value) < 1 else f"{value:,.2f}"
    text = str(value).replace("|", "\\|").replace("\n", " ")
    if truncate and len(text) > 60:
        return text[:57] + "..."
    return text


def format_score(score: Optional[int]) -> str:
    return "-" if score is None else str(score)


def generate_summary_section(run: ExtractionRun) -> str:
    """Generate the summary section."""
    recommendations = run.analysis.recommendations
    qualifying = sum(1 for o in run.outputs if o.is_qualifying)

    lines = [
        "## Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Request ID | {run.request_id} |",
        f"| Output Format | {run.output_format} |",
        f"| Models Compared | {len(run.models)} |",
        f"| Valid Outputs | {qualifying}/{len(run.outputs)} |",
        f"| Best Model | {recommendations.best_model} |",
        f"| Best Score | {recommendations.best_score}/100 |",
    ]
    if run.schema_valid is not None:
        lines.append(f"| Schema Valid | {format_value(run.schema_valid)} |")

    lines.extend(["", f"> {recommendations.summary}", ""])
    return "\n".join(lines)


def generate_ranking_section(run: ExtractionRun) -> str:
    """Generate the recommended models section."""
    lines = [
        "## Recommended Models",
        "",
        "| Rank | Model | Score | Reason | Strengths |",
        "|------|-------|-------|--------|-----------|",
    ]
    for rank, top in enumerate(run.analysis.recommendations.top_models, start=1):
        lines.append(f"| {rank} | {top.model} | **{top.score}** | {top.reason} | {', '.join(top.strengths)} |")
    lines.append("")
    return "\n".join(lines)


def generate_scores_section(outputs: Sequence[ModelOutput]) -> str:
    """Generate the per-model sub-score table, best first."""
    ranked = sorted(outputs, key=lambda o: o.scores.overall or 0, reverse=True)

    lines = [
        "## Quality Scores",
        "",
        "| Model | Syntax | Structural | Completeness | Content | Consensus | **Overall** | Schema | Nulls |",
        "|-------|--------|------------|--------------|---------|-----------|-------------|--------|-------|",
    ]
    for output in ranked:
        s = output.scores
        if output.validation is None:
            schema = "-"
        else:
            schema = "valid" if output.validation.valid else f"{len(output.validation.errors)} errors"
        nulls = count_null_values(output.decoded_value) if output.is_qualifying else "-"
        lines.append(
            f"| {output.model} | {format_score(s.syntax)} | {format_score(s.structural)} | "
            f"{format_score(s.completeness)} | {format_score(s.content)} | {format_score(s.consensus)} | "
            f"**{format_score(s.overall)}** | {schema} | {nulls} |"
        )

    failed = [o for o in outputs if not o.is_qualifying]
    if failed:
        lines.extend(["", "### Failed Outputs", ""])
        for output in failed:
            reason = output.error_message or output.parse_error or "No output"
            lines.append(f"- **{output.model}**: {format_value(reason, truncate=True)}")

    lines.append("")
    return "\n".join(lines)


def generate_field_consensus_section(run: ExtractionRun) -> str:
    """Generate field agreement tables."""
    fc = run.analysis.field_consensus
    lines = [
        "## Field Consensus",
        "",
        f"- **Fields seen**: {fc.total_unique_fields}",
        f"- **Agreed**: {len(fc.agreed_fields)}",
        f"- **Disputed**: {len(fc.disputed_fields)}",
        f"- **Unique**: {len(fc.unique_fields)}",
        "",
    ]

    if fc.disputed_fields:
        lines.extend(["### Disputed Fields", "", "| Field | Present In |", "|-------|------------|"])
        for disputed in fc.disputed_fields[:MAX_LISTED_FIELDS]:
            lines.append(f"| `{disputed.field}` | {', '.join(disputed.present_in)} |")
        lines.append("")

    if fc.unique_fields:
        lines.extend(["### Unique Fields", "", "| Field | Model |", "|-------|-------|"])
        for unique in fc.unique_fields[:MAX_LISTED_FIELDS]:
            lines.append(f"| `{unique.field}` | {unique.model} |")
        lines.append("")

    return "\n".join(lines)


def generate_value_consensus_section(run: ExtractionRun) -> str:
    """Generate agreed values and disagreements."""
    vc = run.analysis.value_consensus
    lines = ["## Value Consensus", ""]

    if vc.high_confidence:
        lines.extend([
            "### High Confidence Values",
            "",
            "| Field | Value | Agreement | Models |",
            "|-------|-------|-----------|--------|",
        ])
        for item in vc.high_confidence[:MAX_LISTED_FIELDS]:
            lines.append(
                f"| `{item.field}` | {format_value(item.value, truncate=True)} | "
                f"{item.agreement_percent}% | {', '.join(item.models_agreed)} |"
            )
        lines.append("")

    if vc.low_confidence:
        lines.extend([
            "### Disagreements",
            "",
            "| Field | Reason | Values |",
            "|-------|--------|--------|",
        ])
        for item in vc.low_confidence:
            values = "; ".join(
                f"{format_value(group.value, truncate=True)} ({', '.join(group.models)})"
                for group in item.values
            )
            lines.append(f"| `{item.field}` | {item.disagreement_reason} | {values} |")
        lines.append("")

    if not vc.high_confidence and not vc.low_confidence:
        lines.extend(["No scalar values to compare.", ""])

    return "\n".join(lines)


def generate_validation_section(outputs: Sequence[ModelOutput]) -> str:
    """Generate schema validation errors per model."""
    validated = [o for o in outputs if o.validation is not None and not o.validation.valid]
    if not validated:
        return ""

    lines = ["## Validation Errors", ""]
    for output in validated:
        lines.extend([f"### {output.model}", "", "```", format_validation_errors(output.validation.errors), "```", ""])
    return "\n".join(lines)


def generate_warnings_section(warnings: List[str]) -> str:
    if not warnings:
        return ""
    lines = ["## Warnings", ""]
    lines.extend(f"- ⚠️ {w}" for w in warnings)
    lines.append("")
    return "\n".join(lines)


def generate_model_summary_section(summaries: Sequence[ModelSummary]) -> str:
    """Generate the cross-run model reliability table."""
    lines = [
        "## Model Reliability",
        "",
        "| Model | Attempts | Success | JSON Valid | Schema Valid | Avg Score | Avg Nulls | Avg Latency | Cost |",
        "|-------|----------|---------|------------|--------------|-----------|-----------|-------------|------|",
    ]
    for s in summaries:
        schema_rate = "-" if s.schema_validity_rate is None else f"{s.schema_validity_rate * 100:.0f}%"
        avg_score = "-" if s.avg_overall_score is None else f"{s.avg_overall_score:.1f}"
        avg_nulls = "-" if s.avg_null_count is None else f"{s.avg_null_count:.1f}"
        latency = "-" if s.avg_latency_ms is None else f"{s.avg_latency_ms:.0f} ms"
        lines.append(
            f"| {s.model} | {s.attempts} | {s.success_rate * 100:.0f}% | {s.json_validity_rate * 100:.0f}% | "
            f"{schema_rate} | {avg_score} | {avg_nulls} | {latency} | ${s.total_cost_usd:.4f} |"
        )
    lines.append("")
    return "\n".join(lines)


def generate_attribute_failures_section(failures: Sequence[AttributeFailure]) -> str:
    """Generate the per-attribute schema failure table."""
    if not failures:
        return ""

    lines = [
        "## Attribute Failures",
        "",
        "| Attribute | Missing | Type Mismatch | Format | Models | Pattern |",
        "|-----------|---------|---------------|--------|--------|---------|",
    ]
    for f in failures[:MAX_LISTED_FIELDS]:
        lines.append(
            f"| `{f.attribute_path}` | {f.missing_count} | {f.type_mismatch_count} | "
            f"{f.format_violation_count} | {', '.join(f.affected_models)} | {f.pattern} |"
        )
    lines.append("")
    return "\n".join(lines)


def generate_guidance_section(runs: Sequence[ExtractionRun]) -> str:
    """Generate per-model three-level verdicts and the most common prompt fixes."""
    results = [generate_prompt_guidance(output, run.schema) for run in runs for output in run.outputs]
    if not results:
        return ""

    by_model: Dict[str, List[PromptGuidance]] = {}
    for result in results:
        by_model.setdefault(result.model, []).append(result)

    lines = [
        "## Prompt Guidance",
        "",
        "| Model | JSON Valid | Attributes Valid | Formats Valid |",
        "|-------|------------|------------------|---------------|",
    ]
    for model, verdicts in by_model.items():
        total = len(verdicts)
        lines.append(
            f"| {model} | {sum(v.json_valid for v in verdicts)}/{total} | "
            f"{sum(v.attributes_valid for v in verdicts)}/{total} | {sum(v.formats_valid for v in verdicts)}/{total} |"
        )
    lines.append("")

    suggestions = aggregate_guidance(results)
    if suggestions:
        lines.extend(f"- {s}" for s in suggestions)
    else:
        lines.append("No prompt changes suggested.")
    lines.append("")
    return "\n".join(lines)


def generate_batch_report(runs: Sequence[ExtractionRun], output_path: Optional[str] = None) -> str:
    """
    Generate a markdown summary across many extraction runs.

    Args:
        runs: ExtractionRun results
        output_path: Optional path to save the report

    Returns:
        Markdown content as string
    """
    lines = [
        "# Extraction Quality Summary",
        "",
        f"> Generated: {datetime.now().isoformat()}",
        "",
        "## Per-Request Results",
        "",
        "| Request | Passed | Status | Best Model | Best Score |",
        "|---------|--------|--------|------------|------------|",
    ]
    for run, summary in zip(runs, summarize_requests(runs)):
        recommendations = run.analysis.recommendations
        lines.append(
            f"| {summary.request_id} | {summary.models_passed}/{summary.models_total} | {summary.status} | "
            f"{recommendations.best_model} | {recommendations.best_score} |"
        )
    lines.append("")

    sections = [
        "\n".join(lines),
        generate_model_summary_section(list(summarize_models(runs).values())),
        generate_attribute_failures_section(collect_attribute_failures(runs)),
        generate_guidance_section(runs),
    ]
    content = "\n".join(sections)

    if output_path:
        Path(output_path).write_text(content, encoding="utf-8")

    return content


def generate_report(run: ExtractionRun, output_path: Optional[str] = None) -> str:
    """
    Generate a complete markdown report for one extraction run.

    Args:
        run: ExtractionRun result
        output_path: Optional path to save the report

    Returns:
        Markdown content as string
    """
    sections = [
        "# Extraction Quality Report",
        "",
        f"> Generated: {run.evaluated_at}",
        "",
        generate_summary_section(run),
        generate_warnings_section(run.analysis.recommendations.warnings),
        generate_ranking_section(run),
        generate_scores_section(run.outputs),
        generate_field_consensus_section(run),
        generate_value_consensus_section(run),
        generate_validation_section(run.outputs),
    ]

    content = "\n".join(sections)

    if output_path:
        Path(output_path).write_text(content, encoding="utf-8")

    return content
