"""
Extraction Quality Module for multi-model structured extraction.

Scores raw model outputs, validates them against a JSON Schema and
compares them across models to recommend the best one.

Usage:
    from extraction_quality import BedrockGateway, run_extraction, generate_report

    # Run one document through several models
    run = run_extraction(
        document_text,
        system_prompt,
        "Extract the invoice fields from:\\n{document}",
        models=["gpt-oss", "mistral-large", "gemma-27b"],
        complete=BedrockGateway().complete,
        schema=schema,
    )

    # Or evaluate outputs stored on disk
    run = evaluate_request("invoice-001", base_path="data/local")

    # Generate markdown report
    report = generate_report(run, output_path="report.md")
"""

from .analytics import collect_attribute_failures, count_null_values, summarize_models, summarize_requests
from .consensus import analyze_consensus, levenshtein_similarity
from .evaluator import evaluate_request
from .gateway import BedrockGateway, GatewayError
from .guidance import aggregate_guidance, generate_prompt_guidance
from .json_parser import decode_output, parse_jsonl, parse_llm_json
from .models import (
    AttributeFailure,
    ConsensusAnalysis,
    ExtractionRun,
    ModelCompletion,
    ModelOutput,
    ModelSummary,
    PromptGuidance,
    QualityScores,
    ValidationError,
    ValidationResult,
    to_dict,
)
from .orchestrator import build_model_output, finalize_run, run_extraction
from .prompts import build_extraction_prompt
from .quality_scorer import (
    calculate_completeness_score,
    calculate_consensus_score,
    calculate_content_score,
    calculate_overall_score,
    calculate_structural_score,
    calculate_syntax_score,
    score_output,
    score_raw_output,
)
from .report import generate_batch_report, generate_report
from .schema_validator import (
    format_validation_errors,
    is_valid_schema,
    validate_against_schema,
    validate_output,
)

__all__ = [
    # Pipeline
    "run_extraction",
    "build_model_output",
    "finalize_run",
    "evaluate_request",
    "build_extraction_prompt",
    "BedrockGateway",
    "GatewayError",
    # Scoring
    "score_output",
    "score_raw_output",
    "calculate_syntax_score",
    "calculate_structural_score",
    "calculate_completeness_score",
    "calculate_content_score",
    "calculate_consensus_score",
    "calculate_overall_score",
    # Consensus
    "analyze_consensus",
    "levenshtein_similarity",
    # Validation
    "is_valid_schema",
    "validate_against_schema",
    "validate_output",
    "format_validation_errors",
    "generate_prompt_guidance",
    "aggregate_guidance",
    # Decoding
    "parse_llm_json",
    "parse_jsonl",
    "decode_output",
    # Analytics and reports
    "summarize_models",
    "summarize_requests",
    "collect_attribute_failures",
    "count_null_values",
    "generate_report",
    "generate_batch_report",
    # Result models
    "QualityScores",
    "ModelOutput",
    "ModelCompletion",
    "ValidationError",
    "ValidationResult",
    "ConsensusAnalysis",
    "ExtractionRun",
    "ModelSummary",
    "AttributeFailure",
    "PromptGuidance",
    "to_dict",
]
