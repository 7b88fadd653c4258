"""
Two-phase extraction pipeline.

Phase 1 runs per output as soon as its model call finishes: decode, score
the independent dimensions and validate against the schema. Phase 2 runs
once, after every model call reached a terminal state: consensus sub-scores,
recomputed overall scores and the cross-model consensus analysis.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import config
from .config import OUTPUT_FORMATS
from .consensus import analyze_consensus
from .json_parser import decode_output
from .models import ConsensusAnalysis, ExtractionRun, ModelCompletion, ModelOutput
from .prompts import build_extraction_prompt
from .quality_scorer import (
    calculate_overall_score,
    expected_fields_from_schema,
    score_consensus,
    score_output,
)
from .schema_validator import is_valid_schema, validate_output

logger = logging.getLogger(__name__)

# complete(model, system_prompt, user_prompt) -> ModelCompletion
CompletionFn = Callable[[str, str, str], ModelCompletion]


def build_model_output(
    model: str,
    raw_text: Optional[str],
    output_format: str = "json",
    schema: Optional[Dict[str, Any]] = None,
    usage: Optional[Dict[str, Any]] = None,
    error_message: Optional[str] = None,
) -> ModelOutput:
    """
    Phase 1 for one output: decode, score and validate.

    A failed model call (error_message set) produces a terminal failed
    output with no decoded value and no scores.
    """
    if error_message is not None:
        return ModelOutput(
            model=model,
            raw_text=raw_text or "",
            error_message=error_message,
            usage=dict(usage or {}),
        )

    raw_text = raw_text or ""
    decoded_value, parse_error = decode_output(raw_text, output_format)
    if parse_error:
        logger.warning(f"{model}: {parse_error[:200]}")

    scores = score_output(raw_text, decoded_value, output_format, expected_fields_from_schema(schema))
    validation = validate_output(raw_text, decoded_value, schema, output_format) if schema else None

    return ModelOutput(
        model=model,
        raw_text=raw_text,
        decoded_value=decoded_value,
        scores=scores,
        validation=validation,
        parse_error=parse_error,
        usage=dict(usage or {}),
    )


def finalize_run(
    outputs: Sequence[ModelOutput],
    canonicalize_numbers: Optional[bool] = None
) -> ConsensusAnalysis:
    """
    Phase 2 over the complete set of outputs for one request.

    Sets each qualifying output's consensus sub-score, recomputes its overall
    score, then runs the consensus analysis once.
    """
    for output in outputs:
        if not output.is_qualifying:
            continue
        output.scores.consensus = score_consensus(output, outputs, canonicalize_numbers)
        output.scores.overall = calculate_overall_score(output.scores)

    return analyze_consensus(outputs, canonicalize_numbers)


def run_extraction(
    document_text: str,
    system_prompt: str,
    user_prompt: str,
    models: Sequence[str],
    complete: CompletionFn,
    schema: Optional[Dict[str, Any]] = None,
    output_format: str = "json",
    request_id: Optional[str] = None,
    max_workers: Optional[int] = None,
) -> ExtractionRun:
    """
    Fan one extraction request out to every model and evaluate the results.

    Args:
        document_text: Source document text
        system_prompt: System prompt sent to every model
        user_prompt: User prompt; {document} is replaced by the document text
        models: Model keys or IDs to call
        complete: Text completion function, e.g. BedrockGateway().complete
        schema: Optional JSON Schema for validation and expected fields
        output_format: "json" or "jsonl"
        request_id: Identifier for the run (generated when omitted)
        max_workers: Concurrent model calls (MAX_CONCURRENT_MODELS by default)

    Returns:
        ExtractionRun with outputs in the order of `models`

    Raises:
        ValueError: If output_format is not supported
    """
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(f"Unsupported output format: {output_format!r} (expected one of {OUTPUT_FORMATS})")

    request_id = request_id or uuid.uuid4().hex
    system, prompt = build_extraction_prompt(system_prompt, user_prompt, document_text, output_format, schema)
    schema_valid = is_valid_schema(schema) if schema is not None else None
    if schema_valid is False:
        logger.warning(f"[{request_id}] Schema is not a valid JSON Schema; every output will fail validation")

    workers = max(1, min(max_workers or config.MAX_CONCURRENT_MODELS, len(models) or 1))
    logger.info(f"[{request_id}] Dispatching {len(models)} models ({workers} workers, format={output_format})")

    outputs_by_model: Dict[str, ModelOutput] = {}
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(complete, model, system, prompt): model
            for model in models
        }

        for future in as_completed(futures):
            model = futures[future]
            try:
                completion = future.result()
            except Exception as e:
                logger.warning(f"[{request_id}] {model} failed: {e}")
                outputs_by_model[model] = build_model_output(model, None, output_format, schema, error_message=str(e))
                continue

            output = build_model_output(
                model,
                completion.text,
                output_format,
                schema,
                usage={
                    "input_tokens": completion.input_tokens,
                    "output_tokens": completion.output_tokens,
                    "cost_usd": completion.cost_usd,
                    "latency_ms": completion.latency_ms,
                },
            )
            outputs_by_model[model] = output
            logger.info(f"[{request_id}] {model} completed (overall={output.scores.overall})")

    outputs: List[ModelOutput] = [outputs_by_model[model] for model in models]
    analysis = finalize_run(outputs)
    logger.info(
        f"[{request_id}] Consensus done: best={analysis.recommendations.best_model} "
        f"({analysis.recommendations.best_score}/100)"
    )

    return ExtractionRun(
        request_id=request_id,
        output_format=output_format,
        models=list(models),
        outputs=outputs,
        analysis=analysis,
        evaluated_at=datetime.now().isoformat(),
        schema_valid=schema_valid,
        schema=schema,
    )
