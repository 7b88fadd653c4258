"""
Offline evaluation of stored model outputs.
"""

from datetime import datetime

from .loader import load_request
from .models import ExtractionRun
from .orchestrator import build_model_output, finalize_run
from .schema_validator import is_valid_schema


def evaluate_request(request_id: str, base_path: str = "data/local") -> ExtractionRun:
    """
    Score, validate and compare every stored output for a request.

    Args:
        request_id: Request directory name
        base_path: Base path for data files

    Returns:
        ExtractionRun with the same shape a live run produces
    """
    data = load_request(request_id, base_path)
    schema = data["schema"]
    output_format = data["output_format"]
    usage = data["metadata"].get("usage", {})
    errors = data["metadata"].get("errors", {})

    outputs = [
        build_model_output(
            model,
            raw_text,
            output_format,
            schema,
            usage=usage.get(model),
            error_message=errors.get(model),
        )
        for model, raw_text in data["outputs"].items()
    ]
    analysis = finalize_run(outputs)

    return ExtractionRun(
        request_id=request_id,
        output_format=output_format,
        models=[o.model for o in outputs],
        outputs=outputs,
        analysis=analysis,
        evaluated_at=datetime.now().isoformat(),
        schema_valid=is_valid_schema(schema) if schema is not None else None,
        schema=schema,
    )
