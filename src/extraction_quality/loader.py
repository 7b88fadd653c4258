"""
Data loading utilities for stored model outputs.

Layout of one request directory:

    <base_path>/<request_id>/
        <model>.json | <model>.jsonl | <model>.txt   raw completion per model
        schema.json                                  optional JSON Schema
        request.json                                 optional metadata
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .config import JSON, JSONL, OUTPUT_FORMATS

logger = logging.getLogger(__name__)

SCHEMA_FILE = "schema.json"
REQUEST_FILE = "request.json"
RESERVED_FILES = {SCHEMA_FILE, REQUEST_FILE}
OUTPUT_SUFFIXES = (".json", ".jsonl", ".txt")


def load_raw_outputs(request_dir: Path) -> Dict[str, str]:
    """
    Read every raw model output in a request directory.

    Files are read as text and never parsed here: a malformed completion is
    data to be scored, not a loading error.

    Returns:
        Dict mapping model -> raw completion text, sorted by model
    """
    outputs = {}
    for filepath in sorted(request_dir.iterdir()):
        if not filepath.is_file() or filepath.name in RESERVED_FILES:
            continue
        if filepath.suffix not in OUTPUT_SUFFIXES:
            continue
        with open(filepath, "r", encoding="utf-8") as f:
            outputs[filepath.stem] = f.read()
    return outputs


def load_json_file(filepath: Path) -> Optional[Any]:
    """Load a JSON document, or None when the file does not exist."""
    if not filepath.exists():
        return None
    with open(filepath, "r", encoding="utf-8") as f:
        return json.load(f)


def load_request(request_id: str, base_path: str = "data/local") -> Dict[str, Any]:
    """
    Load all stored data for one extraction request.

    Args:
        request_id: Request directory name
        base_path: Base path for data files

    Returns:
        Dict with keys:
            outputs: model -> raw text
            schema: JSON Schema or None
            metadata: request.json contents (may carry "output_format",
                "usage" per model and "errors" per model)
            output_format: "json" or "jsonl"

    Raises:
        FileNotFoundError: If the request directory does not exist
    """
    request_dir = Path(base_path) / request_id
    if not request_dir.is_dir():
        raise FileNotFoundError(f"Request directory not found: {request_dir}")

    metadata = load_json_file(request_dir / REQUEST_FILE) or {}
    outputs = load_raw_outputs(request_dir)

    output_format = metadata.get("output_format")
    if output_format not in OUTPUT_FORMATS:
        has_jsonl = any((request_dir / f"{model}.jsonl").exists() for model in outputs)
        output_format = JSONL if has_jsonl else JSON

    # Failed calls have no output file, only an error entry
    for model in metadata.get("errors", {}):
        outputs.setdefault(model, "")

    logger.info(f"Loaded {len(outputs)} outputs for {request_id} (format={output_format})")

    return {
        "outputs": outputs,
        "schema": load_json_file(request_dir / SCHEMA_FILE),
        "metadata": metadata,
        "output_format": output_format,
    }


def list_requests(base_path: str = "data/local") -> list:
    """Names of request directories under base_path, sorted."""
    base = Path(base_path)
    if not base.is_dir():
        return []
    return sorted(d.name for d in base.iterdir() if d.is_dir())
