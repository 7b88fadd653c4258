#!/usr/bin/env python3
"""
Run one document through several Bedrock models and compare the outputs.

Usage:
    python scripts/run_extraction.py invoice.txt --prompt prompts/invoice.txt
    python scripts/run_extraction.py invoice.txt --prompt prompts/invoice.txt --schema invoice.schema.json
    python scripts/run_extraction.py items.txt --prompt prompts/items.txt --output-format jsonl --models gpt-oss gemma-27b
    python scripts/run_extraction.py invoice.txt --prompt prompts/invoice.txt --format json --save data/local
"""

import argparse
import json
import logging
import os
import sys
import uuid
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from extraction_quality import BedrockGateway, generate_report, run_extraction, to_dict
from extraction_quality.config import AVAILABLE_MODELS, OUTPUT_FORMATS

DEFAULT_SYSTEM_PROMPT = """You are a precise data extractor. Extract ONLY information explicitly stated in the document.
If information is not present, use null. NEVER invent values."""


def save_outputs(run, base_path: str, schema) -> Path:
    """Store raw outputs in the layout evaluate_outputs.py reads."""
    request_dir = Path(base_path) / run.request_id
    request_dir.mkdir(parents=True, exist_ok=True)

    suffix = ".jsonl" if run.output_format == "jsonl" else ".json"
    for output in run.outputs:
        if output.error_message is None:
            (request_dir / f"{output.model}{suffix}").write_text(output.raw_text, encoding="utf-8")

    metadata = {
        "output_format": run.output_format,
        "usage": {o.model: o.usage for o in run.outputs if o.usage},
        "errors": {o.model: o.error_message for o in run.outputs if o.error_message is not None},
    }
    with open(request_dir / "request.json", "w") as f:
        json.dump(metadata, f, indent=2)

    if schema is not None:
        with open(request_dir / "schema.json", "w") as f:
            json.dump(schema, f, indent=2)

    return request_dir


def main():
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    parser = argparse.ArgumentParser(
        description="Extract structured data from a document with several models and compare them"
    )
    parser.add_argument("document", help="Path to the document text file")
    parser.add_argument("--prompt", required=True, help="Path to the user prompt ({document} marks the document)")
    parser.add_argument("--system-prompt", default=None, help="Path to a system prompt file")
    parser.add_argument("--schema", default=None, help="Path to a JSON Schema file")
    parser.add_argument(
        "--models",
        nargs="+",
        default=list(AVAILABLE_MODELS.keys()),
        help=f"Model keys or Bedrock IDs (default: {' '.join(AVAILABLE_MODELS.keys())})"
    )
    parser.add_argument("--output-format", choices=list(OUTPUT_FORMATS), default="json", help="Model output format")
    parser.add_argument("--request-id", default=None, help="Request ID (default: random)")
    parser.add_argument("--save", default=None, help="Store raw outputs under this base path")
    parser.add_argument(
        "--format",
        choices=["markdown", "json"],
        default="markdown",
        help="Report format (default: markdown)"
    )

    args = parser.parse_args()

    document_text = Path(args.document).read_text(encoding="utf-8")
    user_prompt = Path(args.prompt).read_text(encoding="utf-8")
    system_prompt = Path(args.system_prompt).read_text(encoding="utf-8") if args.system_prompt else DEFAULT_SYSTEM_PROMPT

    schema = None
    if args.schema:
        with open(args.schema, "r", encoding="utf-8") as f:
            schema = json.load(f)

    print(f"Running {len(args.models)} models on {args.document}...", file=sys.stderr)
    run = run_extraction(
        document_text,
        system_prompt,
        user_prompt,
        models=args.models,
        complete=BedrockGateway().complete,
        schema=schema,
        output_format=args.output_format,
        request_id=args.request_id or uuid.uuid4().hex[:12],
    )

    if args.save:
        request_dir = save_outputs(run, args.save, schema)
        print(f"  Outputs saved to: {request_dir}", file=sys.stderr)

    if args.format == "json":
        print(json.dumps(to_dict(run), indent=2, default=str))
    else:
        print(generate_report(run))

    recommendations = run.analysis.recommendations
    print(f"\nBest model: {recommendations.best_model} ({recommendations.best_score}/100)", file=sys.stderr)


if __name__ == "__main__":
    main()
