#!/usr/bin/env python3
"""
CLI script for evaluating stored model outputs.

Usage:
    python scripts/evaluate_outputs.py invoice-001
    python scripts/evaluate_outputs.py invoice-001 --output reports/
    python scripts/evaluate_outputs.py --all --output reports/
    python scripts/evaluate_outputs.py invoice-001 --base-path data/local --format json
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from extraction_quality import evaluate_request, generate_batch_report, generate_report, to_dict
from extraction_quality.loader import list_requests


def evaluate_single_request(request_id: str, base_path: str, output_dir: str = None, output_format: str = "markdown"):
    """Evaluate one request and write or print its report."""
    request_dir = Path(base_path) / request_id
    if not request_dir.exists():
        print(f"Error: Request directory not found: {request_dir}", file=sys.stderr)
        return None

    print(f"Evaluating request {request_id}...", file=sys.stderr)
    run = evaluate_request(request_id, base_path)

    if output_format == "markdown":
        if output_dir:
            output_path = Path(output_dir)
            output_path.mkdir(parents=True, exist_ok=True)
            output_file = output_path / f"evaluation_{request_id}.md"
            generate_report(run, str(output_file))
            print(f"  Report saved to: {output_file}", file=sys.stderr)
        else:
            print(generate_report(run))

    elif output_format == "json":
        output = to_dict(run)

        if output_dir:
            output_path = Path(output_dir)
            output_path.mkdir(parents=True, exist_ok=True)
            output_file = output_path / f"evaluation_{request_id}.json"
            with open(output_file, "w") as f:
                json.dump(output, f, indent=2, default=str)
            print(f"  Report saved to: {output_file}", file=sys.stderr)
        else:
            print(json.dumps(output, indent=2, default=str))

    return run


def main():
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    parser = argparse.ArgumentParser(
        description="Score, validate and compare stored model outputs"
    )
    parser.add_argument(
        "request_id",
        nargs="?",
        default=None,
        help="Request ID to evaluate (optional if --all is used)"
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="Evaluate all requests in base-path directory"
    )
    parser.add_argument(
        "--base-path",
        default=os.environ.get("EVALUATION_BASE_PATH", "data/local"),
        help="Base path for data files (default: data/local)"
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Output directory for report (default: prints to stdout)"
    )
    parser.add_argument(
        "--format",
        choices=["markdown", "json"],
        default="markdown",
        help="Output format (default: markdown)"
    )

    args = parser.parse_args()

    # Validate arguments
    if not args.all and not args.request_id:
        print("Error: Either provide a request_id or use --all flag", file=sys.stderr)
        sys.exit(1)

    if args.all:
        base_path = Path(args.base_path)
        if not base_path.exists():
            print(f"Error: Base path not found: {base_path}", file=sys.stderr)
            sys.exit(1)

        request_ids = list_requests(args.base_path)
        if not request_ids:
            print(f"Error: No request directories found in {base_path}", file=sys.stderr)
            sys.exit(1)

        print(f"\n{'='*80}", file=sys.stderr)
        print(f"Evaluating {len(request_ids)} requests from {base_path}", file=sys.stderr)
        print(f"{'='*80}\n", file=sys.stderr)

        runs = []
        for request_id in request_ids:
            run = evaluate_single_request(request_id, args.base_path, args.output, args.format)
            if run:
                runs.append(run)

        # Print summary table
        print(f"\n{'='*80}", file=sys.stderr)
        print("SUMMARY - All Requests", file=sys.stderr)
        print(f"{'='*80}\n", file=sys.stderr)

        print(f"{'Request':<25} {'Valid':<8} {'Best Model':<25} {'Score':<6}", file=sys.stderr)
        print("-" * 66, file=sys.stderr)
        for run in runs:
            valid = sum(1 for o in run.outputs if o.is_qualifying)
            recommendations = run.analysis.recommendations
            print(
                f"{run.request_id[:23]:<25} "
                f"{valid}/{len(run.outputs):<6} "
                f"{recommendations.best_model[:23]:<25} "
                f"{recommendations.best_score:>5}",
                file=sys.stderr
            )

        if args.output and args.format == "markdown":
            summary_file = Path(args.output) / "SUMMARY_ALL_REQUESTS.md"
            generate_batch_report(runs, str(summary_file))
            print(f"\nSummary saved to: {summary_file}", file=sys.stderr)

    else:
        run = evaluate_single_request(args.request_id, args.base_path, args.output, args.format)
        if run is None:
            sys.exit(1)

        recommendations = run.analysis.recommendations
        print(f"\n--- Summary ---", file=sys.stderr)
        print(f"Best model: {recommendations.best_model} ({recommendations.best_score}/100)", file=sys.stderr)
        print(recommendations.summary, file=sys.stderr)
        for warning in recommendations.warnings:
            print(f"  ! {warning}", file=sys.stderr)


if __name__ == "__main__":
    main()
