#!/usr/bin/env python3
"""
Tests for per-output quality scoring.

Usage:
    pytest tests/unit/test_quality_scorer.py
    python tests/unit/test_quality_scorer.py
"""

import json
import os
import random
import sys
import unittest
from unittest.mock import patch

# Add src to path for imports
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.join(_PROJECT_ROOT, "src"))

from extraction_quality.json_parser import decode_output
from extraction_quality.models import ModelOutput, QualityScores
from extraction_quality.quality_scorer import (
    calculate_completeness_score,
    calculate_consensus_score,
    calculate_content_score,
    calculate_overall_score,
    calculate_structural_score,
    calculate_syntax_score,
    expected_fields_from_schema,
    score_output,
    score_raw_output,
)

INVOICE = {
    "invoice_date": "2024-03-15",
    "total_amount": 1250.5,
    "vendor_name": "Nordic Supplies AB",
    "city": "Göteborg",
}


def _syntax(raw_text, output_format="json"):
    decoded, _ = decode_output(raw_text, output_format)
    return calculate_syntax_score(raw_text, decoded, output_format)


# ═══════════════════════════════════════════════════════════════════════════════
# Test: Syntax
# ═══════════════════════════════════════════════════════════════════════════════

class TestSyntaxScore(unittest.TestCase):
    """Syntax score reflects how much cleanup the raw text needed."""

    def test_clean_json_scores_full(self):
        self.assertEqual(_syntax('{"name": "Ada", "age": 30}'), 100)

    def test_code_fence_loses_direct_parse_and_fence_points(self):
        self.assertEqual(_syntax('```json\n{"name": "Ada", "age": 30}\n```'), 45)

    def test_trailing_comma_does_not_decode(self):
        self.assertEqual(_syntax('{"a": 1,}'), 0)

    def test_surrounding_prose_does_not_decode(self):
        self.assertEqual(_syntax('Here is the data: {"name": "Ada"} Hope this helps!'), 0)

    def test_punctuation_inside_strings_is_not_a_formatting_defect(self):
        self.assertEqual(_syntax("""{"note": "a,}", "quote": "it's: 'ok'"}"""), 100)

    def test_stringified_numbers_lose_points(self):
        self.assertLess(_syntax('{"amount": "30", "count": 2, "tax": 4, "fee": 1}'), 100)

    def test_leading_zero_strings_are_not_numbers(self):
        """Identifiers such as zip codes stay strings."""
        self.assertEqual(_syntax('{"zip": "01234", "count": 2}'), 100)

    def test_jsonl_clean(self):
        self.assertEqual(_syntax('{"a": 1}\n{"a": 2}', "jsonl"), 100)

    def test_undecoded_output_scores_zero(self):
        self.assertEqual(calculate_syntax_score("not json", None), 0)


# ═══════════════════════════════════════════════════════════════════════════════
# Test: Structural
# ═══════════════════════════════════════════════════════════════════════════════

class TestStructuralScore(unittest.TestCase):
    """Structural score rewards object roots, nesting and null usage."""

    def test_flat_object(self):
        self.assertEqual(calculate_structural_score({"a": 1, "b": "x"}), 80)

    def test_nested_object(self):
        value = {"customer": {"name": "Ada"}, "items": [{"sku": "A"}]}
        self.assertEqual(calculate_structural_score(value), 100)

    def test_null_preferred_over_empty_string(self):
        with_null = calculate_structural_score({"a": None, "b": 1})
        with_empty = calculate_structural_score({"a": "", "b": 1})
        self.assertGreater(with_null, with_empty)

    def test_numbered_keys_penalized(self):
        numbered = calculate_structural_score({"item_1": "a", "item_2": "b"})
        array = calculate_structural_score({"items": ["a", "b"]})
        self.assertEqual(numbered, 75)
        self.assertEqual(array, 90)

    def test_bullet_list_in_string_penalized(self):
        packed = calculate_structural_score({"skills": "- Python\n- SQL\n- Spark"})
        listed = calculate_structural_score({"skills": ["Python", "SQL", "Spark"]})
        self.assertGreater(listed, packed)

    def test_array_root_gets_partial_credit(self):
        self.assertLess(calculate_structural_score([{"a": 1}]), calculate_structural_score({"a": 1}))

    def test_bare_scalar(self):
        self.assertEqual(calculate_structural_score(42), 0)


# ═══════════════════════════════════════════════════════════════════════════════
# Test: Completeness
# ═══════════════════════════════════════════════════════════════════════════════

class TestCompletenessScore(unittest.TestCase):
    """Completeness score measures breadth, depth and population."""

    def test_expected_fields_drive_breadth(self):
        value = {"name": "Ada", "email": None}
        partial = calculate_completeness_score(value, ["name", "email", "phone", "address"])
        own_keys = calculate_completeness_score(value)
        self.assertLess(partial, own_keys)

    def test_populated_beats_nulls(self):
        full = calculate_completeness_score({"name": "Ada", "email": "ada@math.org"})
        sparse = calculate_completeness_score({"name": "Ada", "email": None})
        self.assertGreater(full, sparse)

    def test_empty_arrays_penalized(self):
        filled = calculate_completeness_score({"items": [{"sku": "A"}]})
        empty = calculate_completeness_score({"items": []})
        self.assertGreater(filled, empty)

    def test_empty_object_scores_low(self):
        self.assertLessEqual(calculate_completeness_score({}), 15)

    def test_expected_fields_from_schema(self):
        schema = {"type": "object", "properties": {"name": {}, "age": {}}}
        self.assertEqual(expected_fields_from_schema(schema), ["name", "age"])
        self.assertEqual(expected_fields_from_schema({"type": "array", "items": {"properties": {"sku": {}}}}), ["sku"])
        self.assertIsNone(expected_fields_from_schema({"type": "string"}))
        self.assertIsNone(expected_fields_from_schema(None))


# ═══════════════════════════════════════════════════════════════════════════════
# Test: Content
# ═══════════════════════════════════════════════════════════════════════════════

class TestContentScore(unittest.TestCase):
    """Content score checks plausibility of values."""

    def test_clean_content_scores_full(self):
        self.assertEqual(calculate_content_score(INVOICE), 100)

    def test_mojibake_loses_encoding_points(self):
        self.assertEqual(calculate_content_score({"city": "Göteborg"}), 100)
        self.assertEqual(calculate_content_score({"city": "GÃ¶teborg"}), 90)

    def test_hallucination_signals(self):
        value = {"contact_name": "John Doe", "email": "john@example.com", "phone": "123-456-7890"}
        self.assertEqual(calculate_content_score(value), 85)

    def test_placeholder_text(self):
        self.assertEqual(calculate_content_score({"vendor_name": "N/A", "notes": "unknown"}), 80)

    def test_implausible_numbers(self):
        self.assertEqual(calculate_content_score({"total_amount": -50}), 80)
        self.assertEqual(calculate_content_score({"year": 3050}), 80)
        self.assertEqual(calculate_content_score({"year": 2024}), 100)

    def test_unrecognisable_date(self):
        self.assertEqual(calculate_content_score({"due_date": "sometime soon"}), 80)

    def test_mixed_naming_convention(self):
        consistent = calculate_content_score({"first_name": "Ada", "last_name": "Lovelace"})
        mixed = calculate_content_score({"firstName": "Ada", "last_name": "Lovelace"})
        self.assertGreater(consistent, mixed)


# ═══════════════════════════════════════════════════════════════════════════════
# Test: Consensus and overall
# ═══════════════════════════════════════════════════════════════════════════════

class TestConsensusScore(unittest.TestCase):
    """Consensus sub-score compares an output with its siblings."""

    def test_single_output_scores_zero(self):
        output = ModelOutput(model="a", raw_text="{}", decoded_value={"a": 1})
        self.assertEqual(calculate_consensus_score(output, [output]), 0)

    def test_identical_outputs_score_full(self):
        outputs = [ModelOutput(model=m, raw_text="", decoded_value={"a": 1, "b": "x"}) for m in "abc"]
        self.assertEqual(calculate_consensus_score(outputs[0], outputs), 100)

    def test_outlier_scores_lower(self):
        outputs = [
            ModelOutput(model="a", raw_text="", decoded_value={"a": 1, "b": "x"}),
            ModelOutput(model="b", raw_text="", decoded_value={"a": 1, "b": "x"}),
            ModelOutput(model="c", raw_text="", decoded_value={"a": 2, "z": "y"}),
        ]
        self.assertGreater(
            calculate_consensus_score(outputs[0], outputs),
            calculate_consensus_score(outputs[2], outputs),
        )

    def test_failed_siblings_are_ignored(self):
        ok = ModelOutput(model="a", raw_text="", decoded_value={"a": 1})
        failed = ModelOutput(model="b", raw_text="oops")
        self.assertEqual(calculate_consensus_score(ok, [ok, failed]), 0)


class TestOverallScore(unittest.TestCase):
    """Overall score is the weighted sum of the five sub-scores."""

    def test_weighted_sum(self):
        self.assertEqual(calculate_overall_score(QualityScores(100, 100, 100, 100, 100)), 100)
        self.assertEqual(calculate_overall_score(QualityScores(90, 80, 70, 60, 50)), 72)
        self.assertEqual(calculate_overall_score(QualityScores(0, 0, 0, 0, 0)), 0)

    def test_halves_round_up(self):
        for syntax, expected in [(2, 1), (10, 3), (18, 5)]:
            scores = QualityScores(syntax=syntax, structural=0, completeness=0, content=0, consensus=0)
            self.assertEqual(calculate_overall_score(scores), expected, syntax)

    def test_bounded_for_any_combination(self):
        rng = random.Random(7)
        for _ in range(500):
            subs = [rng.randint(0, 100) for _ in range(5)]
            overall = calculate_overall_score(QualityScores(*subs))
            self.assertTrue(min(subs) <= overall <= max(subs), subs)

    def test_missing_consensus_counts_as_zero(self):
        scores = QualityScores(syntax=100, structural=100, completeness=100, content=100)
        self.assertEqual(calculate_overall_score(scores), 85)

    def test_missing_sub_score_means_no_overall(self):
        self.assertIsNone(calculate_overall_score(QualityScores(syntax=100)))


# ═══════════════════════════════════════════════════════════════════════════════
# Test: score_output
# ═══════════════════════════════════════════════════════════════════════════════

class TestScoreOutput(unittest.TestCase):
    """End-to-end scoring of a raw completion."""

    def test_non_json_has_no_scores(self):
        for raw in ["Sorry, I cannot help with that.", "", "null", "{broken"]:
            scores = score_raw_output(raw)
            self.assertEqual(scores, QualityScores(), raw)

    def test_almost_json_has_no_scores(self):
        samples = [
            'Here is the JSON: {"a": 1,}',
            'Here is the JSON: {"a": 1}',
            '{"a": 1,}',
            '{"amount": NaN}',
            'Result:\n```json\n{"a": 1}\n```',
        ]
        for raw in samples:
            scores = score_raw_output(raw)
            self.assertIsNone(scores.overall, raw)
            self.assertEqual(scores, QualityScores(), raw)

    def test_almost_jsonl_has_no_scores(self):
        self.assertIsNone(score_raw_output('{"a": 1}\n{"a": Infinity}', "jsonl").overall)
        self.assertIsNotNone(score_raw_output('```jsonl\n{"a": 1}\n{"a": 2}\n```', "jsonl").overall)

    def test_valid_json_is_scored(self):
        scores = score_raw_output(json.dumps(INVOICE))

        self.assertEqual(scores.syntax, 100)
        self.assertEqual(scores.content, 100)
        self.assertEqual(scores.consensus, 0)
        self.assertEqual(scores.overall, calculate_overall_score(scores))

    def test_jsonl_scores_are_averaged_over_records(self):
        scores = score_raw_output('{"a": 1}\n{"a": 2}', "jsonl")

        self.assertEqual(scores.syntax, 100)
        self.assertEqual(scores.structural, 80)

    def test_failing_dimension_degrades_to_zero(self):
        """A scorer crash is logged and scored 0, never raised."""
        with patch(
            "extraction_quality.quality_scorer.calculate_content_score",
            side_effect=RuntimeError("boom"),
        ):
            scores = score_output('{"a": 1}', {"a": 1})

        self.assertEqual(scores.content, 0)
        self.assertIsNotNone(scores.overall)

    def test_scores_are_bounded(self):
        samples = ['{"a": 1}', "[1, 2, 3]", '"text"', "true", '{"a": {"b": {"c": [null, "", {}]}}}']
        for raw in samples:
            scores = score_raw_output(raw)
            for name in ("syntax", "structural", "completeness", "content", "overall"):
                value = getattr(scores, name)
                self.assertTrue(0 <= value <= 100, f"{name}={value} for {raw}")


if __name__ == "__main__":
    unittest.main(verbosity=2)
