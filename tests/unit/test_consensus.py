#!/usr/bin/env python3
"""
Tests for cross-model consensus analysis.

Usage:
    pytest tests/unit/test_consensus.py
    python tests/unit/test_consensus.py
"""

import json
import os
import sys
import unittest

# Add src to path for imports
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.join(_PROJECT_ROOT, "src"))

from extraction_quality.consensus import analyze_consensus, generate_summary, levenshtein_similarity
from extraction_quality.models import ModelOutput, QualityScores, to_dict
from extraction_quality.normalizers import normalize_value, round_half_up


def make_output(model, value, overall=80, consensus=80, **scores):
    """Qualifying output with preset scores (None value means a failed parse)."""
    if value is None:
        return ModelOutput(model=model, raw_text="not json")
    return ModelOutput(
        model=model,
        raw_text=json.dumps(value),
        decoded_value=value,
        scores=QualityScores(
            syntax=scores.get("syntax", 80),
            structural=scores.get("structural", 80),
            completeness=scores.get("completeness", 80),
            content=scores.get("content", 80),
            consensus=consensus,
            overall=overall,
        ),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Test: Field consensus
# ═══════════════════════════════════════════════════════════════════════════════

class TestFieldConsensus(unittest.TestCase):
    """Every field path lands in exactly one of agreed, disputed, unique."""

    def setUp(self):
        base = {"invoice_number": "INV-1", "currency": "EUR"}
        self.outputs = [
            make_output("a", dict(base, notes="paid", po="PO-7", tax=10)),
            make_output("b", dict(base, po="PO-7", tax=10)),
            make_output("c", dict(base, po="PO-7", tax=10)),
            make_output("d", dict(base, po="PO-7")),
            make_output("e", dict(base)),
        ]

    def test_field_in_one_of_five_is_unique(self):
        analysis = analyze_consensus(self.outputs)
        fc = analysis.field_consensus

        self.assertIn("notes", [f.field for f in fc.unique_fields])
        self.assertNotIn("notes", [f.field for f in fc.agreed_fields])
        self.assertEqual([f.model for f in fc.unique_fields if f.field == "notes"], ["a"])

    def test_threshold_classification(self):
        fc = analyze_consensus(self.outputs).field_consensus
        agreed = {f.field: f.agreement_percent for f in fc.agreed_fields}

        # 4/5 = 80% agreed, 3/5 = 60% disputed
        self.assertEqual(agreed["po"], 80)
        self.assertEqual(agreed["invoice_number"], 100)
        self.assertEqual([f.field for f in fc.disputed_fields], ["tax"])
        self.assertEqual(fc.disputed_fields[0].present_in, ["a", "b", "c"])

    def test_partition_is_complete_and_disjoint(self):
        fc = analyze_consensus(self.outputs).field_consensus
        agreed = [f.field for f in fc.agreed_fields]
        disputed = [f.field for f in fc.disputed_fields]
        unique = [f.field for f in fc.unique_fields]

        all_fields = agreed + disputed + unique
        self.assertEqual(len(all_fields), len(set(all_fields)))
        self.assertEqual(len(all_fields), fc.total_unique_fields)

    def test_agreed_sorted_by_percent(self):
        fc = analyze_consensus(self.outputs).field_consensus
        percents = [f.agreement_percent for f in fc.agreed_fields]
        self.assertEqual(percents, sorted(percents, reverse=True))

    def test_two_outputs_use_ratio_not_count(self):
        outputs = [make_output("a", {"x": 1}), make_output("b", {"x": 2})]
        fc = analyze_consensus(outputs).field_consensus
        self.assertEqual([(f.field, f.agreement_percent) for f in fc.agreed_fields], [("x", 100)])

    def test_array_paths_are_collapsed(self):
        outputs = [
            make_output("a", {"items": [{"sku": "A"}, {"sku": "B"}]}),
            make_output("b", {"items": [{"sku": "A"}]}),
        ]
        fc = analyze_consensus(outputs).field_consensus
        self.assertEqual([f.field for f in fc.agreed_fields], ["items", "items.sku"])


# ═══════════════════════════════════════════════════════════════════════════════
# Test: Value consensus
# ═══════════════════════════════════════════════════════════════════════════════

class TestValueConsensus(unittest.TestCase):
    """Scalar values of agreed fields are compared after normalization."""

    def test_four_of_five_is_high_confidence_80(self):
        outputs = [make_output(m, {"currency": "EUR"}) for m in "abcd"]
        outputs.append(make_output("e", {"currency": "USD"}))

        vc = analyze_consensus(outputs).value_consensus

        self.assertEqual(len(vc.high_confidence), 1)
        entry = vc.high_confidence[0]
        self.assertEqual(entry.field, "currency")
        self.assertEqual(entry.agreement_percent, 80)
        self.assertEqual(entry.models_agreed, ["a", "b", "c", "d"])
        self.assertEqual(vc.low_confidence, [])

    def test_keys_containing_dots_are_compared(self):
        outputs = [make_output(m, {"unit.price": 12.5, "meta": {"v.2": "x"}}) for m in "abc"]
        vc = analyze_consensus(outputs).value_consensus

        high = {v.field: v.value for v in vc.high_confidence}
        self.assertEqual(high, {"unit.price": 12.5, "meta.v.2": "x"})

    def test_case_and_whitespace_are_normalized(self):
        outputs = [
            make_output("a", {"vendor": "Acme AB"}),
            make_output("b", {"vendor": "  acme ab "}),
            make_output("c", {"vendor": "ACME AB"}),
        ]
        vc = analyze_consensus(outputs).value_consensus
        self.assertEqual(vc.high_confidence[0].agreement_percent, 100)
        self.assertEqual(vc.high_confidence[0].value, "Acme AB")

    def test_grouped_number_with_canonicalization(self):
        outputs = [
            make_output("a", {"total_amount": 24500000}),
            make_output("b", {"total_amount": "24500000"}),
            make_output("c", {"total_amount": "24 500 000"}),
        ]
        vc = analyze_consensus(outputs, canonicalize_numbers=True).value_consensus

        self.assertEqual(len(vc.high_confidence), 1)
        self.assertEqual(vc.high_confidence[0].agreement_percent, 100)

    def test_grouped_number_without_canonicalization(self):
        outputs = [
            make_output("a", {"total_amount": 24500000}),
            make_output("b", {"total_amount": "24500000"}),
            make_output("c", {"total_amount": "24 500 000"}),
        ]
        vc = analyze_consensus(outputs, canonicalize_numbers=False).value_consensus

        self.assertEqual(vc.high_confidence, [])
        self.assertEqual(len(vc.low_confidence), 1)
        entry = vc.low_confidence[0]
        self.assertEqual([g.models for g in entry.values], [["a", "b"], ["c"]])
        # similarity is exactly 0.8, not above it
        self.assertEqual(entry.disagreement_reason, "Binary disagreement - models split into two camps")

    def test_objects_and_nulls_are_skipped(self):
        outputs = [
            make_output("a", {"customer": {"name": "Ada"}, "note": None}),
            make_output("b", {"customer": {"name": "Ada"}, "note": None}),
        ]
        vc = analyze_consensus(outputs).value_consensus
        self.assertEqual([e.field for e in vc.high_confidence], ["customer.name"])

    def test_formatting_differences(self):
        outputs = [
            make_output("a", {"vendor": "ACME Corp"}),
            make_output("b", {"vendor": "Acme Corp."}),
            make_output("c", {"vendor": "Acme Corp,"}),
        ]
        entry = analyze_consensus(outputs).value_consensus.low_confidence[0]
        self.assertEqual(entry.disagreement_reason, "Formatting differences - values are similar but not identical")

    def test_high_variance(self):
        outputs = [make_output(f"m{i}", {"color": c}) for i, c in enumerate(
            ["red", "green", "blue", "yellow", "purple", "orange"]
        )]
        entry = analyze_consensus(outputs).value_consensus.low_confidence[0]
        self.assertEqual(entry.disagreement_reason, "High variance - many different values extracted")

    def test_different_information(self):
        outputs = [
            make_output("a", {"color": "red"}),
            make_output("b", {"color": "green"}),
            make_output("c", {"color": "blue"}),
        ]
        entry = analyze_consensus(outputs).value_consensus.low_confidence[0]
        self.assertEqual(entry.disagreement_reason, "Models extracted different information")

    def test_binary_disagreement(self):
        outputs = [
            make_output("a", {"status": "paid"}),
            make_output("b", {"status": "paid"}),
            make_output("c", {"status": "overdue"}),
        ]
        entry = analyze_consensus(outputs).value_consensus.low_confidence[0]
        self.assertEqual(entry.disagreement_reason, "Binary disagreement - models split into two camps")


# ═══════════════════════════════════════════════════════════════════════════════
# Test: Recommendations
# ═══════════════════════════════════════════════════════════════════════════════

class TestRecommendations(unittest.TestCase):
    """Ranking, strengths, warnings and summary."""

    def test_ranking_and_reasons(self):
        outputs = [
            make_output("mid", {"a": 1}, overall=82),
            make_output("best", {"a": 1}, overall=93, syntax=100, structural=90),
            make_output("low", {"a": 1}, overall=71),
            make_output("last", {"a": 1}, overall=60),
        ]
        rec = analyze_consensus(outputs).recommendations

        self.assertEqual(rec.best_model, "best")
        self.assertEqual(rec.best_score, 93)
        self.assertEqual([m.model for m in rec.top_models], ["best", "mid", "low"])
        self.assertEqual(rec.top_models[0].reason, "Exceptional quality with highest consistency and completeness")
        self.assertEqual(rec.top_models[1].reason, "Strong second choice with good consensus agreement")
        self.assertEqual(rec.top_models[2].reason, "Reliable extraction with acceptable quality")
        self.assertEqual(rec.top_models[0].strengths, ["Perfect JSON syntax", "Excellent structure"])
        self.assertEqual(rec.top_models[1].strengths, ["Functional output"])

    def test_rank_zero_bands(self):
        for score, reason in [
            (85, "Highest quality score with strong structural consistency"),
            (75, "Best among tested models with good overall quality"),
            (50, "Highest score but quality could be improved"),
        ]:
            outputs = [make_output("a", {"x": 1}, overall=score), make_output("b", {"x": 1}, overall=10)]
            self.assertEqual(analyze_consensus(outputs).recommendations.top_models[0].reason, reason)

    def test_failure_rate_warning(self):
        outputs = [
            make_output("a", {"x": 1}, overall=90),
            make_output("b", {"x": 1}, overall=90),
            make_output("c", None),
            make_output("d", None),
        ]
        rec = analyze_consensus(outputs).recommendations
        self.assertIn("50% of models failed to produce valid JSON", rec.warnings)

    def test_low_quality_warnings(self):
        outputs = [make_output(m, {"x": 1}, overall=55, consensus=30) for m in "abc"]
        warnings = analyze_consensus(outputs).recommendations.warnings

        self.assertIn("Best model quality is below recommended threshold (60/100)", warnings)
        self.assertIn("Low consensus among models - results may vary significantly", warnings)
        self.assertIn("All models struggled with this document - consider refining prompts", warnings)

    def test_no_warnings_for_good_run(self):
        outputs = [make_output(m, {"x": 1}, overall=90, consensus=90) for m in "abc"]
        rec = analyze_consensus(outputs).recommendations

        self.assertEqual(rec.warnings, [])
        self.assertEqual(rec.summary, "Excellent results: 100% success rate, average top-3 score: 90/100")

    def test_summary_bands(self):
        good = [make_output(m, {"x": 1}, overall=75) for m in "abc"] + [make_output("d", None)]
        self.assertTrue(analyze_consensus(good).recommendations.summary.startswith("Good results: 75% success rate"))

        moderate = [make_output(m, {"x": 1}, overall=50) for m in "ab"] + [make_output(m, None) for m in "cd"]
        self.assertTrue(analyze_consensus(moderate).recommendations.summary.startswith("Moderate results: 50%"))

        poor = [make_output(m, {"x": 1}, overall=90) for m in "ab"] + [make_output(m, None) for m in "cdef"]
        self.assertTrue(analyze_consensus(poor).recommendations.summary.startswith("Poor results: 33%"))

    def test_summary_rounds_halves_up(self):
        outputs = [
            make_output("a", {"x": 1}, overall=90, consensus=90),
            make_output("b", {"x": 1}, overall=91, consensus=90),
        ]
        rec = analyze_consensus(outputs).recommendations
        self.assertEqual(rec.summary, "Excellent results: 100% success rate, average top-3 score: 91/100")

        # 1 of 8 is 12.5%
        self.assertTrue(generate_summary(1, 8, []).startswith("Poor results: 13% success rate"))


# ═══════════════════════════════════════════════════════════════════════════════
# Test: Degenerate inputs
# ═══════════════════════════════════════════════════════════════════════════════

class TestDegenerateCases(unittest.TestCase):
    """Empty and single-output sets degrade gracefully."""

    def test_no_valid_outputs(self):
        outputs = [make_output("a", None), make_output("b", None)]
        analysis = analyze_consensus(outputs)
        rec = analysis.recommendations

        self.assertEqual(rec.best_model, "none")
        self.assertEqual(rec.best_score, 0)
        self.assertEqual(rec.warnings, ["No models produced valid output"])
        self.assertIn("0% success", rec.summary)
        self.assertEqual(analysis.field_consensus.agreed_fields, [])

    def test_empty_input(self):
        self.assertEqual(analyze_consensus([]).recommendations.best_model, "none")

    def test_single_valid_output(self):
        outputs = [make_output("a", {"x": 1, "y": {"z": 2}}, overall=88), make_output("b", None)]
        analysis = analyze_consensus(outputs)
        rec = analysis.recommendations

        self.assertEqual(
            [(f.field, f.agreement_percent) for f in analysis.field_consensus.agreed_fields],
            [("x", 100), ("y", 100), ("y.z", 100)],
        )
        self.assertEqual(analysis.field_consensus.disputed_fields, [])
        self.assertEqual(analysis.field_consensus.unique_fields, [])
        self.assertEqual(analysis.value_consensus.high_confidence, [])
        self.assertEqual(rec.best_model, "a")
        self.assertEqual(len(rec.top_models), 1)
        self.assertEqual(rec.top_models[0].reason, "Only model with valid output")
        self.assertIn("Only one model succeeded - no cross-validation possible", rec.warnings)
        self.assertIn("50% of models failed to produce valid JSON", rec.warnings)


# ═══════════════════════════════════════════════════════════════════════════════
# Test: Determinism and helpers
# ═══════════════════════════════════════════════════════════════════════════════

class TestDeterminism(unittest.TestCase):

    def test_analysis_is_idempotent(self):
        outputs = [
            make_output("a", {"vendor": "Acme", "total": 10, "items": [{"sku": "A"}]}, overall=90),
            make_output("b", {"vendor": "acme", "total": 12}, overall=70),
            make_output("c", {"vendor": "Acme Inc", "total": 10, "notes": "x"}, overall=70),
            make_output("d", None),
        ]
        first = json.dumps(to_dict(analyze_consensus(outputs)), sort_keys=False)
        second = json.dumps(to_dict(analyze_consensus(outputs)), sort_keys=False)
        self.assertEqual(first, second)


class TestHelpers(unittest.TestCase):

    def test_levenshtein_similarity(self):
        self.assertEqual(levenshtein_similarity("abc", "abc"), 1.0)
        self.assertEqual(levenshtein_similarity("", "abc"), 0.0)
        self.assertAlmostEqual(levenshtein_similarity("kitten", "sitting"), 1 - 3 / 7)
        self.assertEqual(levenshtein_similarity("24500000", "24 500 000"), 0.8)

    def test_normalize_value(self):
        self.assertEqual(normalize_value("  ACME "), "acme")
        self.assertEqual(normalize_value(True), "true")
        self.assertEqual(normalize_value(3.0), "3")
        self.assertEqual(normalize_value("24,500,000", canonicalize_numbers=True), "24500000")
        self.assertEqual(normalize_value("24,500,000", canonicalize_numbers=False), "24,500,000")
        self.assertEqual(normalize_value("1,5", canonicalize_numbers=True), "1,5")
        self.assertIsNone(normalize_value(None))

    def test_round_half_up(self):
        self.assertEqual([round_half_up(x) for x in (0.5, 1.5, 2.5, 12.5, 72.4999, -2.5)], [1, 2, 3, 13, 72, -2])


if __name__ == "__main__":
    unittest.main(verbosity=2)
