"""
Response normalizer tests: aliasing, coercion, clamping, degraded results
and idempotence over canonical output.
"""

import json

import pytest
from pydantic import ValidationError

from legal_analyzer.models.schemas import AnalysisResult
from legal_analyzer.services.response_normalizer import (
    CLAUSE_TYPE_MAPPING, MAX_INTEGER_FIELD, MAX_ORIGINAL_CHARS, ResponseNormalizer,
    bounded_original, map_clause_type, resolve_first_present, standardize_priority,
    standardize_severity, to_bool
)

from .conftest import canonical_payload


@pytest.fixture
def normalizer():
    return ResponseNormalizer()


def assert_valid(result: AnalysisResult):
    """Every per-field range holds and the wire form re-validates."""
    assert 0 <= result.summary.confidence <= 1
    assert 0 <= result.summary.risk_score <= 100
    assert result.summary.total_clauses >= 0
    for clause in result.clauses:
        assert 0 <= clause.confidence <= 1
        assert clause.end_position > clause.start_position >= 0
    for risk in result.risks:
        assert risk.severity in {"Low", "Medium", "High", "Critical"}
        assert 0 <= risk.confidence <= 1
    for rec in result.recommendations:
        assert rec.priority in {"Low", "Medium", "High"}
    assert result.metadata.processing_method == "api_fallback"
    AnalysisResult.model_validate(result.to_dict())


def test_mixed_type_summary_and_non_array_clauses(normalizer):
    result = normalizer.normalize({
        "summary": {"clause_count": "3", "risk_score": 150},
        "clauses": "not-an-array"
    })

    assert result.summary.total_clauses == 3
    assert result.summary.risk_score == 100
    assert result.clauses == []
    assert_valid(result)


@pytest.mark.parametrize("raw,expected", [
    ("severe", "Critical"),
    ("weird", "Medium"),
    ("MINOR", "Low"),
    ("  Major ", "High"),
    ("critical", "Critical"),
    (None, "Medium"),
    (3, "Medium"),
])
def test_severity_aliases(raw, expected):
    assert standardize_severity(raw) == expected


def test_risk_severity_through_level_alias(normalizer):
    result = normalizer.normalize({"risks": [{"level": "severe"}, {"severity": "weird"}]})
    assert [risk.severity for risk in result.risks] == ["Critical", "Medium"]


@pytest.mark.parametrize("raw,expected", [
    ("urgent", "High"),
    ("low", "Low"),
    ("whenever", "Medium"),
    (None, "Medium"),
])
def test_priority_aliases(raw, expected):
    assert standardize_priority(raw) == expected


@pytest.mark.parametrize("raw", [
    {}, None, [], "text", 42, True, [{"summary": {}}],
    {"summary": {"riskScore": 10 ** 400}},
])
def test_never_raises_for_any_json_value(normalizer, raw):
    result = normalizer.normalize(raw)
    assert_valid(result)


def test_non_object_input_degrades(normalizer):
    result = normalizer.normalize(None)

    assert result.degraded is True
    assert result.summary.title == "API Analysis (Partial)"
    assert result.risks[0].id == "normalization_error"
    assert result.risks[0].category == "system"
    assert result.risks[0].confidence == 1.0
    assert result.recommendations[0].id == "check_api_format"
    assert result.recommendations[0].priority == "High"
    assert result.recommendations[0].action_required is True
    assert "not a JSON object" in result.metadata.normalization_error
    assert result.metadata.processing_method == "api_fallback"


def test_degraded_result_keeps_original_payload(normalizer):
    result = normalizer.normalize(["unexpected", "list"])
    wire = result.to_dict()
    assert wire["metadata"]["originalResponse"] == ["unexpected", "list"]
    assert wire["metadata"]["normalizationError"]


def test_empty_object_gets_defaults(normalizer):
    result = normalizer.normalize({})

    assert result.degraded is False
    assert result.summary.title == "Analyzed Contract"
    assert result.summary.document_type == "contract"
    assert result.summary.confidence == 0
    assert result.metadata.model_used == "external_api"
    assert result.clauses == result.risks == result.recommendations == []


def test_alias_resolution(normalizer):
    result = normalizer.normalize({
        "summary": {
            "document_title": "Lease",
            "document_type": "lease",
            "total_clauses": 2,
            "processing_ms": "1500",
            "confidence_score": "0.7"
        },
        "clauses": [{
            "clause_id": "k1",
            "clause_text": "Tenant pays rent monthly.",
            "clause_type": "payment",
            "confidence_score": 0.8,
            "start_pos": 10,
            "end_pos": 35
        }],
        "risks": [{
            "risk_id": "x1",
            "name": "Late fees",
            "details": "Fees accrue daily",
            "risk_level": "major",
            "risk_category": "financial",
            "clause_ids": ["k1", 7],
            "mitigation_strategy": "Cap late fees"
        }],
        "recommendations": [{
            "recommendation_id": "y1",
            "recommendation_title": "Negotiate fees",
            "recommendation_text": "Ask for a grace period",
            "importance": "high",
            "rec_category": "financial",
            "requires_action": "yes"
        }],
        "metadata": {"model": "vendor-x", "tokens": 900, "overall_confidence": 0.6}
    })

    assert result.summary.title == "Lease"
    assert result.summary.document_type == "lease"
    assert result.summary.processing_time == 1500
    assert result.summary.confidence == 0.7

    clause = result.clauses[0]
    assert (clause.id, clause.type, clause.category) == ("k1", "payment_terms", "Payment")
    assert (clause.start_position, clause.end_position) == (10, 35)
    assert clause.confidence == 0.8

    risk = result.risks[0]
    assert (risk.id, risk.title, risk.severity, risk.category) == ("x1", "Late fees", "High", "financial")
    assert risk.affected_clauses == ["k1", "7"]
    assert risk.mitigation == "Cap late fees"

    rec = result.recommendations[0]
    assert (rec.id, rec.priority, rec.action_required) == ("y1", "High", True)

    assert result.metadata.model_used == "vendor-x"
    assert result.metadata.token_usage == 900
    assert result.metadata.confidence == 0.6


def test_primary_name_wins_over_alias():
    assert resolve_first_present({"title": "A", "document_title": "B"}, ("title", "document_title")) == "A"


def test_empty_and_null_fall_through_to_alias():
    names = ("title", "document_title")
    assert resolve_first_present({"title": "", "document_title": "B"}, names) == "B"
    assert resolve_first_present({"title": None, "document_title": "B"}, names) == "B"
    assert resolve_first_present({}, names, "default") == "default"


def test_wrong_typed_primary_does_not_fall_through(normalizer):
    result = normalizer.normalize({"summary": {"riskScore": "high", "risk_score": 80}})
    assert result.summary.risk_score == 0


@pytest.mark.parametrize("value,expected", [
    ("0.5", 0.5),
    (-3, 0.0),
    (7, 1.0),
    ("NaN", 0.5),
    ("Infinity", 0.5),
    (True, 0.5),
    ({"x": 1}, 0.5),
])
def test_clause_confidence_coercion(normalizer, value, expected):
    result = normalizer.normalize({"clauses": [{"text": "x", "confidence": value}]})
    assert result.clauses[0].confidence == expected


@pytest.mark.parametrize("value,expected", [(-5, 0), ("12", 12), ("abc", 0), (3.9, 3), (False, 0)])
def test_non_negative_integer_fields(normalizer, value, expected):
    result = normalizer.normalize({"metadata": {"tokenUsage": value}})
    assert result.metadata.token_usage == expected


def test_bad_positions_are_repaired(normalizer):
    result = normalizer.normalize({"clauses": [
        {"text": "abcde", "startPosition": 20, "endPosition": 5},
        {"text": "", "startPosition": -4},
    ]})
    assert (result.clauses[0].start_position, result.clauses[0].end_position) == (20, 25)
    assert (result.clauses[1].start_position, result.clauses[1].end_position) == (0, 1)


def test_positional_ids_and_duplicates(normalizer):
    result = normalizer.normalize({"clauses": [
        {"text": "a"},
        {"id": "dup", "text": "b"},
        {"id": "dup", "text": "c"},
        "garbage",
    ]})
    ids = [clause.id for clause in result.clauses]
    assert ids == ["normalized_clause_1", "dup", "dup_2"]
    assert len(set(ids)) == len(ids)


def test_missing_text_fields_default_to_empty(normalizer):
    result = normalizer.normalize({"risks": [{}], "recommendations": [{}]})
    risk, rec = result.risks[0], result.recommendations[0]
    assert (risk.id, risk.title, risk.description, risk.mitigation) == ("normalized_risk_1", "", "", "")
    assert risk.category == "general"
    assert risk.confidence == 0.5
    assert (rec.id, rec.title, rec.category, rec.action_required) == ("normalized_rec_1", "", "general", False)


@pytest.mark.parametrize("value,expected", [
    (True, True), ("Y", True), ("true", True), (1, True), (0.0, False),
    ("no", False), (None, False), ([1], False),
])
def test_bool_coercion(value, expected):
    assert to_bool(value) is expected


def test_affected_clauses_shapes(normalizer):
    result = normalizer.normalize({"risks": [
        {"affectedClauses": "c1"},
        {"affectedClauses": ["c1", 2, None, {"id": "c3"}, True]},
    ]})
    assert result.risks[0].affected_clauses == []
    assert result.risks[1].affected_clauses == ["c1", "2"]


@pytest.mark.parametrize("raw,expected", [
    ("payment", "payment_terms"),
    ("IP", "ip_rights"),
    ("dispute", "dispute_resolution"),
    ("Force Majeure", "force_majeure"),
    ("payment-schedule", "payment_terms"),
    ("termination_clause", "termination_clause"),
    ("zzz", "unknown"),
    ("a", "unknown"),
    ("p", "unknown"),
    ("pay", "payment_terms"),
    ("", "unknown"),
    (None, "unknown"),
])
def test_clause_type_mapping(raw, expected):
    assert map_clause_type(raw) == expected


def test_clause_type_mapping_has_documented_entries():
    assert len(CLAUSE_TYPE_MAPPING) >= 15
    for canonical in set(CLAUSE_TYPE_MAPPING.values()):
        assert map_clause_type(canonical) == canonical


def test_category_from_clause_type(normalizer):
    result = normalizer.normalize({"clauses": [
        {"text": "x", "type": "indemnity"},
        {"text": "y", "type": "mystery"},
    ]})
    assert result.clauses[0].category == "Liability"
    assert result.clauses[1].category == "General"


def test_canonical_result_is_idempotent(normalizer):
    first = normalizer.normalize(canonical_payload())
    second = normalizer.normalize(first.to_dict())
    assert second == first
    assert second.to_dict() == first.to_dict()


def test_degraded_result_is_idempotent(normalizer):
    first = normalizer.normalize("not json at all")
    second = normalizer.normalize(first.to_dict())
    assert second.to_dict() == first.to_dict()


def test_adversarial_payload(normalizer):
    result = normalizer.normalize({
        "summary": {"riskScore": float("inf"), "confidence": -1, "totalClauses": [1, 2]},
        "clauses": [{"id": {"nested": True}, "text": ["a"], "startPosition": "1e400"}] * 3,
        "risks": {"not": "a list"},
        "recommendations": [None, 1, "x", {"priority": {"level": "high"}}],
        "metadata": "oops"
    })
    assert_valid(result)
    assert result.summary.risk_score == 0
    assert result.summary.confidence == 0
    assert len(result.clauses) == 3
    assert len({clause.id for clause in result.clauses}) == 3
    assert result.risks == []
    assert len(result.recommendations) == 1


def test_validate_rejects_out_of_range(normalizer):
    payload = canonical_payload()
    payload["summary"]["riskScore"] = 150
    with pytest.raises(ValidationError):
        normalizer.validate(payload)


def test_supported_values():
    assert "ip_rights" in ResponseNormalizer.supported_clause_types()
    assert ResponseNormalizer.supported_risk_levels() == ["Low", "Medium", "High", "Critical"]


def test_huge_integers_saturate(normalizer):
    result = normalizer.normalize({
        "summary": {"riskScore": 10 ** 400, "totalClauses": 10 ** 400, "confidence": -10 ** 400},
        "clauses": [{"id": 10 ** 5000, "text": "x", "confidence": 10 ** 400, "startPosition": 10 ** 400}],
        "metadata": {"tokenUsage": -10 ** 400, "processingTime": 10 ** 400}
    })
    assert_valid(result)
    assert result.degraded is False
    assert result.summary.risk_score == 100
    assert result.summary.total_clauses == MAX_INTEGER_FIELD
    assert result.summary.confidence == 0
    assert result.clauses[0].id == "normalized_clause_1"
    assert result.clauses[0].confidence == 1.0
    assert result.clauses[0].start_position == MAX_INTEGER_FIELD
    assert result.metadata.token_usage == 0
    assert result.metadata.processing_time == MAX_INTEGER_FIELD


def test_deeply_nested_payload_degrades_to_serializable_result(normalizer):
    raw = json.loads("[" * 600 + "]" * 600)

    result = normalizer.normalize(raw)

    assert result.degraded is True
    wire = result.to_dict()
    original = wire["metadata"]["originalResponse"]
    assert isinstance(original, str)
    assert original.startswith("[[[")
    assert len(original) <= MAX_ORIGINAL_CHARS
    assert_valid(result)


def test_large_original_payload_is_truncated(normalizer):
    result = normalizer.normalize("x" * (MAX_ORIGINAL_CHARS * 2))
    assert result.to_dict()["metadata"]["originalResponse"] == "x" * MAX_ORIGINAL_CHARS

    result = normalizer.normalize(["y" * MAX_ORIGINAL_CHARS])
    original = result.to_dict()["metadata"]["originalResponse"]
    assert original == json.dumps(["y" * MAX_ORIGINAL_CHARS])[:MAX_ORIGINAL_CHARS]


@pytest.mark.parametrize("raw", [None, True, 1.5, "short", ["a", {"b": 1}], {"nested": [[1]]}])
def test_bounded_original_keeps_small_payloads(raw):
    assert bounded_original(raw) == raw


def test_bounded_original_handles_unprintable_integer():
    result = ResponseNormalizer().normalize(10 ** 5000)
    assert result.degraded is True
    assert result.to_dict()["metadata"]["originalResponse"] == "<unserializable int>"
    assert bounded_original(10 ** 5000) == "<unserializable int>"
    assert bounded_original(7) == 7
