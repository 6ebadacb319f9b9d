"""
Response normalization for the API fallback pipeline.

Reconciles arbitrarily shaped upstream analysis payloads into the canonical
AnalysisResult. Every field is resolved through an ordered alias table,
coerced, clamped and defaulted. normalize() never raises; input it cannot
recover from becomes a degraded result that still validates.
"""

import json
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from ..models.schemas import (
    AnalysisMetadata, AnalysisResult, AnalysisSummary, Clause, Priority,
    Recommendation, Risk, RiskLevel
)

logger = logging.getLogger(__name__)


# Field alias tables: canonical field -> accepted upstream names, primary first

SUMMARY_ALIASES = {
    "title": ("title", "document_title"),
    "document_type": ("documentType", "document_type", "type"),
    "total_clauses": ("totalClauses", "total_clauses", "clause_count"),
    "risk_score": ("riskScore", "risk_score"),
    "processing_time": ("processingTime", "processing_time", "processing_ms"),
    "confidence": ("confidence", "confidence_score"),
}

CLAUSE_ALIASES = {
    "id": ("id", "clause_id"),
    "text": ("text", "content", "clause_text"),
    "type": ("type", "clause_type"),
    "category": ("category",),
    "confidence": ("confidence", "confidence_score"),
    "start_position": ("startPosition", "start_position", "start_pos"),
    "end_position": ("endPosition", "end_position", "end_pos"),
}

RISK_ALIASES = {
    "id": ("id", "risk_id"),
    "title": ("title", "name", "risk_title"),
    "description": ("description", "details", "risk_description"),
    "severity": ("severity", "level", "risk_level"),
    "category": ("category", "risk_category"),
    "affected_clauses": ("affectedClauses", "affected_clauses", "clause_ids"),
    "mitigation": ("mitigation", "recommendation", "mitigation_strategy"),
    "confidence": ("confidence", "confidence_score"),
}

RECOMMENDATION_ALIASES = {
    "id": ("id", "recommendation_id"),
    "title": ("title", "name", "recommendation_title"),
    "description": ("description", "details", "recommendation_text"),
    "priority": ("priority", "importance"),
    "category": ("category", "rec_category"),
    "action_required": ("actionRequired", "action_required", "requires_action"),
}

METADATA_ALIASES = {
    "model_used": ("modelUsed", "model_used", "model", "api_service"),
    "processing_time": ("processingTime", "processing_time", "processing_ms"),
    "token_usage": ("tokenUsage", "token_usage", "tokens"),
    "confidence": ("confidence", "overall_confidence"),
    "normalization_error": ("normalizationError", "normalization_error"),
    "original_response": ("originalResponse", "original_response"),
}

# Upstream clause type -> canonical clause type.
# Canonical types map to themselves so normalized output maps back unchanged.
CLAUSE_TYPE_MAPPING = {
    "payment": "payment_terms",
    "termination": "termination_clause",
    "liability": "liability_limitation",
    "confidential": "confidentiality_agreement",
    "ip": "ip_rights",
    "force_majeure": "force_majeure",
    "governing": "governing_law",
    "dispute": "dispute_resolution",
    "warranty": "warranties_representations",
    "indemnity": "indemnification",
    "assignment": "assignment_rights",
    "amendment": "amendment_modification",
    "severability": "severability_clause",
    "entire": "entire_agreement",
    "notice": "notice_provisions",
    "intellectual_property": "ip_rights",
    "copyright": "ip_rights",
    "payment_terms": "payment_terms",
    "termination_clause": "termination_clause",
    "liability_limitation": "liability_limitation",
    "confidentiality_agreement": "confidentiality_agreement",
    "ip_rights": "ip_rights",
    "governing_law": "governing_law",
    "dispute_resolution": "dispute_resolution",
    "warranties_representations": "warranties_representations",
    "indemnification": "indemnification",
    "assignment_rights": "assignment_rights",
    "amendment_modification": "amendment_modification",
    "severability_clause": "severability_clause",
    "entire_agreement": "entire_agreement",
    "notice_provisions": "notice_provisions",
    "unknown": "unknown",
}

UNKNOWN_CLAUSE_TYPE = "unknown"

# Canonical clause type -> human-readable category
TYPE_CATEGORY = {
    "payment_terms": "Payment",
    "termination_clause": "Termination",
    "liability_limitation": "Liability",
    "confidentiality_agreement": "Confidentiality",
    "ip_rights": "Intellectual Property",
    "force_majeure": "Force Majeure",
    "governing_law": "Legal",
    "dispute_resolution": "Legal",
    "warranties_representations": "Warranties",
    "indemnification": "Liability",
    "assignment_rights": "Rights",
    "amendment_modification": "Modifications",
    "severability_clause": "Legal",
    "entire_agreement": "Legal",
    "notice_provisions": "Communications",
}

DEFAULT_CLAUSE_CATEGORY = "General"

SEVERITY_ALIASES = {
    "low": RiskLevel.LOW,
    "minor": RiskLevel.LOW,
    "info": RiskLevel.LOW,
    "informational": RiskLevel.LOW,
    "medium": RiskLevel.MEDIUM,
    "moderate": RiskLevel.MEDIUM,
    "high": RiskLevel.HIGH,
    "major": RiskLevel.HIGH,
    "critical": RiskLevel.CRITICAL,
    "severe": RiskLevel.CRITICAL,
}

PRIORITY_ALIASES = {
    "low": Priority.LOW,
    "minor": Priority.LOW,
    "medium": Priority.MEDIUM,
    "moderate": Priority.MEDIUM,
    "normal": Priority.MEDIUM,
    "high": Priority.HIGH,
    "major": Priority.HIGH,
    "critical": Priority.HIGH,
    "urgent": Priority.HIGH,
}

TRUE_STRINGS = frozenset({"true", "yes", "1", "y"})

DEFAULT_ITEM_CONFIDENCE = 0.5
DEFAULT_OVERALL_CONFIDENCE = 0.0

# Integer fields saturate here (largest integer exact in a JSON double)
MAX_INTEGER_FIELD = 2 ** 53 - 1

# Shorter upstream types only match by exact key or by containing a table key
MIN_PARTIAL_TYPE_LENGTH = 3

# Bounds for the offending payload kept on degraded results
MAX_ORIGINAL_DEPTH = 32
MAX_ORIGINAL_CHARS = 10000


# Resolution and coercion helpers

def is_present(value: Any) -> bool:
    return value is not None and value != ""


def resolve_first_present(mapping: Mapping[str, Any], names: Sequence[str], default: Any = None) -> Any:
    """Value of the first name present in mapping, else default."""
    for name in names:
        if name in mapping and is_present(mapping[name]):
            return mapping[name]
    return default


def to_number(value: Any) -> Optional[float]:
    """
    Float from a number or numeric string. Booleans are not numbers.

    NaN and infinite floats or strings are rejected; integers beyond float
    range come back as signed infinity so callers clamp them.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            return float(value)
        except OverflowError:
            # Integers too large for a float saturate instead of failing
            return math.inf if value > 0 else -math.inf
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def to_bounded_float(value: Any, low: float, high: float, default: float) -> float:
    number = to_number(value)
    if number is None:
        return default
    return clamp(number, low, high)


def to_non_negative_int(value: Any) -> int:
    number = to_number(value)
    if number is None or number < 0:
        return 0
    return int(min(number, MAX_INTEGER_FIELD))


def to_text(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return str(value)
        except ValueError:
            # int exceeds the interpreter's digit limit for str()
            return default
    return default


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return False


def to_id_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [to_text(item) for item in value if to_text(item, default=None) is not None]


def _nesting_exceeds(value: Any, limit: int) -> bool:
    stack = [(value, 1)]
    while stack:
        current, depth = stack.pop()
        if isinstance(current, Mapping):
            children = current.values()
        elif isinstance(current, list):
            children = current
        else:
            continue
        if depth > limit:
            return True
        stack.extend((child, depth + 1) for child in children)
    return False


def bounded_original(raw: Any) -> Any:
    """
    Serialization-safe copy of an offending payload for degraded metadata.

    Shallow, small payloads are kept as they are. Anything deeper than
    MAX_ORIGINAL_DEPTH or longer than MAX_ORIGINAL_CHARS once encoded is
    kept as truncated JSON text.
    """
    if raw is None or isinstance(raw, (bool, float)):
        return raw
    if isinstance(raw, str):
        return raw[:MAX_ORIGINAL_CHARS]

    if not _nesting_exceeds(raw, MAX_ORIGINAL_DEPTH):
        try:
            encoded = json.dumps(raw)
        except (TypeError, ValueError, RecursionError):
            encoded = None
        if encoded is not None and len(encoded) <= MAX_ORIGINAL_CHARS:
            return raw

    try:
        encoded = json.dumps(raw)
    except (TypeError, ValueError, RecursionError):
        return f"<unserializable {type(raw).__name__}>"
    return encoded[:MAX_ORIGINAL_CHARS]


def map_clause_type(value: Any) -> str:
    """Exact match, then substring containment either way, then 'unknown'."""
    if not isinstance(value, str):
        return UNKNOWN_CLAUSE_TYPE

    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    if not key:
        return UNKNOWN_CLAUSE_TYPE

    if key in CLAUSE_TYPE_MAPPING:
        return CLAUSE_TYPE_MAPPING[key]

    for external, canonical in CLAUSE_TYPE_MAPPING.items():
        if external in key or (len(key) >= MIN_PARTIAL_TYPE_LENGTH and key in external):
            return canonical

    return UNKNOWN_CLAUSE_TYPE


def standardize_severity(value: Any) -> RiskLevel:
    if isinstance(value, str):
        return SEVERITY_ALIASES.get(value.strip().lower(), RiskLevel.MEDIUM)
    return RiskLevel.MEDIUM


def standardize_priority(value: Any) -> Priority:
    if isinstance(value, str):
        return PRIORITY_ALIASES.get(value.strip().lower(), Priority.MEDIUM)
    return Priority.MEDIUM


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


class _IdAllocator:
    """Keeps ids unique within one result section."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        self.seen = set()

    def allocate(self, raw_id: Any, index: int) -> str:
        candidate = to_text(raw_id) or f"{self.prefix}_{index + 1}"
        if candidate in self.seen:
            base = candidate
            candidate = f"{base}_{index}"
            while candidate in self.seen:
                candidate = f"{candidate}_{index}"
        self.seen.add(candidate)
        return candidate


class ResponseNormalizer:
    """Maps upstream analysis payloads onto AnalysisResult."""

    def normalize(self, raw: Any) -> AnalysisResult:
        """
        Normalize an upstream payload.

        Args:
            raw: Decoded upstream JSON (any shape), or raw text for non-JSON bodies

        Returns:
            Canonical AnalysisResult; degraded when raw is not recoverable
        """
        if not isinstance(raw, Mapping):
            reason = f"Response is not a JSON object (got {type(raw).__name__})"
            logger.warning(f"Normalization fallback: {reason}")
            return self.create_minimal_response(raw, reason)

        try:
            return AnalysisResult(
                summary=self.normalize_summary(raw.get("summary")),
                clauses=self.normalize_clauses(raw.get("clauses")),
                risks=self.normalize_risks(raw.get("risks")),
                recommendations=self.normalize_recommendations(raw.get("recommendations")),
                metadata=self.normalize_metadata(raw.get("metadata"))
            )
        except (ValidationError, ValueError, TypeError, AttributeError, ArithmeticError, RecursionError) as e:
            logger.warning(f"Normalization fallback: {str(e)}")
            return self.create_minimal_response(raw, str(e))

    def normalize_summary(self, raw: Any) -> AnalysisSummary:
        data = _as_mapping(raw)

        def field(name, default=None):
            return resolve_first_present(data, SUMMARY_ALIASES[name], default)

        return AnalysisSummary(
            title=to_text(field("title"), "Analyzed Contract") or "Analyzed Contract",
            document_type=to_text(field("document_type"), "contract") or "contract",
            total_clauses=to_non_negative_int(field("total_clauses")),
            risk_score=to_bounded_float(field("risk_score"), 0.0, 100.0, 0.0),
            processing_time=to_non_negative_int(field("processing_time")),
            confidence=to_bounded_float(field("confidence"), 0.0, 1.0, DEFAULT_OVERALL_CONFIDENCE)
        )

    def normalize_clauses(self, raw: Any) -> List[Clause]:
        ids = _IdAllocator("normalized_clause")
        clauses = []

        for index, item in enumerate(_as_list(raw)):
            if not isinstance(item, Mapping):
                logger.debug(f"Skipping clause {index}: not an object")
                continue

            def field(name, default=None):
                return resolve_first_present(item, CLAUSE_ALIASES[name], default)

            text = to_text(field("text"))
            clause_type = map_clause_type(field("type"))
            category = to_text(field("category")) or TYPE_CATEGORY.get(clause_type, DEFAULT_CLAUSE_CATEGORY)

            start = to_non_negative_int(field("start_position"))
            end = to_non_negative_int(field("end_position"))
            if end <= start:
                end = start + max(len(text), 1)

            clauses.append(Clause(
                id=ids.allocate(field("id"), index),
                text=text,
                type=clause_type,
                category=category,
                confidence=to_bounded_float(field("confidence"), 0.0, 1.0, DEFAULT_ITEM_CONFIDENCE),
                start_position=start,
                end_position=end
            ))

        return clauses

    def normalize_risks(self, raw: Any) -> List[Risk]:
        ids = _IdAllocator("normalized_risk")
        risks = []

        for index, item in enumerate(_as_list(raw)):
            if not isinstance(item, Mapping):
                logger.debug(f"Skipping risk {index}: not an object")
                continue

            def field(name, default=None):
                return resolve_first_present(item, RISK_ALIASES[name], default)

            risks.append(Risk(
                id=ids.allocate(field("id"), index),
                title=to_text(field("title")),
                description=to_text(field("description")),
                severity=standardize_severity(field("severity")),
                category=to_text(field("category")) or "general",
                affected_clauses=to_id_list(field("affected_clauses")),
                mitigation=to_text(field("mitigation")),
                confidence=to_bounded_float(field("confidence"), 0.0, 1.0, DEFAULT_ITEM_CONFIDENCE)
            ))

        return risks

    def normalize_recommendations(self, raw: Any) -> List[Recommendation]:
        ids = _IdAllocator("normalized_rec")
        recommendations = []

        for index, item in enumerate(_as_list(raw)):
            if not isinstance(item, Mapping):
                logger.debug(f"Skipping recommendation {index}: not an object")
                continue

            def field(name, default=None):
                return resolve_first_present(item, RECOMMENDATION_ALIASES[name], default)

            recommendations.append(Recommendation(
                id=ids.allocate(field("id"), index),
                title=to_text(field("title")),
                description=to_text(field("description")),
                priority=standardize_priority(field("priority")),
                category=to_text(field("category")) or "general",
                action_required=to_bool(field("action_required"))
            ))

        return recommendations

    def normalize_metadata(self, raw: Any) -> AnalysisMetadata:
        data = _as_mapping(raw)

        def field(name, default=None):
            return resolve_first_present(data, METADATA_ALIASES[name], default)

        normalization_error = field("normalization_error")

        return AnalysisMetadata(
            model_used=to_text(field("model_used"), "external_api") or "external_api",
            processing_time=to_non_negative_int(field("processing_time")),
            token_usage=to_non_negative_int(field("token_usage")),
            confidence=to_bounded_float(field("confidence"), 0.0, 1.0, DEFAULT_OVERALL_CONFIDENCE),
            normalization_error=to_text(normalization_error) or None,
            original_response=bounded_original(field("original_response")) if normalization_error else None
        )

    def create_minimal_response(self, raw: Any, error: str) -> AnalysisResult:
        """Degraded but valid result describing why normalization failed."""
        return AnalysisResult(
            summary=AnalysisSummary(title="API Analysis (Partial)"),
            risks=[Risk(
                id="normalization_error",
                title="Response Normalization Error",
                description=f"API response could not be fully normalized: {error}",
                severity=RiskLevel.MEDIUM,
                category="system",
                mitigation="Review the upstream response format",
                confidence=1.0
            )],
            recommendations=[Recommendation(
                id="check_api_format",
                title="Check API Response Format",
                description="Verify that the external API response matches the expected analysis schema",
                priority=Priority.HIGH,
                category="system_maintenance",
                action_required=True
            )],
            metadata=AnalysisMetadata(
                normalization_error=error or "Unknown normalization error",
                original_response=bounded_original(raw)
            )
        )

    def validate(self, data: Any) -> AnalysisResult:
        """Strictly validate an already-canonical payload. Raises ValidationError."""
        return AnalysisResult.model_validate(data)

    @staticmethod
    def supported_clause_types() -> List[str]:
        return sorted(set(CLAUSE_TYPE_MAPPING.values()))

    @staticmethod
    def supported_risk_levels() -> List[str]:
        return [level.value for level in RiskLevel]


# Global service instance
response_normalizer = ResponseNormalizer()
