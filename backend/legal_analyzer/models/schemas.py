"""
Core data models for the Legal Document Analyzer API fallback.
Canonical analysis output shared by every upstream shape, plus the request
and API envelope models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


PROCESSING_METHOD = "api_fallback"

DEFAULT_ANALYSIS_OPTIONS: Dict[str, bool] = {
    "extractClauses": True,
    "assessRisks": True,
    "generateRecommendations": True,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RiskLevel(str, Enum):
    """Risk assessment levels for clause analysis."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class Priority(str, Enum):
    """Recommendation priority levels."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class CanonicalModel(BaseModel):
    """Base for the wire schema: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True
    )


# Request Models

class AnalysisRequest(BaseModel):
    """One analysis call. Immutable once constructed."""
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1, description="Contract text to analyze")
    options: Dict[str, bool] = Field(default_factory=lambda: dict(DEFAULT_ANALYSIS_OPTIONS))
    submitted_at: datetime = Field(default_factory=_utcnow)

    @field_validator("text")
    @classmethod
    def text_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("text must not be blank")
        return v

    @classmethod
    def build(cls, text: str, options: Optional[Dict[str, bool]] = None) -> "AnalysisRequest":
        """Create a request with default options merged under the caller's."""
        merged = dict(DEFAULT_ANALYSIS_OPTIONS)
        merged.update(options or {})
        return cls(text=text, options=merged)

    def to_payload(self) -> Dict[str, Any]:
        """JSON body for POST /analyze."""
        return {
            "text": self.text,
            "options": dict(self.options),
            "timestamp": self.submitted_at.isoformat()
        }


# Canonical Analysis Models

class AnalysisSummary(CanonicalModel):
    """Document-level summary of the analysis."""
    title: str = "Analyzed Contract"
    document_type: str = "contract"
    total_clauses: int = Field(default=0, ge=0)
    risk_score: float = Field(default=0.0, ge=0.0, le=100.0)
    processing_time: int = Field(default=0, ge=0, description="Milliseconds")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class Clause(CanonicalModel):
    """An extracted contract provision."""
    id: str
    text: str = ""
    type: str = "unknown"
    category: str = "General"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    start_position: int = Field(default=0, ge=0)
    end_position: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def end_after_start(self) -> "Clause":
        if self.end_position <= self.start_position:
            raise ValueError("endPosition must be greater than startPosition")
        return self


class Risk(CanonicalModel):
    """An identified exposure. affected_clauses are weak clause-id references."""
    id: str
    title: str = ""
    description: str = ""
    severity: RiskLevel = RiskLevel.MEDIUM
    category: str = "general"
    affected_clauses: List[str] = Field(default_factory=list)
    mitigation: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class Recommendation(CanonicalModel):
    """A suggested remediation."""
    id: str
    title: str = ""
    description: str = ""
    priority: Priority = Priority.MEDIUM
    category: str = "general"
    action_required: bool = False


class AnalysisMetadata(CanonicalModel):
    """Provenance of the analysis."""
    processing_method: Literal["api_fallback"] = PROCESSING_METHOD
    model_used: str = "external_api"
    processing_time: int = Field(default=0, ge=0)
    token_usage: int = Field(default=0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    normalization_error: Optional[str] = None
    original_response: Optional[Any] = None


class AnalysisResult(CanonicalModel):
    """The only form that crosses the fallback pipeline's output boundary."""
    summary: AnalysisSummary = Field(default_factory=AnalysisSummary)
    clauses: List[Clause] = Field(default_factory=list)
    risks: List[Risk] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)

    @property
    def degraded(self) -> bool:
        """True when normalization fell back to the minimal response."""
        return self.metadata.normalization_error is not None

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation (camelCase keys, unset diagnostics omitted)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# API Request/Response Models

class AnalyzeRequest(BaseModel):
    """Request body for POST /v1/analyze."""
    text: str = Field(..., min_length=1, description="Contract text to analyze")
    options: Dict[str, bool] = Field(default_factory=dict, description="Analysis toggles")


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="API version")
    environment: str = Field(..., description="Deployment environment")
    timestamp: datetime = Field(default_factory=_utcnow, description="Health check timestamp")


class ErrorResponse(BaseModel):
    """Standardized error response."""
    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    retryable: bool = Field(default=False, description="Whether retrying later may succeed")
    request_id: str = Field(..., description="Unique request identifier for tracking")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
