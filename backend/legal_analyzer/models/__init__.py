"""
Legal Document Analyzer models package.
"""

from .schemas import (
    AnalysisRequest,
    AnalysisSummary,
    Clause,
    Risk,
    Recommendation,
    AnalysisMetadata,
    AnalysisResult,
    AnalyzeRequest,
    HealthCheckResponse,
    ErrorResponse,
    RiskLevel,
    Priority
)

from .config import (
    Settings,
    FallbackAPIConfig,
    RetryConfig,
    RateLimitConfig,
    get_settings
)

__all__ = [
    # Schemas
    "AnalysisRequest",
    "AnalysisSummary",
    "Clause",
    "Risk",
    "Recommendation",
    "AnalysisMetadata",
    "AnalysisResult",
    "AnalyzeRequest",
    "HealthCheckResponse",
    "ErrorResponse",
    "RiskLevel",
    "Priority",

    # Configuration
    "Settings",
    "FallbackAPIConfig",
    "RetryConfig",
    "RateLimitConfig",
    "get_settings"
]
