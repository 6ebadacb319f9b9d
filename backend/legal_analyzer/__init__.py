"""
Legal Document Analyzer - API Fallback
Rate-limited, retrying external analysis client with response normalization.
"""

__version__ = "1.0.0"
__author__ = "Legal Document Analyzer Team"

from .models import AnalysisResult, FallbackAPIConfig, Settings, get_settings
from .services import FallbackAPIClient, FallbackAPIError, ResponseNormalizer

__all__ = [
    "AnalysisResult",
    "FallbackAPIConfig",
    "Settings",
    "get_settings",
    "FallbackAPIClient",
    "FallbackAPIError",
    "ResponseNormalizer"
]
