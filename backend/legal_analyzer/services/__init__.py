"""
Services package for the API fallback pipeline.
"""

from .error_classifier import (
    ErrorKind,
    ErrorRecord,
    FallbackAPIError,
    classify_error,
    classify_http_status
)
from .backoff import BackoffPolicy
from .rate_limiter import AdmissionGate
from .response_normalizer import ResponseNormalizer, response_normalizer
from .fallback_client import FallbackAPIClient, is_test_environment

__all__ = [
    "ErrorKind",
    "ErrorRecord",
    "FallbackAPIError",
    "classify_error",
    "classify_http_status",
    "BackoffPolicy",
    "AdmissionGate",
    "ResponseNormalizer",
    "response_normalizer",
    "FallbackAPIClient",
    "is_test_environment"
]
