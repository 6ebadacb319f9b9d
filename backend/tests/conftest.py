"""
Shared test fixtures for the API fallback pipeline.
Upstream HTTP is simulated with httpx.MockTransport and backoff sleeps are
recorded instead of awaited.
"""

import os
from typing import AsyncGenerator, Callable, List

import httpx
import pytest

# Configure test environment BEFORE importing app
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from legal_analyzer.models.config import FallbackAPIConfig, RateLimitConfig, RetryConfig
from legal_analyzer.services.fallback_client import FallbackAPIClient
from legal_analyzer.services.rate_limiter import AdmissionGate


TEST_BASE_URL = "https://api.example.com/v1"

CONTRACT_TEXT = (
    "The Client shall pay each invoice within 30 days of receipt. "
    "Either party may terminate this Agreement with 60 days written notice. "
    "The Provider's total liability shall not exceed the fees paid. "
    "All Confidential Information must remain protected."
)


def canonical_payload() -> dict:
    """A well-formed upstream analysis response."""
    return {
        "summary": {
            "title": "Service Agreement",
            "documentType": "contract",
            "totalClauses": 1,
            "riskScore": 40,
            "processingTime": 1200,
            "confidence": 0.9
        },
        "clauses": [{
            "id": "c1",
            "text": "The Client shall pay each invoice within 30 days of receipt.",
            "type": "payment_terms",
            "category": "Payment",
            "confidence": 0.95,
            "startPosition": 0,
            "endPosition": 60
        }],
        "risks": [{
            "id": "r1",
            "title": "Payment Delay Risk",
            "description": "Payment terms may impact cash flow",
            "severity": "Medium",
            "category": "financial",
            "affectedClauses": ["c1"],
            "mitigation": "Negotiate shorter payment terms",
            "confidence": 0.75
        }],
        "recommendations": [{
            "id": "rec1",
            "title": "Address Payment Delay Risk",
            "description": "Negotiate shorter payment terms",
            "priority": "Medium",
            "category": "financial",
            "actionRequired": True
        }],
        "metadata": {
            "processingMethod": "api_fallback",
            "modelUsed": "contract-model-v2",
            "processingTime": 1200,
            "tokenUsage": 850,
            "confidence": 0.9
        }
    }


@pytest.fixture
def api_config() -> FallbackAPIConfig:
    """Non-test environment configuration pointing at a fake host."""
    return FallbackAPIConfig(
        base_url=TEST_BASE_URL,
        api_key="test-key",
        environment="development",
        retry=RetryConfig(max_attempts=3, base_delay_ms=1000, multiplier=2.0, max_delay_ms=30000),
        rate_limit=RateLimitConfig(max_concurrent=5, min_time_ms=0, reservoir=1000)
    )


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    """Backoff sleep that records the requested delay and returns immediately."""
    async def _sleep(seconds: float):
        sleeps.append(seconds)
    return _sleep


@pytest.fixture
async def make_client(api_config, fake_sleep) -> AsyncGenerator[Callable[..., FallbackAPIClient], None]:
    """Factory building clients over a MockTransport handler."""
    created = []

    def _make(handler, config: FallbackAPIConfig = None, **overrides) -> FallbackAPIClient:
        client = FallbackAPIClient(
            config or api_config,
            transport=httpx.MockTransport(handler),
            sleep=overrides.pop("sleep", fake_sleep),
            **overrides
        )
        created.append(client)
        return client

    yield _make

    for client in created:
        await client.shutdown(drop_waiting=True)


@pytest.fixture
async def make_gate() -> AsyncGenerator[Callable[..., AdmissionGate], None]:
    """Factory building admission gates that are shut down after the test."""
    created = []

    def _make(**kwargs) -> AdmissionGate:
        gate = AdmissionGate(RateLimitConfig(**kwargs))
        created.append(gate)
        return gate

    yield _make

    for gate in created:
        if not gate.closed:
            await gate.shutdown(drop_waiting=True)
