"""
External analysis API client used when the primary model is unavailable.

Each logical call passes the admission gate, performs one HTTP exchange,
classifies failures and retries transient ones per the backoff policy.
Admission is held for a single attempt only, never across a backoff sleep.
Successful bodies are handed to the response normalizer.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from ..models.config import FallbackAPIConfig
from ..models.schemas import AnalysisRequest, AnalysisResult
from .backoff import BackoffPolicy
from .error_classifier import (
    ErrorKind, ErrorRecord, FallbackAPIError, classify_error, classify_http_status
)
from .mock_analysis import generate_mock_health, generate_mock_response
from .rate_limiter import AdmissionGate
from .response_normalizer import ResponseNormalizer, response_normalizer

logger = logging.getLogger(__name__)

ANALYZE_ENDPOINT = "/analyze"
HEALTH_ENDPOINT = "/health"


def is_test_environment(config: FallbackAPIConfig) -> bool:
    """
    Whether network calls are replaced by synthetic responses.

    Driven only by explicit flags and the configured host allow-list;
    force_real_network always wins.
    """
    if config.force_real_network:
        return False
    if config.environment.lower() == "test" or config.testing:
        return True
    try:
        host = httpx.URL(config.base_url).host
    except httpx.InvalidURL:
        return False
    return host in config.test_hosts


class FallbackAPIClient:
    """Rate-limited, retrying client for the external analysis API."""

    def __init__(
        self,
        config: FallbackAPIConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        gate: Optional[AdmissionGate] = None,
        policy: Optional[BackoffPolicy] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.config = config
        self.gate = gate or AdmissionGate(config.rate_limit)
        self.policy = policy or BackoffPolicy.from_config(config.retry)
        self.normalizer = normalizer or response_normalizer
        self._sleep = sleep
        self._bypass_network = is_test_environment(config)
        self._closed = False

        headers = {
            "Content-Type": "application/json",
            "User-Agent": config.user_agent,
        }
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        self._http = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.timeout_seconds),
            headers=headers,
            transport=transport
        )

        if self._bypass_network:
            logger.info(f"Test environment detected for {config.service} service - using synthetic responses")
        logger.info(f"Fallback API client initialized: {config.service} -> {config.base_url}")

    @property
    def test_environment(self) -> bool:
        return self._bypass_network

    async def __aenter__(self) -> "FallbackAPIClient":
        self.gate.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.shutdown()

    async def analyze_contract(
        self,
        text: str,
        options: Optional[Dict[str, bool]] = None,
        deadline: Optional[float] = None
    ) -> AnalysisResult:
        """
        Analyze contract text through the external API.

        Args:
            text: Contract text
            options: Analysis toggles merged over the defaults
            deadline: Overall time budget in seconds, retries included

        Returns:
            Canonical AnalysisResult
        """
        try:
            request = AnalysisRequest.build(text, options)
        except ValidationError as e:
            raise FallbackAPIError(ErrorRecord(
                ErrorKind.BAD_REQUEST,
                400,
                f"Bad request: {e.errors()[0]['msg']}",
                retryable=False
            )) from e

        return await self.execute(request, deadline=deadline)

    async def execute(self, request: AnalysisRequest, deadline: Optional[float] = None) -> AnalysisResult:
        """Run one analysis call to completion, failing with the terminal FallbackAPIError."""
        started = time.perf_counter()
        raw = await self._with_deadline(
            self._request_with_retries("POST", ANALYZE_ENDPOINT, request.to_payload()),
            deadline
        )
        result = self.normalizer.normalize(raw)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Fallback analysis completed in {elapsed_ms}ms: "
            f"{len(result.clauses)} clauses, {len(result.risks)} risks, degraded={result.degraded}"
        )
        return result

    async def test_connection(self) -> Dict[str, Any]:
        """Probe GET /health through the same admission and retry path."""
        started = time.perf_counter()
        try:
            body = await self._request_with_retries("GET", HEALTH_ENDPOINT, None)
            return {
                "success": True,
                "responseTime": int((time.perf_counter() - started) * 1000),
                "status": "connected",
                "response": body
            }
        except FallbackAPIError as e:
            logger.error(f"API connection test failed: {str(e)}")
            return {
                "success": False,
                "status": "failed",
                "error": e.record.message,
                "code": e.record.kind.value
            }

    def get_status(self) -> Dict[str, Any]:
        return {
            "service": self.config.service,
            "baseUrl": self.config.base_url,
            "hasApiKey": bool(self.config.api_key),
            "timeout": self.config.timeout_ms,
            "retryAttempts": self.policy.max_attempts,
            "testEnvironment": self._bypass_network,
            "closed": self._closed,
            "rateLimiter": self.gate.stats()
        }

    async def shutdown(self, drop_waiting: bool = False):
        """Stop the admission gate and close the connection pool."""
        if self._closed:
            return
        self._closed = True
        logger.info(f"Shutting down fallback API client ({self.config.service})")
        await self.gate.shutdown(drop_waiting=drop_waiting)
        await self._http.aclose()

    async def _with_deadline(self, call: Awaitable[Any], deadline: Optional[float]) -> Any:
        if deadline is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=deadline)
        except asyncio.TimeoutError:
            logger.error(f"API call exceeded deadline of {deadline}s")
            raise FallbackAPIError(ErrorRecord(
                ErrorKind.TIMEOUT,
                408,
                f"API request deadline of {deadline}s exceeded",
                retryable=True
            )) from None

    # Retry orchestration

    def _should_retry(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        error = outcome.exception()
        if not isinstance(error, FallbackAPIError):
            return False
        return self.policy.should_retry(error.record, retry_state.attempt_number)

    def _wait_seconds(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception()
        return self.policy.delay_for(error.record, retry_state.attempt_number) / 1000.0

    def _log_retry(self, retry_state: RetryCallState):
        error = retry_state.outcome.exception()
        delay_ms = int(retry_state.next_action.sleep * 1000)
        logger.warning(
            f"API call attempt {retry_state.attempt_number} failed "
            f"({error.record.kind.value}): {error.record.message} - retrying in {delay_ms}ms"
        )

    async def _request_with_retries(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]]) -> Any:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=self._wait_seconds,
            retry=self._should_retry,
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True
        )

        try:
            async for attempt in retrying:
                with attempt:
                    body = await self._attempt(method, endpoint, payload)
        except FallbackAPIError as e:
            logger.error(
                f"API call {method} {endpoint} failed after "
                f"{retrying.statistics.get('attempt_number', 1)} attempt(s): {e.record.kind.value} - {str(e)}"
            )
            raise

        return body

    async def _attempt(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]]) -> Any:
        async with self.gate.slot():
            if self._bypass_network:
                if endpoint == HEALTH_ENDPOINT:
                    return generate_mock_health()
                return generate_mock_response(payload)
            return await self._send(method, endpoint, payload)

    # HTTP exchange

    def _log(self, level: int, message: str):
        if self.config.log_requests:
            logger.log(level, message)

    async def _send(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]]) -> Any:
        """Perform exactly one HTTP exchange, raising FallbackAPIError on failure."""
        started = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - started) * 1000)

        self._log(logging.INFO, f"API Request: {method} {endpoint}")

        try:
            async with self._http.stream(method, endpoint, json=payload) as response:
                try:
                    content = await self._read_limited(response)
                except FallbackAPIError:
                    self._log(logging.ERROR, f"API Error: {response.status_code} ({elapsed()}ms)")
                    raise
        except httpx.RequestError as e:
            self._log(logging.ERROR, f"API Error: Network ({elapsed()}ms)")
            raise FallbackAPIError(classify_error(e)) from e

        body = self._decode(content, response.encoding)

        if response.status_code >= 400:
            self._log(logging.ERROR, f"API Error: {response.status_code} ({elapsed()}ms)")
            raise FallbackAPIError(classify_http_status(response.status_code, response.headers, body))

        self._log(logging.INFO, f"API Response: {response.status_code} ({elapsed()}ms)")
        return body

    async def _read_limited(self, response: httpx.Response) -> bytes:
        limit = self.config.max_response_bytes

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > limit:
            raise self._too_large(limit)

        chunks = []
        received = 0
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            if received > limit:
                raise self._too_large(limit)
            chunks.append(chunk)
        return b"".join(chunks)

    @staticmethod
    def _too_large(limit: int) -> FallbackAPIError:
        return FallbackAPIError(ErrorRecord(
            ErrorKind.API_ERROR,
            0,
            f"API response exceeds maximum size of {limit} bytes",
            retryable=False
        ))

    @staticmethod
    def _decode(content: bytes, encoding: Optional[str]) -> Any:
        """JSON when possible, otherwise the raw text for the normalizer to degrade."""
        try:
            return json.loads(content)
        except (ValueError, UnicodeDecodeError, RecursionError):
            return content.decode(encoding or "utf-8", errors="replace")
