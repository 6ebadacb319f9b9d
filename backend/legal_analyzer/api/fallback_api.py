"""
Legal Document Analyzer - API Fallback FastAPI Application
Exposes contract analysis through the external API fallback pipeline.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..models.config import get_settings
from ..models.schemas import AnalyzeRequest, ErrorResponse, HealthCheckResponse
from ..services.error_classifier import FallbackAPIError
from ..services.fallback_client import FallbackAPIClient

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the fallback client on startup and drain it on shutdown."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    validation = settings.validate_config("primary")
    if not validation["valid"]:
        for issue in validation["issues"]:
            logger.warning(f"Configuration issue: {issue}")

    client = FallbackAPIClient(settings.service_config("primary"))
    client.gate.start()
    app.state.fallback_client = client

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")
    await client.shutdown()


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Contract analysis through a rate-limited external API fallback",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=settings.ALLOW_CREDENTIALS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def get_fallback_client(request: Request) -> FallbackAPIClient:
    """Dependency returning the application's fallback client."""
    return request.app.state.fallback_client


@app.exception_handler(FallbackAPIError)
async def fallback_error_handler(request: Request, exc: FallbackAPIError):
    """Map a terminal fallback failure to an ErrorResponse."""
    record = exc.record
    request_id = str(uuid.uuid4())
    logger.error(f"Request {request_id} failed: {record.kind.value} - {record.message}")

    error = ErrorResponse(
        error_code=record.kind.value,
        message=record.message,
        retryable=record.retryable,
        request_id=request_id
    )
    return JSONResponse(
        status_code=record.http_status or 502,
        content=error.model_dump(mode="json")
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """General exception handler."""
    request_id = str(uuid.uuid4())
    logger.error(f"Unhandled exception in request {request_id}: {str(exc)}")
    error = ErrorResponse(
        error_code="INTERNAL_ERROR",
        message="Internal server error",
        request_id=request_id
    )
    return JSONResponse(status_code=500, content=error.model_dump(mode="json"))


# Health check endpoint
@app.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Health check endpoint."""
    return HealthCheckResponse(
        status="healthy",
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc)
    )


@app.post("/v1/analyze")
async def analyze_contract(
    request: AnalyzeRequest,
    client: FallbackAPIClient = Depends(get_fallback_client)
) -> Dict[str, Any]:
    """
    Analyze contract text through the external API.

    Returns the canonical analysis with camelCase field names.
    """
    logger.info(f"Analysis requested for {len(request.text)} characters")
    result = await client.analyze_contract(request.text, request.options)
    return result.to_dict()


@app.get("/v1/fallback/status")
async def fallback_status(client: FallbackAPIClient = Depends(get_fallback_client)):
    """Client configuration summary and rate limiter counters."""
    return client.get_status()


@app.get("/v1/fallback/connection")
async def fallback_connection(client: FallbackAPIClient = Depends(get_fallback_client)):
    """Probe the external API health endpoint."""
    return await client.test_connection()
