"""
Legal Document Analyzer - API Fallback
Entry point: configures logging and serves the FastAPI application.
"""

import logging

import uvicorn

from legal_analyzer.models.config import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from legal_analyzer.api.fallback_api import app  # noqa: E402


if __name__ == "__main__":
    logger.info(f"Serving on {settings.API_HOST}:{settings.API_PORT}")
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=not settings.is_production(),
        log_level=settings.LOG_LEVEL.lower()
    )
