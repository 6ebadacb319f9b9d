"""
Configuration management for the Legal Document Analyzer API fallback.
Environment-backed settings plus the immutable per-service values handed to
the rate limiter and fallback client at construction time.
"""

from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetryConfig(BaseModel):
    """Backoff parameters for one upstream service."""
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, description="Total attempts including the first")
    base_delay_ms: int = Field(default=1000, ge=0, description="Delay before the second attempt")
    multiplier: float = Field(default=2.0, ge=1.0, description="Growth factor per attempt")
    max_delay_ms: int = Field(default=30000, ge=0, description="Upper bound for any single delay")
    jitter: float = Field(default=0.0, ge=0.0, le=1.0, description="Extra random fraction of the delay")
    respect_retry_after: bool = Field(default=True, description="Stretch 429 delays to Retry-After")


class RateLimitConfig(BaseModel):
    """Admission gate parameters for one upstream service."""
    model_config = ConfigDict(frozen=True)

    max_concurrent: int = Field(default=5, ge=1)
    min_time_ms: int = Field(default=100, ge=0)
    reservoir: int = Field(default=100, ge=1)
    reservoir_refresh_ms: int = Field(default=60000, ge=1)


class FallbackAPIConfig(BaseModel):
    """Immutable configuration consumed by FallbackAPIClient."""
    model_config = ConfigDict(frozen=True)

    service: str = "primary"
    base_url: str = "https://api.contractanalysis.com/v1"
    api_key: Optional[str] = None
    timeout_ms: int = Field(default=30000, ge=1)
    user_agent: str = "ClearClause-AI/1.0.0"
    max_response_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    environment: str = "development"
    testing: bool = False
    force_real_network: bool = False
    test_hosts: Tuple[str, ...] = ("test-api.example.com", "localhost", "127.0.0.1")
    log_requests: bool = True

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def public_dict(self) -> Dict[str, Any]:
        """Configuration without credentials."""
        data = self.model_dump()
        data.pop("api_key", None)
        data["has_api_key"] = bool(self.api_key)
        return data


class Settings(BaseSettings):
    """Application settings loaded from the environment or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "Legal Document Analyzer - API Fallback"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    TESTING: bool = False

    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8080

    # CORS Configuration - for frontend integration
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173"
    ]
    ALLOW_CREDENTIALS: bool = True

    # Upstream analysis services
    FALLBACK_API_URL: str = "https://api.contractanalysis.com/v1"
    FALLBACK_API_KEY: Optional[str] = None
    FALLBACK_API_BACKUP_URL: str = "https://backup-api.contractanalysis.com/v1"
    FALLBACK_API_BACKUP_KEY: Optional[str] = None
    API_USER_AGENT: str = "ClearClause-AI/1.0.0"

    # Request handling (milliseconds)
    API_TIMEOUT: int = 30000
    API_RETRY_ATTEMPTS: int = 3
    API_RETRY_DELAY: int = 1000
    API_RETRY_MULTIPLIER: float = 2.0
    API_RETRY_MAX_DELAY: int = 30000
    API_MAX_RESPONSE_BYTES: int = 10485760

    # Rate limiting
    API_RATE_LIMIT_RPM: int = 100
    API_MIN_TIME_MS: int = 100
    API_MAX_CONCURRENT: int = 5
    API_RESERVOIR_REFRESH_MS: int = 60000

    # Test environment handling
    FORCE_REAL_API: bool = False
    TEST_API_HOSTS: List[str] = ["test-api.example.com", "localhost", "127.0.0.1"]

    # Monitoring
    API_LOG_REQUESTS: bool = True

    def service_config(self, service: str = "primary") -> FallbackAPIConfig:
        """Build the immutable configuration for the primary or backup service."""
        common = {
            "user_agent": self.API_USER_AGENT,
            "max_response_bytes": self.API_MAX_RESPONSE_BYTES,
            "environment": self.ENVIRONMENT,
            "testing": self.TESTING,
            "force_real_network": self.FORCE_REAL_API,
            "test_hosts": tuple(self.TEST_API_HOSTS),
            "log_requests": self.API_LOG_REQUESTS,
        }

        if service == "primary":
            return FallbackAPIConfig(
                service="primary",
                base_url=self.FALLBACK_API_URL,
                api_key=self.FALLBACK_API_KEY,
                timeout_ms=self.API_TIMEOUT,
                retry=RetryConfig(
                    max_attempts=max(1, self.API_RETRY_ATTEMPTS),
                    base_delay_ms=self.API_RETRY_DELAY,
                    multiplier=self.API_RETRY_MULTIPLIER,
                    max_delay_ms=self.API_RETRY_MAX_DELAY
                ),
                rate_limit=RateLimitConfig(
                    max_concurrent=self.API_MAX_CONCURRENT,
                    min_time_ms=self.API_MIN_TIME_MS,
                    reservoir=self.API_RATE_LIMIT_RPM,
                    reservoir_refresh_ms=self.API_RESERVOIR_REFRESH_MS
                ),
                **common
            )

        if service == "fallback":
            # Backup service is slower and has a smaller quota
            return FallbackAPIConfig(
                service="fallback",
                base_url=self.FALLBACK_API_BACKUP_URL,
                api_key=self.FALLBACK_API_BACKUP_KEY,
                timeout_ms=self.API_TIMEOUT + 15000,
                retry=RetryConfig(
                    max_attempts=max(1, self.API_RETRY_ATTEMPTS - 1),
                    base_delay_ms=2000,
                    multiplier=self.API_RETRY_MULTIPLIER,
                    max_delay_ms=self.API_RETRY_MAX_DELAY
                ),
                rate_limit=RateLimitConfig(
                    max_concurrent=3,
                    min_time_ms=200,
                    reservoir=50,
                    reservoir_refresh_ms=self.API_RESERVOIR_REFRESH_MS
                ),
                **common
            )

        raise ValueError(f"Unknown service configuration: {service}")

    def validate_config(self, service: str = "primary") -> Dict[str, Any]:
        """Check a service configuration for obvious problems."""
        if service == "primary":
            base_url, api_key = self.FALLBACK_API_URL, self.FALLBACK_API_KEY
            timeout, attempts = self.API_TIMEOUT, self.API_RETRY_ATTEMPTS
        elif service == "fallback":
            base_url, api_key = self.FALLBACK_API_BACKUP_URL, self.FALLBACK_API_BACKUP_KEY
            timeout, attempts = self.API_TIMEOUT + 15000, max(1, self.API_RETRY_ATTEMPTS - 1)
        else:
            raise ValueError(f"Unknown service: {service}")

        issues = []

        if not base_url:
            issues.append(f"Missing baseUrl for {service} service")
        else:
            try:
                url = httpx.URL(base_url)
                if url.scheme not in ("http", "https") or not url.host:
                    raise ValueError(base_url)
            except (httpx.InvalidURL, ValueError):
                issues.append(f"Invalid baseUrl format for {service} service: {base_url}")

        if not api_key:
            issues.append(f"Missing API key for {service} service")

        if timeout < 1000 or timeout > 300000:
            issues.append(f"Invalid timeout for {service} service: should be between 1000-300000ms")

        if attempts < 0 or attempts > 10:
            issues.append(f"Invalid retryAttempts for {service} service: should be between 0-10")

        return {
            "valid": len(issues) == 0,
            "issues": issues,
            "service": service
        }

    def export_config(self, service: str = "primary") -> Dict[str, Any]:
        """Exportable service configuration (without the API key)."""
        return self.service_config(service).public_dict()

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
