"""
Settings and environment management module for the PageLoad diagnosis service.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for development (anonymous PageSpeed Insights quota)
- Singleton pattern via @lru_cache for efficient access
- Every cache / rate-limit tuning constant exposed as a setting instead of a magic number

Environment Variables:
- PSI_API_KEY: PageSpeed Insights API key (optional, anonymous quota when unset)
- PSI_ENDPOINT: PageSpeed Insights runPagespeed endpoint
- UPSTREAM_TIMEOUT_SECONDS: Per-call timeout for audit requests (default 12s)
- CACHE_SUCCESS_TTL_SECONDS / CACHE_FAILURE_TTL_SECONDS: Response cache lifetimes
- CACHE_MAX_ENTRIES: Upper bound on cached (strategy, locale, url) entries
- RATE_LIMIT_WINDOW_SECONDS / RATE_LIMIT_MAX_REQUESTS: Per-client upstream budget
- CLIENT_IP_HEADERS: Prioritized forwarded-address headers used for client identity
- CORS_ORIGINS: Allowed browser origins
- LOG_LEVEL: Root logging level

Usage:
    from pageload.core.config import get_settings

    settings = get_settings()
    timeout = settings.upstream_timeout_seconds
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PSI_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The class inherits from pydantic-settings BaseSettings which provides:
    - Automatic loading from environment variables (case-insensitive)
    - Support for .env file loading
    - Type validation and coercion
    - Default values for optional settings

    Attributes:
        psi_api_key: PageSpeed Insights API key. Optional.
        psi_endpoint: runPagespeed endpoint URL.
        psi_categories: Lighthouse categories requested on every audit.
        upstream_timeout_seconds: Timeout for a single audit request.
        default_fetch_timeout_seconds: Timeout for other outbound JSON fetches.
        cache_success_ttl_seconds: Lifetime of a cached successful audit.
        cache_failure_ttl_seconds: Lifetime of a cached failed audit.
        cache_max_entries: Cache size above which eviction sweeps run.
        rate_limit_window_seconds: Width of a client's rate-limit window.
        rate_limit_max_requests: Upstream-triggering requests allowed per window.
        rate_limit_prune_threshold: Tracked client count above which expired windows are pruned.
        client_ip_headers: Forwarded-address headers, highest priority first.
        max_url_length: Longest accepted raw target URL.
        cors_origins: Origins allowed by the CORS middleware.
        log_level: Root logging level name.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Upstream Provider (PageSpeed Insights)
    # =========================================================================

    # Without a key, requests share Google's anonymous quota and often hit 429
    psi_api_key: Optional[str] = None

    psi_endpoint: str = DEFAULT_PSI_ENDPOINT

    psi_categories: List[str] = ["performance", "best-practices", "seo"]

    # Audits routinely take 8-10s on the provider side
    upstream_timeout_seconds: float = 12.0

    default_fetch_timeout_seconds: float = 5.0

    # =========================================================================
    # Response Cache
    # =========================================================================

    cache_success_ttl_seconds: float = 300.0

    # Failures are usually transient quota errors, retry them sooner
    cache_failure_ttl_seconds: float = 30.0

    cache_max_entries: int = 25

    # =========================================================================
    # Rate Limiting
    # =========================================================================

    rate_limit_window_seconds: float = 60.0

    rate_limit_max_requests: int = 10

    rate_limit_prune_threshold: int = 500

    client_ip_headers: List[str] = [
        "x-forwarded-for",
        "x-real-ip",
        "cf-connecting-ip",
        "true-client-ip",
    ]

    # =========================================================================
    # Inbound Surface
    # =========================================================================

    max_url_length: int = 2048

    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    log_level: str = "INFO"

    @property
    def api_key_configured(self) -> bool:
        return bool(self.psi_api_key and self.psi_api_key.strip())


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    This function returns a cached Settings instance, ensuring that environment
    variables are only loaded once during the application lifecycle.

    Returns:
        Settings: The application settings instance with all configuration values.

    Raises:
        pydantic.ValidationError: If environment variables have invalid values
            (e.g., RATE_LIMIT_MAX_REQUESTS=abc).

    Note:
        To refresh settings in tests, you can clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
