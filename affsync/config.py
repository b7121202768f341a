"""
Configuration Layer
===================

Centralized, type-safe configuration for every environment variable the
affiliate sync service reads. Nothing else in the codebase should call
``os.getenv`` directly.

Usage:
    from affsync.config import config

    # Network credentials
    creds = config.apis.credentials_for("cj")

    # Sync engine tuning
    workers = config.sync.max_concurrent_syncs

    # Check if in production
    if config.is_production:
        ...
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List
import logging

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


def _env_list(name: str, default: str = "") -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


# =============================================================================
# Configuration Classes
# =============================================================================

@dataclass(frozen=True)
class RedisConfig:
    """Redis/Celery broker settings."""
    url: str = field(default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0"))
    broker_url: str = field(default_factory=lambda: os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0"))
    result_backend: str = field(default_factory=lambda: os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0"))


@dataclass(frozen=True)
class APIKeysConfig:
    """Affiliate network credentials for the default tenant - single source of truth."""

    # ShareASale
    shareasale_affiliate_id: str = field(default_factory=lambda: os.getenv("SHAREASALE_AFFILIATE_ID", ""))
    shareasale_api_token: str = field(default_factory=lambda: os.getenv("SHAREASALE_API_TOKEN", ""))
    shareasale_api_secret: str = field(default_factory=lambda: os.getenv("SHAREASALE_API_SECRET", ""))
    shareasale_api_version: str = field(default_factory=lambda: os.getenv("SHAREASALE_API_VERSION", "2.9"))

    # CJ Affiliate
    cj_api_token: str = field(default_factory=lambda: os.getenv("CJ_AFFILIATE_API_TOKEN", ""))
    cj_developer_id: str = field(default_factory=lambda: os.getenv("CJ_DEVELOPER_ID", ""))
    cj_website_id: str = field(default_factory=lambda: os.getenv("CJ_WEBSITE_ID", ""))

    # Impact
    impact_account_sid: str = field(default_factory=lambda: os.getenv("IMPACT_ACCOUNT_SID", ""))
    impact_auth_token: str = field(default_factory=lambda: os.getenv("IMPACT_AUTH_TOKEN", ""))
    impact_partner_id: str = field(default_factory=lambda: os.getenv("IMPACT_PARTNER_ID", ""))

    # Rakuten
    rakuten_api_token: str = field(default_factory=lambda: os.getenv("RAKUTEN_API_TOKEN", ""))
    rakuten_site_id: str = field(default_factory=lambda: os.getenv("RAKUTEN_SITE_ID", ""))
    rakuten_secret_key: str = field(default_factory=lambda: os.getenv("RAKUTEN_SECRET_KEY", ""))

    def is_configured(self, service: str) -> bool:
        """Check if a network has its API keys configured."""
        checks = {
            "shareasale": bool(
                self.shareasale_affiliate_id and self.shareasale_api_token and self.shareasale_api_secret
            ),
            "cj": bool(self.cj_api_token and self.cj_developer_id and self.cj_website_id),
            "impact": bool(self.impact_account_sid and self.impact_auth_token and self.impact_partner_id),
            "rakuten": bool(self.rakuten_api_token and self.rakuten_site_id),
        }
        return checks.get(service.lower(), False)

    @property
    def configured_services(self) -> List[str]:
        """Return list of networks with valid API keys."""
        services = ["shareasale", "cj", "impact", "rakuten"]
        return [s for s in services if self.is_configured(s)]

    def credentials_for(self, service: str) -> Dict[str, str]:
        """
        Credentials dict for a network, keyed the way the adapters expect.

        Empty values are dropped so config validation reports them as missing.
        """
        credentials = {
            "shareasale": {
                "affiliateId": self.shareasale_affiliate_id,
                "token": self.shareasale_api_token,
                "secretKey": self.shareasale_api_secret,
                "version": self.shareasale_api_version,
            },
            "cj": {
                "developerId": self.cj_developer_id,
                "websiteId": self.cj_website_id,
                "personalAccessToken": self.cj_api_token,
            },
            "impact": {
                "accountSid": self.impact_account_sid,
                "authToken": self.impact_auth_token,
                "partnerId": self.impact_partner_id,
            },
            "rakuten": {
                "publisherId": self.rakuten_site_id,
                "apiKey": self.rakuten_api_token,
                "secretKey": self.rakuten_secret_key,
            },
        }.get(service.lower(), {})
        return {key: value for key, value in credentials.items() if value}


@dataclass(frozen=True)
class SyncConfig:
    """Sync engine tuning."""
    default_tenant_id: str = field(default_factory=lambda: os.getenv("AFFSYNC_DEFAULT_TENANT", "default"))
    max_concurrent_syncs: int = field(default_factory=lambda: int(os.getenv("AFFSYNC_MAX_CONCURRENT_SYNCS", "3")))
    default_sync_interval: int = field(default_factory=lambda: int(os.getenv("AFFSYNC_SYNC_INTERVAL_MINUTES", "60")))
    auto_sync: bool = field(default_factory=lambda: _env_bool("AFFSYNC_AUTO_SYNC", "true"))
    retry_attempts: int = field(default_factory=lambda: int(os.getenv("AFFSYNC_RETRY_ATTEMPTS", "3")))
    retry_base_delay: float = field(default_factory=lambda: float(os.getenv("AFFSYNC_RETRY_BASE_DELAY", "1.0")))
    page_size: int = field(default_factory=lambda: int(os.getenv("AFFSYNC_PAGE_SIZE", "100")))
    http_timeout: int = field(default_factory=lambda: int(os.getenv("AFFSYNC_HTTP_TIMEOUT", "30")))
    user_agent: str = field(default_factory=lambda: os.getenv("AFFSYNC_USER_AGENT", "AffSync/1.0"))


@dataclass(frozen=True)
class WebhookConfig:
    """Inbound webhook settings."""
    base_url: str = field(default_factory=lambda: os.getenv("AFFSYNC_WEBHOOK_BASE_URL", "http://localhost:8000"))
    enabled: bool = field(default_factory=lambda: _env_bool("AFFSYNC_WEBHOOKS_ENABLED", "true"))
    # Networks without a signature scheme are rejected unless opted in here or allowlisted
    allow_unverified: bool = field(default_factory=lambda: _env_bool("AFFSYNC_ALLOW_UNVERIFIED_WEBHOOKS"))
    ip_allowlist: List[str] = field(default_factory=lambda: _env_list("AFFSYNC_WEBHOOK_IP_ALLOWLIST"))
    # Shared HMAC secret for env-configured networks
    secret: str = field(default_factory=lambda: os.getenv("AFFSYNC_WEBHOOK_SECRET", ""), repr=False)


@dataclass(frozen=True)
class SecurityConfig:
    """Security-related settings."""
    secret_key: str = field(default_factory=lambda: os.getenv("SECRET_KEY", "django-insecure-dev-key-change-in-production"))
    allowed_hosts: List[str] = field(default_factory=lambda: os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(","))

    @property
    def is_secure_key(self) -> bool:
        """Check if using a proper secret key."""
        return "insecure" not in self.secret_key.lower() and len(self.secret_key) >= 50


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration - aggregates all config sections."""

    # Environment
    environment: str = field(default_factory=lambda: os.getenv("DJANGO_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "True").lower() == "true")

    # Sub-configurations
    redis: RedisConfig = field(default_factory=RedisConfig)
    apis: APIKeysConfig = field(default_factory=APIKeysConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    webhooks: WebhookConfig = field(default_factory=WebhookConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of warnings/errors.
        Call this on startup to catch misconfigurations early.
        """
        issues = []

        if self.is_production:
            if not self.security.is_secure_key:
                issues.append("CRITICAL: Using insecure SECRET_KEY in production!")
            if self.debug:
                issues.append("WARNING: DEBUG=True in production!")
            if not self.apis.configured_services:
                issues.append("WARNING: No affiliate networks configured")
            if self.webhooks.allow_unverified:
                issues.append("WARNING: Unverified webhooks accepted for networks without signatures")

        if self.sync.max_concurrent_syncs < 1:
            issues.append("CRITICAL: AFFSYNC_MAX_CONCURRENT_SYNCS must be at least 1")

        if self.sync.default_sync_interval < 5:
            issues.append("WARNING: AFFSYNC_SYNC_INTERVAL_MINUTES below 5 minutes, clamped to 5")

        if not self.apis.configured_services:
            issues.append("INFO: No affiliate network credentials in environment")

        return issues

    def log_status(self) -> None:
        """Log configuration status on startup."""
        logger.info(f"Environment: {self.environment}")
        logger.info(f"Debug: {self.debug}")
        logger.info(f"Configured networks: {', '.join(self.apis.configured_services) or 'None'}")
        logger.info(f"Max concurrent syncs: {self.sync.max_concurrent_syncs}")


# =============================================================================
# Singleton Instance
# =============================================================================

@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Get the singleton configuration instance.
    Uses lru_cache to ensure single instance across the application.
    """
    return AppConfig()


# Convenience alias
config = get_config()

