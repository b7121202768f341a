"""
Configuration Validators
========================

Startup validation for the AffSync configuration layer.
Raises ImproperlyConfigured for critical issues in production,
logs everything else.

Called automatically via networks.apps.NetworksConfig.ready().
"""

import logging
from dataclasses import fields
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

# Env-var prefix on APIKeysConfig fields → network name
NETWORK_FIELD_PREFIXES = {
    "shareasale_": "shareasale",
    "cj_": "cj",
    "impact_": "impact",
    "rakuten_": "rakuten",
}

# Optional fields that never make a network "partially configured"
OPTIONAL_CREDENTIAL_FIELDS = {"shareasale_api_version", "rakuten_secret_key"}


def partially_configured_networks(apis) -> list:
    """
    Networks with some, but not all, credentials set.

    Almost always a typo in an env var name; the network silently drops
    out of the sync schedule otherwise.
    """
    seen = {}
    for f in fields(apis):
        if f.name in OPTIONAL_CREDENTIAL_FIELDS:
            continue
        for prefix, network in NETWORK_FIELD_PREFIXES.items():
            if f.name.startswith(prefix):
                seen.setdefault(network, []).append(bool(getattr(apis, f.name)))

    return sorted(
        network for network, present in seen.items()
        if any(present) and not all(present)
    )


def collect_config_issues(config) -> list:
    """All issues for ``config``, prefixed CRITICAL / WARNING / INFO."""
    issues = list(config.validate())
    for network in partially_configured_networks(config.apis):
        issues.append(f"WARNING: {network} credentials are incomplete; network disabled")
    return issues


def validate_config_on_startup():
    """
    Validate all configuration on application startup.

    Production:
        CRITICAL issues raise ImproperlyConfigured (hard failure).
        WARNING issues are logged but don't block startup.

    Development:
        All issues are logged as warnings/info.
    """
    from affsync.config import config

    issues = collect_config_issues(config)

    if not issues:
        logger.info("Configuration validated — no issues found")
        config.log_status()
        return

    critical_issues = [i for i in issues if i.startswith("CRITICAL")]

    for issue in issues:
        if issue.startswith("CRITICAL"):
            logger.critical(issue)
        elif issue.startswith("WARNING"):
            logger.warning(issue)
        else:
            logger.info(issue)

    if config.is_production and critical_issues:
        raise ImproperlyConfigured(
            "Configuration validation failed in production:\n"
            + "\n".join(f"  • {i}" for i in critical_issues)
        )

    config.log_status()
