"""Startup validation — catch misconfigurations before the app serves traffic."""
from __future__ import annotations

import logging
import sys

from config.settings import settings

logger = logging.getLogger(__name__)


def validate_settings() -> list[str]:
    """Validate configuration. Returns list of warnings (empty = all good).

    Raises SystemExit for critical misconfigurations in production.
    """
    warnings: list[str] = []
    is_prod = bool(settings.DATABASE_URL) and "sqlite" not in settings.DATABASE_URL

    # Critical: the admin dashboard must be locked in production
    if is_prod and not settings.ADMIN_API_KEY:
        logger.critical("ADMIN_API_KEY is not set! Admin analytics would be disabled in production.")
        sys.exit(1)

    if is_prod and "*" in settings.CORS_ORIGINS:
        warnings.append("CORS_ORIGINS is set to * — restrict in production")

    if not settings.ADMIN_API_KEY:
        warnings.append("ADMIN_API_KEY not set — admin analytics endpoints disabled")

    if settings.ANALYTICS_DEDUP_WINDOW_SECONDS <= 0:
        warnings.append("ANALYTICS_DEDUP_WINDOW_SECONDS <= 0 — every view will be counted")

    if settings.ANALYTICS_BATCH_MAX_EVENTS < 1:
        warnings.append("ANALYTICS_BATCH_MAX_EVENTS < 1 — batch tracking will reject every request")

    if is_prod and not settings.SENTRY_DSN:
        warnings.append("SENTRY_DSN not set — errors will only reach the logs")

    for w in warnings:
        logger.warning("⚠️  %s", w)

    if not warnings:
        logger.info("✅ All startup checks passed")

    return warnings
