"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in defect_tracker/__init__.py with no default limits;
this module applies limits per route category.

Usage:
    from defect_tracker.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_AUTH_LIMIT = "20/minute"
WRITE_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:   AUTH_RATE_LIMIT (default 20/minute; brute-force guard)
        - Write-heavy APIs: 120/minute
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    auth_limit = app.config.get("AUTH_RATE_LIMIT", DEFAULT_AUTH_LIMIT)
    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(auth_limit)(bp)

    for bp_name in ("defect", "project", "user", "privilege"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: auth: %s, write APIs: %s",
                    auth_limit, WRITE_LIMIT)
