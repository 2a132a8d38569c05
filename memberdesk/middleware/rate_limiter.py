"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in memberdesk/__init__.py with no default limits;
this module applies limits to the endpoints that cost money or can be
abused anonymously.

Usage:
    from memberdesk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

LOGIN_RATE_LIMIT = "10/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to blueprints (per remote IP).

        generation   GENERATION_RATE_LIMIT   (Completion Service calls)
        contact      CONTACT_RATE_LIMIT      (public, unauthenticated)
        auth         10/minute               (password guessing)
        health       exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        logger.info("Rate limiter disabled (TESTING=True)")
        return

    limits = {
        "generation": app.config.get("GENERATION_RATE_LIMIT", "30/minute"),
        "contact": app.config.get("CONTACT_RATE_LIMIT", "5/minute"),
        "auth": LOGIN_RATE_LIMIT,
    }
    for bp_name, limit in limits.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    logger.info("Rate limiter configured: %s", ", ".join(f"{k}={v}" for k, v in limits.items()))
