"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in loan_portal/__init__.py with no default limits; this module
applies granular limits per route category.

Usage:
    from loan_portal.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Applications:   60/minute  (submissions and decisions)
        - Admin/directory: 60/minute
        - Notifications: 200/minute  (header bell polls)
        - Health check:   exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("applications", "admin", "directory"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("60/minute")(bp)

    bp = app.blueprints.get("notifications")
    if bp:
        limiter.limit("200/minute")(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured - write: 60/min, notifications: 200/min")
