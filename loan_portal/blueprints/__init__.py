"""
Financing Application Portal
Blueprint registry.
"""

from flask import request


def pagination_args(default_limit=50, max_limit=500):
    """Read limit/offset query params.

    Query params:
        limit  - max items (default 50, capped at max_limit)
        offset - starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset


def paginate_list(items, default_limit=50, max_limit=500):
    """Apply limit/offset pagination to an already-scoped result list.

    Returns:
        (page_items, total_count)
    """
    limit, offset = pagination_args(default_limit, max_limit)
    return items[offset:offset + limit], len(items)


def query_flag(name, default=None):
    """Parse a boolean query param (true/false/1/0); missing → *default*."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
