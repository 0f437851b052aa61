"""
Defect Tracker
Blueprint registry.
"""

from flask import current_app, request


def paginate_query(query):
    """Apply page/limit pagination to a SQLAlchemy query.

    Query params:
        page:  1-based page number (default 1)
        limit: page size (default DEFAULT_PAGE_SIZE, capped at MAX_PAGE_SIZE)

    Returns:
        (items_list, pagination_dict)
    """
    default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 10)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 100)
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1

    total = query.count()
    items = query.limit(limit).offset((page - 1) * limit).all()
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    }
    return items, pagination


def query_bool(name: str):
    """Parse a true/false query parameter; None when absent or unrecognised."""
    raw = request.args.get(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if raw in ("true", "1", "yes"):
        return True
    if raw in ("false", "0", "no"):
        return False
    return None
