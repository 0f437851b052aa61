"""Shared utility functions used by services and blueprints.

api_ok:           success envelope  {"success": true, "message": ..., "data": ...}
parse_date:       ISO / DD.MM.YYYY → date, None on empty input
parse_int:        optional int coercion with a ValidationError on garbage
require_fields:   raise ValidationError listing missing body fields
"""
from datetime import date, datetime

from flask import jsonify

from defect_tracker.core.exceptions import ValidationError


def api_ok(message: str, data=None, status: int = 200, **extra):
    """Return the standard success envelope.

    Extra keyword arguments (e.g. ``pagination``) are added at the top level.
    """
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def parse_date(value, field="date"):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty input and raises ValidationError for input that
    is present but unparseable. Supports:
    - YYYY-MM-DD
    - YYYY-MM-DDTHH:MM:SS (→ .date())
    - DD.MM.YYYY
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    for parse in (
        date.fromisoformat,
        lambda v: datetime.fromisoformat(v).date(),
        lambda v: datetime.strptime(v, "%d.%m.%Y").date(),
    ):
        try:
            return parse(str(value))
        except (ValueError, TypeError):
            continue
    raise ValidationError(
        f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.", details={field: "invalid date"}
    )


def parse_datetime(value, field="datetime"):
    """Parse an ISO datetime string; None on empty input."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, TypeError) as exc:
        raise ValidationError(
            f"Invalid {field}. Use ISO 8601.", details={field: "invalid datetime"}
        ) from exc


def parse_int(value, field):
    """Coerce an optional value to int, raising ValidationError on garbage."""
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "not an integer"})
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"{field} must be an integer", details={field: "not an integer"}
        ) from exc


def require_fields(data: dict, *fields: str) -> None:
    """Raise ValidationError if any of ``fields`` is missing or blank in ``data``."""
    missing = [
        f for f in fields
        if data.get(f) is None or (isinstance(data.get(f), str) and not data[f].strip())
    ]
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            details={f: "required" for f in missing},
        )
