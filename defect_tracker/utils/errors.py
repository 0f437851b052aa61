"""Standardised API error responses.

Usage
-----
    from defect_tracker.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Defect not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")
    return api_error(E.FORBIDDEN, "Insufficient privileges", details={"module": "projects"})
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from defect_tracker.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Authentication – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_PROJECT_MEMBER = "ERR_NOT_PROJECT_MEMBER"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Rate limit – HTTP 429
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_PROJECT_MEMBER: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, required privilege, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "success": False,
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(app):
    """Map the exception hierarchy to JSON responses for every blueprint."""

    @app.errorhandler(AuthenticationError)
    def _handle_unauthenticated(error: AuthenticationError):
        return api_error(E.UNAUTHENTICATED, str(error))

    @app.errorhandler(AuthorizationError)
    def _handle_forbidden(error: AuthorizationError):
        return api_error(error.code or E.FORBIDDEN, str(error), status=403)

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        from defect_tracker.models import db

        db.session.rollback()
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        from defect_tracker.models import db

        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @app.errorhandler(HTTPException)
    def _handle_http(error: HTTPException):
        if error.code == 429:
            return api_error(E.RATE_LIMITED, "Too many requests", status=429,
                             details={"retry_after": error.description})
        if error.code == 404:
            return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})
        return api_error(f"ERR_HTTP_{error.code}", error.description or error.name,
                         status=error.code)

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        from defect_tracker.models import db

        logger.exception("Unexpected error endpoint=%s", request.endpoint)
        db.session.rollback()
        return api_error(E.INTERNAL, "Internal server error")
