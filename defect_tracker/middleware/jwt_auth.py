"""
JWT Auth Middleware: validates the bearer token on every protected API call.

Every ``/api/`` path except those in ``JWT_SKIP_PREFIXES`` requires
``Authorization: Bearer <access token>``. On success the hook sets:

    g.jwt_user_id   int id from the token subject
    g.current_user  the active User row

Missing, malformed or expired tokens, and tokens for unknown or inactive
users, are rejected with 401 ``ERR_UNAUTHENTICATED``. A database failure
while loading the user propagates (→ 500).
"""

import functools
import logging

import jwt as pyjwt
from flask import g, request

from defect_tracker.core.exceptions import AuthenticationError
from defect_tracker.models import db
from defect_tracker.models.auth import User
from defect_tracker.services.jwt_service import decode_access_token, user_id_from_payload
from defect_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/auth/login",
    "/api/auth/register",
    "/api/auth/refresh-token",
    "/api/health",
)


def _unauthenticated(message):
    return api_error(E.UNAUTHENTICATED, message)


def require_auth(f):
    """Decorator: reject the call unless the JWT hook identified a user."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "current_user", None) is None:
            return _unauthenticated("Authentication required")
        return f(*args, **kwargs)
    return decorated


def current_user_id() -> int:
    """ID of the authenticated caller; AuthenticationError outside a JWT request."""
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        raise AuthenticationError()
    return user_id


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.current_user = None

        path = request.path
        if not path.startswith("/api/") or request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return _unauthenticated("Access token is required")

        token = auth_header[7:].strip()
        try:
            payload = decode_access_token(token)
            user_id = user_id_from_payload(payload)
        except pyjwt.ExpiredSignatureError:
            return _unauthenticated("Token has expired")
        except pyjwt.InvalidTokenError:
            return _unauthenticated("Invalid token")

        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            logger.warning("Token for missing or inactive user %s rejected", user_id)
            return _unauthenticated("User not found or inactive")

        g.jwt_user_id = user.id
        g.current_user = user
        return None
