"""
Auth Blueprint: JWT authentication endpoints.

  POST /api/auth/register         create account → user + JWT pair
  POST /api/auth/login            username or email + password → JWT pair
  POST /api/auth/refresh-token    refresh token → new JWT pair
  GET  /api/auth/profile          current user profile
  POST /api/auth/change-password  verify current password, set a new one
  GET  /api/auth/verify-token     200 while the access token is valid
  POST /api/auth/logout           stateless; acknowledged and logged
"""

import logging

import jwt as pyjwt
from flask import Blueprint, g, request

from defect_tracker.models import db
from defect_tracker.models.auth import User
from defect_tracker.middleware.jwt_auth import require_auth
from defect_tracker.services import user_service
from defect_tracker.services.jwt_service import (
    decode_refresh_token,
    generate_token_pair,
    user_id_from_payload,
)
from defect_tracker.utils.errors import E, api_error
from defect_tracker.utils.helpers import api_ok

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _token_response(user, message, status=200):
    tokens = generate_token_pair(user.id, user.username)
    return api_ok(message, {**tokens, "user": user.to_dict()}, status=status)


# ═══════════════════════════════════════════════════════════════
# POST /api/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "first_name", "last_name", "email", "password", "phone"?, "designation_id"? }
    """
    data = request.get_json(silent=True) or {}
    user = user_service.register(data)
    return _token_response(user, "User registered successfully", status=201)


# ═══════════════════════════════════════════════════════════════
# POST /api/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "username": "US0001" | "email": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    login_name = data.get("username") or data.get("email")
    user = user_service.authenticate(login_name, data.get("password"))
    logger.info("User %s logged in", user.id)
    return _token_response(user, "Login successful")


# ═══════════════════════════════════════════════════════════════
# POST /api/auth/refresh-token
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/refresh-token", methods=["POST"])
def refresh_token():
    """Body: { "refresh_token": "..." }"""
    data = request.get_json(silent=True) or {}
    token = data.get("refresh_token", "")
    if not token:
        return api_error(E.VALIDATION_REQUIRED, "refresh_token is required",
                         details={"refresh_token": "required"})
    try:
        user_id = user_id_from_payload(decode_refresh_token(token))
    except pyjwt.ExpiredSignatureError:
        return api_error(E.UNAUTHENTICATED, "Refresh token has expired")
    except pyjwt.InvalidTokenError:
        return api_error(E.UNAUTHENTICATED, "Invalid refresh token")

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return api_error(E.UNAUTHENTICATED, "User not found or inactive")
    return _token_response(user, "Token refreshed")


# ═══════════════════════════════════════════════════════════════
# Authenticated endpoints
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/profile", methods=["GET"])
@require_auth
def profile():
    return api_ok("Profile retrieved", g.current_user.to_dict())


@auth_bp.route("/change-password", methods=["POST"])
@require_auth
def change_password():
    """Body: { "current_password": "...", "new_password": "..." }"""
    data = request.get_json(silent=True) or {}
    user_service.change_password(
        g.current_user, data.get("current_password"), data.get("new_password"),
    )
    return api_ok("Password changed successfully")


@auth_bp.route("/verify-token", methods=["GET"])
@require_auth
def verify_token():
    user = g.current_user
    return api_ok("Token is valid", {"user_id": user.id, "username": user.username})


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    logger.info("User %s logged out", g.jwt_user_id)
    return api_ok("Logged out successfully")
