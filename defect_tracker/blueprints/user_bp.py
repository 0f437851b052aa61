"""
User Blueprint: account administration.

  GET    /api/users                              users READ   (page, limit, search, is_active)
  POST   /api/users                              users CREATE
  GET    /api/users/<uid>                        users READ
  PUT    /api/users/<uid>                        users UPDATE
  DELETE /api/users/<uid>                        users DELETE (deactivates)
  PATCH  /api/users/<uid>/status                 users MANAGE
  PATCH  /api/users/<uid>/password               users MANAGE
  GET    /api/users/<uid>/privileges             users READ
  GET    /api/users/<uid>/privileges/check       users MANAGE, or self
  GET    /api/users/<uid>/projects               users READ
  GET    /api/users/<uid>/email-preferences      users READ, or self
  PUT    /api/users/<uid>/email-preferences      users UPDATE, or self
"""

import logging

from flask import Blueprint, g, request

from defect_tracker.blueprints import paginate_query, query_bool
from defect_tracker.middleware.permission_required import require_privilege
from defect_tracker.services import user_service
from defect_tracker.services.authorization import authorize, explain
from defect_tracker.utils.errors import E, api_error
from defect_tracker.utils.helpers import api_ok, parse_int, require_fields

logger = logging.getLogger(__name__)

user_bp = Blueprint("user", __name__, url_prefix="/api/users")


def _body():
    return request.get_json(silent=True) or {}


def _self_or_privilege(user_id: int, action: str):
    """None when the caller is ``user_id`` or holds users.<action>; else a 403 response."""
    if g.jwt_user_id == user_id or authorize(g.jwt_user_id, "users", action):
        return None
    logger.warning("User %d denied %s on user %d", g.jwt_user_id, action, user_id)
    return api_error(E.FORBIDDEN, "Insufficient privileges",
                     details={"module": "users", "action": action})


@user_bp.route("", methods=["GET"])
@require_privilege("users", "READ")
def list_users():
    query = user_service.list_users_query(
        search=request.args.get("search"),
        is_active=query_bool("is_active"),
    )
    items, pagination = paginate_query(query)
    return api_ok("Users retrieved", [u.to_dict() for u in items], pagination=pagination)


@user_bp.route("", methods=["POST"])
@require_privilege("users", "CREATE")
def create_user():
    user = user_service.create_user(_body(), created_by=g.jwt_user_id)
    return api_ok("User created", user.to_dict(), status=201)


@user_bp.route("/<int:user_id>", methods=["GET"])
@require_privilege("users", "READ")
def get_user(user_id):
    return api_ok("User retrieved", user_service.get_user(user_id).to_dict())


@user_bp.route("/<int:user_id>", methods=["PUT"])
@require_privilege("users", "UPDATE")
def update_user(user_id):
    user = user_service.update_user(user_id, _body())
    return api_ok("User updated", user.to_dict())


@user_bp.route("/<int:user_id>", methods=["DELETE"])
@require_privilege("users", "DELETE")
def delete_user(user_id):
    user_service.delete_user(user_id, deleted_by=g.jwt_user_id)
    return api_ok("User deleted")


@user_bp.route("/<int:user_id>/status", methods=["PATCH"])
@require_privilege("users", "MANAGE")
def set_status(user_id):
    """Body: { "is_active": true | false }"""
    data = _body()
    require_fields(data, "is_active")
    user = user_service.set_user_status(user_id, data["is_active"], changed_by=g.jwt_user_id)
    return api_ok("User status updated", user.to_dict())


@user_bp.route("/<int:user_id>/password", methods=["PATCH"])
@require_privilege("users", "MANAGE")
def reset_password(user_id):
    """Body: { "new_password": "..." }"""
    data = _body()
    require_fields(data, "new_password")
    user_service.reset_password(user_id, data["new_password"], changed_by=g.jwt_user_id)
    return api_ok("Password reset successfully")


@user_bp.route("/<int:user_id>/privileges", methods=["GET"])
@require_privilege("users", "READ")
def user_privileges(user_id):
    return api_ok("User privileges retrieved", user_service.user_privileges_summary(user_id))


@user_bp.route("/<int:user_id>/privileges/check", methods=["GET"])
def check_privilege(user_id):
    """Query: module, action, projectId? → which grant source decided."""
    denied = _self_or_privilege(user_id, "MANAGE")
    if denied:
        return denied
    user_service.get_user(user_id)
    module = request.args.get("module", "")
    action = request.args.get("action", "")
    if not module or not action:
        return api_error(E.VALIDATION_REQUIRED, "module and action are required",
                         details={"module": "required", "action": "required"})
    project_id = parse_int(request.args.get("projectId"), "projectId")
    result = explain(user_id, module, action, project_id)
    return api_ok("Privilege check completed", {"user_id": user_id, **result})


@user_bp.route("/<int:user_id>/projects", methods=["GET"])
@require_privilege("users", "READ")
def user_projects(user_id):
    return api_ok("User projects retrieved", user_service.user_projects(user_id))


@user_bp.route("/<int:user_id>/email-preferences", methods=["GET"])
def get_email_preferences(user_id):
    denied = _self_or_privilege(user_id, "READ")
    if denied:
        return denied
    return api_ok("Email preferences retrieved", user_service.get_email_preferences(user_id))


@user_bp.route("/<int:user_id>/email-preferences", methods=["PUT"])
def update_email_preferences(user_id):
    """Body: { "DEFECT_ASSIGNED": false, ... }"""
    denied = _self_or_privilege(user_id, "UPDATE")
    if denied:
        return denied
    prefs = user_service.update_email_preferences(user_id, _body())
    return api_ok("Email preferences updated", prefs)
