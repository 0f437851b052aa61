"""
Privilege Blueprint: grant and revoke the three kinds of privilege grant.

  GET    /api/user-privileges              ?userId=&projectId=
  POST   /api/user-privileges              { user_id, privilege_id, project_id?, expires_at? }
  DELETE /api/user-privileges/<id>
  GET    /api/project-user-privileges      ?projectId=&userId=
  POST   /api/project-user-privileges      { user_id, project_id, privilege_id }
  DELETE /api/project-user-privileges/<id>
  GET    /api/group-privileges             ?roleId=
  POST   /api/group-privileges             { role_id, privilege_id }
  DELETE /api/group-privileges/<id>

Every route requires users MANAGE. A duplicate active grant → 409.
"""

from flask import Blueprint, g, request

from defect_tracker.blueprints import query_bool
from defect_tracker.middleware.permission_required import require_privilege
from defect_tracker.services import privilege_service
from defect_tracker.utils.helpers import api_ok, parse_int

privilege_bp = Blueprint("privilege", __name__, url_prefix="/api")


def _body():
    return request.get_json(silent=True) or {}


def _arg_int(name):
    return parse_int(request.args.get(name), name)


# ── User privileges ──────────────────────────────────────────────────────
@privilege_bp.route("/user-privileges", methods=["GET"])
@require_privilege("users", "MANAGE")
def list_user_privileges():
    rows = privilege_service.list_user_privileges(
        user_id=_arg_int("userId"), project_id=_arg_int("projectId"),
        include_inactive=bool(query_bool("include_inactive")),
    )
    return api_ok("User privileges retrieved", [r.to_dict() for r in rows])


@privilege_bp.route("/user-privileges", methods=["POST"])
@require_privilege("users", "MANAGE")
def grant_user_privilege():
    grant = privilege_service.grant_user_privilege(_body(), granted_by=g.jwt_user_id)
    return api_ok("Privilege granted", grant.to_dict(), status=201)


@privilege_bp.route("/user-privileges/<int:grant_id>", methods=["DELETE"])
@require_privilege("users", "MANAGE")
def revoke_user_privilege(grant_id):
    grant = privilege_service.revoke_user_privilege(grant_id, revoked_by=g.jwt_user_id)
    return api_ok("Privilege revoked", grant.to_dict())


# ── Project user privileges ──────────────────────────────────────────────
@privilege_bp.route("/project-user-privileges", methods=["GET"])
@require_privilege("users", "MANAGE")
def list_project_user_privileges():
    rows = privilege_service.list_project_user_privileges(
        project_id=_arg_int("projectId"), user_id=_arg_int("userId"),
        include_inactive=bool(query_bool("include_inactive")),
    )
    return api_ok("Project user privileges retrieved", [r.to_dict() for r in rows])


@privilege_bp.route("/project-user-privileges", methods=["POST"])
@require_privilege("users", "MANAGE")
def grant_project_user_privilege():
    grant = privilege_service.grant_project_user_privilege(_body(), granted_by=g.jwt_user_id)
    return api_ok("Project privilege granted", grant.to_dict(), status=201)


@privilege_bp.route("/project-user-privileges/<int:grant_id>", methods=["DELETE"])
@require_privilege("users", "MANAGE")
def revoke_project_user_privilege(grant_id):
    grant = privilege_service.revoke_project_user_privilege(grant_id, revoked_by=g.jwt_user_id)
    return api_ok("Project privilege revoked", grant.to_dict())


# ── Group privileges ─────────────────────────────────────────────────────
@privilege_bp.route("/group-privileges", methods=["GET"])
@require_privilege("users", "MANAGE")
def list_group_privileges():
    rows = privilege_service.list_group_privileges(
        role_id=_arg_int("roleId"), include_inactive=bool(query_bool("include_inactive")),
    )
    return api_ok("Group privileges retrieved", [r.to_dict() for r in rows])


@privilege_bp.route("/group-privileges", methods=["POST"])
@require_privilege("users", "MANAGE")
def grant_group_privilege():
    grant = privilege_service.grant_group_privilege(_body(), granted_by=g.jwt_user_id)
    return api_ok("Group privilege granted", grant.to_dict(), status=201)


@privilege_bp.route("/group-privileges/<int:grant_id>", methods=["DELETE"])
@require_privilege("users", "MANAGE")
def revoke_group_privilege(grant_id):
    grant = privilege_service.revoke_group_privilege(grant_id, revoked_by=g.jwt_user_id)
    return api_ok("Group privilege revoked", grant.to_dict())
