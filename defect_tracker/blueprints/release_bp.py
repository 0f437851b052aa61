"""
Release Blueprint: releases of one project.

  GET    /api/releases/project/<pid>              member (?status=)
  POST   /api/releases/project/<pid>              releases CREATE
  GET    /api/releases/project/<pid>/<rid>        member
  PUT    /api/releases/project/<pid>/<rid>        releases UPDATE
  DELETE /api/releases/project/<pid>/<rid>        releases DELETE (soft)

Privilege checks are scoped to <pid>.
"""

from flask import Blueprint, g, request

from defect_tracker.middleware.permission_required import require_privilege
from defect_tracker.middleware.project_access import require_project_access
from defect_tracker.services import release_service
from defect_tracker.utils.helpers import api_ok

release_bp = Blueprint("release", __name__, url_prefix="/api/releases/project/<int:project_id>")


def _body():
    return request.get_json(silent=True) or {}


@release_bp.route("", methods=["GET"])
@require_project_access("project_id")
def list_releases(project_id):
    rows = release_service.list_releases(project_id, status=request.args.get("status"))
    return api_ok("Project releases retrieved", [r.to_dict() for r in rows])


@release_bp.route("", methods=["POST"])
@require_project_access("project_id")
@require_privilege("releases", "CREATE", project_param="project_id")
def create_release(project_id):
    release = release_service.create_release(project_id, _body(), created_by=g.jwt_user_id)
    return api_ok("Release created", release.to_dict(), status=201)


@release_bp.route("/<int:release_id>", methods=["GET"])
@require_project_access("project_id")
def get_release(project_id, release_id):
    return api_ok("Release retrieved", release_service.get_release(project_id, release_id).to_dict())


@release_bp.route("/<int:release_id>", methods=["PUT"])
@require_project_access("project_id")
@require_privilege("releases", "UPDATE", project_param="project_id")
def update_release(project_id, release_id):
    release = release_service.update_release(project_id, release_id, _body())
    return api_ok("Release updated", release.to_dict())


@release_bp.route("/<int:release_id>", methods=["DELETE"])
@require_project_access("project_id")
@require_privilege("releases", "DELETE", project_param="project_id")
def delete_release(project_id, release_id):
    release_service.delete_release(project_id, release_id, deleted_by=g.jwt_user_id)
    return api_ok("Release deleted")
