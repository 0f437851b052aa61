"""
Defect Blueprint: defects, their history and comments inside one project.

  GET    /api/projects/<pid>/defects                    list (page, limit, search, filters)
  POST   /api/projects/<pid>/defects                    defects CREATE
  GET    /api/projects/<pid>/defects/<did>
  PUT    /api/projects/<pid>/defects/<did>              defects UPDATE
  DELETE /api/projects/<pid>/defects/<did>              defects DELETE (soft)
  PATCH  /api/projects/<pid>/defects/<did>/status       defects UPDATE
  PATCH  /api/projects/<pid>/defects/<did>/assign       defects UPDATE
  GET    /api/projects/<pid>/defects/<did>/history
  GET    /api/projects/<pid>/defects/<did>/comments
  POST   /api/projects/<pid>/defects/<did>/comments

Every route requires project membership; privilege checks are scoped to <pid>.
"""

from flask import Blueprint, g, request

from defect_tracker.blueprints import paginate_query
from defect_tracker.middleware.permission_required import require_privilege
from defect_tracker.middleware.project_access import require_project_access
from defect_tracker.services import defect_service
from defect_tracker.utils.helpers import api_ok, require_fields

defect_bp = Blueprint("defect", __name__, url_prefix="/api/projects/<int:project_id>/defects")


def _body():
    return request.get_json(silent=True) or {}


@defect_bp.route("", methods=["GET"])
@require_project_access("project_id")
def list_defects(project_id):
    filters = {key: request.args.get(key) for key in ("search", *defect_service.LIST_FILTERS)}
    query = defect_service.list_defects_query(project_id, filters)
    items, pagination = paginate_query(query)
    return api_ok("Defects retrieved", [d.to_dict() for d in items], pagination=pagination)


@defect_bp.route("", methods=["POST"])
@require_project_access("project_id")
@require_privilege("defects", "CREATE", project_param="project_id")
def create_defect(project_id):
    defect = defect_service.create_defect(project_id, _body(), created_by=g.jwt_user_id)
    return api_ok("Defect created", defect.to_dict(), status=201)


@defect_bp.route("/<int:defect_id>", methods=["GET"])
@require_project_access("project_id")
def get_defect(project_id, defect_id):
    return api_ok("Defect retrieved", defect_service.get_defect(project_id, defect_id).to_dict())


@defect_bp.route("/<int:defect_id>", methods=["PUT"])
@require_project_access("project_id")
@require_privilege("defects", "UPDATE", project_param="project_id")
def update_defect(project_id, defect_id):
    defect = defect_service.update_defect(project_id, defect_id, _body(), changed_by=g.jwt_user_id)
    return api_ok("Defect updated", defect.to_dict())


@defect_bp.route("/<int:defect_id>", methods=["DELETE"])
@require_project_access("project_id")
@require_privilege("defects", "DELETE", project_param="project_id")
def delete_defect(project_id, defect_id):
    defect_service.delete_defect(project_id, defect_id, deleted_by=g.jwt_user_id)
    return api_ok("Defect deleted")


@defect_bp.route("/<int:defect_id>/status", methods=["PATCH"])
@require_project_access("project_id")
@require_privilege("defects", "UPDATE", project_param="project_id")
def change_status(project_id, defect_id):
    """Body: { "defect_status_id": 3, "notes"?: "..." }"""
    data = _body()
    require_fields(data, "defect_status_id")
    defect = defect_service.change_status(
        project_id, defect_id, data["defect_status_id"],
        changed_by=g.jwt_user_id, notes=data.get("notes"),
    )
    return api_ok("Defect status updated", defect.to_dict())


@defect_bp.route("/<int:defect_id>/assign", methods=["PATCH"])
@require_project_access("project_id")
@require_privilege("defects", "UPDATE", project_param="project_id")
def assign_defect(project_id, defect_id):
    """Body: { "assigned_to": 7 | null, "notes"?: "..." }"""
    data = _body()
    defect = defect_service.assign_defect(
        project_id, defect_id, data.get("assigned_to"),
        assigned_by=g.jwt_user_id, notes=data.get("notes"),
    )
    return api_ok("Defect assigned", defect.to_dict())


@defect_bp.route("/<int:defect_id>/history", methods=["GET"])
@require_project_access("project_id")
def defect_history(project_id, defect_id):
    rows = defect_service.defect_history(project_id, defect_id)
    return api_ok("Defect history retrieved", [h.to_dict() for h in rows])


@defect_bp.route("/<int:defect_id>/comments", methods=["GET"])
@require_project_access("project_id")
def list_comments(project_id, defect_id):
    rows = defect_service.list_comments(project_id, defect_id)
    return api_ok("Comments retrieved", [c.to_dict() for c in rows])


@defect_bp.route("/<int:defect_id>/comments", methods=["POST"])
@require_project_access("project_id")
def add_comment(project_id, defect_id):
    comment = defect_service.add_comment(project_id, defect_id, _body(), user_id=g.jwt_user_id)
    return api_ok("Comment added", comment.to_dict(), status=201)
