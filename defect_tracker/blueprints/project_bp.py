"""
Project Blueprint: projects, modules, sub-modules and team allocations.

Projects:
  GET    /api/projects                          projects READ
  POST   /api/projects                          projects CREATE (caller becomes owner)
  GET    /api/projects/<pid>                    member
  PUT    /api/projects/<pid>                    member + projects UPDATE
  DELETE /api/projects/<pid>                    member + projects DELETE

Modules / sub-modules:
  GET    /api/projects/<pid>/modules[/<mid>]                    member
  POST   /api/projects/<pid>/modules                            projects UPDATE
  PUT    /api/projects/<pid>/modules/<mid>                      projects UPDATE
  DELETE /api/projects/<pid>/modules/<mid>                      projects DELETE
  GET    /api/projects/<pid>/modules/<mid>/sub-modules          member
  POST   /api/projects/<pid>/modules/<mid>/sub-modules          projects UPDATE
  PUT    /api/projects/<pid>/modules/<mid>/sub-modules/<sid>    projects UPDATE
  DELETE /api/projects/<pid>/modules/<mid>/sub-modules/<sid>    projects DELETE

Allocations:
  GET    /api/projects/<pid>/allocations              member
  GET    /api/projects/<pid>/allocations/history      member
  POST   /api/projects/<pid>/allocations              projects MANAGE
  PUT    /api/projects/<pid>/allocations/<aid>        projects MANAGE
  DELETE /api/projects/<pid>/allocations/<aid>        projects MANAGE

Privilege checks on project routes are scoped to <pid>.
"""

from flask import Blueprint, g, request

from defect_tracker.blueprints import paginate_query, query_bool
from defect_tracker.middleware.permission_required import require_privilege
from defect_tracker.middleware.project_access import require_project_access
from defect_tracker.services import allocation_service, project_service
from defect_tracker.services.authorization import authorize, get_active_project
from defect_tracker.utils.helpers import api_ok, parse_int

project_bp = Blueprint("project", __name__, url_prefix="/api/projects")


def _body():
    return request.get_json(silent=True) or {}


# ═══════════════════════════════════════════════════════════════
# Projects
# ═══════════════════════════════════════════════════════════════
@project_bp.route("", methods=["GET"])
@require_privilege("projects", "READ")
def list_projects():
    """Projects the caller owns or is allocated to; ``all=true`` needs projects MANAGE."""
    all_projects = bool(query_bool("all")) and authorize(g.jwt_user_id, "projects", "MANAGE")
    query = project_service.list_projects_query(
        g.jwt_user_id,
        search=request.args.get("search"),
        status=request.args.get("status"),
        all_projects=all_projects,
    )
    items, pagination = paginate_query(query)
    return api_ok("Projects retrieved", [p.to_dict() for p in items], pagination=pagination)


@project_bp.route("", methods=["POST"])
@require_privilege("projects", "CREATE")
def create_project():
    project = project_service.create_project(_body(), owner_id=g.jwt_user_id)
    return api_ok("Project created", project.to_dict(), status=201)


@project_bp.route("/<int:project_id>", methods=["GET"])
@require_project_access("project_id")
def get_project(project_id):
    return api_ok("Project retrieved", get_active_project(project_id).to_dict())


@project_bp.route("/<int:project_id>", methods=["PUT"])
@require_project_access("project_id")
@require_privilege("projects", "UPDATE", project_param="project_id")
def update_project(project_id):
    project = project_service.update_project(project_id, _body())
    return api_ok("Project updated", project.to_dict())


@project_bp.route("/<int:project_id>", methods=["DELETE"])
@require_project_access("project_id")
@require_privilege("projects", "DELETE", project_param="project_id")
def delete_project(project_id):
    project_service.delete_project(project_id, deleted_by=g.jwt_user_id)
    return api_ok("Project deleted")


# ═══════════════════════════════════════════════════════════════
# Modules
# ═══════════════════════════════════════════════════════════════
@project_bp.route("/<int:project_id>/modules", methods=["GET"])
@require_project_access("project_id")
def list_modules(project_id):
    with_subs = bool(query_bool("include_sub_modules"))
    modules = project_service.list_modules(project_id)
    return api_ok("Modules retrieved", [m.to_dict(include_sub_modules=with_subs) for m in modules])


@project_bp.route("/<int:project_id>/modules/<int:module_id>", methods=["GET"])
@require_project_access("project_id")
def get_module(project_id, module_id):
    module = project_service.get_module(project_id, module_id)
    return api_ok("Module retrieved", module.to_dict(include_sub_modules=True))


@project_bp.route("/<int:project_id>/modules", methods=["POST"])
@require_project_access("project_id")
@require_privilege("projects", "UPDATE", project_param="project_id")
def create_module(project_id):
    module = project_service.create_module(project_id, _body())
    return api_ok("Module created", module.to_dict(), status=201)


@project_bp.route("/<int:project_id>/modules/<int:module_id>", methods=["PUT"])
@require_project_access("project_id")
@require_privilege("projects", "UPDATE", project_param="project_id")
def update_module(project_id, module_id):
    module = project_service.update_module(project_id, module_id, _body())
    return api_ok("Module updated", module.to_dict())


@project_bp.route("/<int:project_id>/modules/<int:module_id>", methods=["DELETE"])
@require_project_access("project_id")
@require_privilege("projects", "DELETE", project_param="project_id")
def delete_module(project_id, module_id):
    project_service.delete_module(project_id, module_id)
    return api_ok("Module deleted")


# ── Sub-modules ──────────────────────────────────────────────────────────
@project_bp.route("/<int:project_id>/modules/<int:module_id>/sub-modules", methods=["GET"])
@require_project_access("project_id")
def list_sub_modules(project_id, module_id):
    subs = project_service.list_sub_modules(project_id, module_id)
    return api_ok("Sub-modules retrieved", [s.to_dict() for s in subs])


@project_bp.route("/<int:project_id>/modules/<int:module_id>/sub-modules", methods=["POST"])
@require_project_access("project_id")
@require_privilege("projects", "UPDATE", project_param="project_id")
def create_sub_module(project_id, module_id):
    sub = project_service.create_sub_module(project_id, module_id, _body())
    return api_ok("Sub-module created", sub.to_dict(), status=201)


@project_bp.route("/<int:project_id>/modules/<int:module_id>/sub-modules/<int:sub_module_id>",
                  methods=["PUT"])
@require_project_access("project_id")
@require_privilege("projects", "UPDATE", project_param="project_id")
def update_sub_module(project_id, module_id, sub_module_id):
    sub = project_service.update_sub_module(project_id, module_id, sub_module_id, _body())
    return api_ok("Sub-module updated", sub.to_dict())


@project_bp.route("/<int:project_id>/modules/<int:module_id>/sub-modules/<int:sub_module_id>",
                  methods=["DELETE"])
@require_project_access("project_id")
@require_privilege("projects", "DELETE", project_param="project_id")
def delete_sub_module(project_id, module_id, sub_module_id):
    project_service.delete_sub_module(project_id, module_id, sub_module_id)
    return api_ok("Sub-module deleted")


# ═══════════════════════════════════════════════════════════════
# Allocations
# ═══════════════════════════════════════════════════════════════
@project_bp.route("/<int:project_id>/allocations", methods=["GET"])
@require_project_access("project_id")
def list_allocations(project_id):
    include_inactive = bool(query_bool("include_inactive"))
    rows = allocation_service.list_allocations(project_id, include_inactive=include_inactive)
    return api_ok("Allocations retrieved", [a.to_dict() for a in rows])


@project_bp.route("/<int:project_id>/allocations/history", methods=["GET"])
@require_project_access("project_id")
def allocation_history(project_id):
    user_id = parse_int(request.args.get("user_id"), "user_id")
    rows = allocation_service.allocation_history(project_id, user_id=user_id)
    return api_ok("Allocation history retrieved", [h.to_dict() for h in rows])


@project_bp.route("/<int:project_id>/allocations", methods=["POST"])
@require_project_access("project_id")
@require_privilege("projects", "MANAGE", project_param="project_id")
def allocate(project_id):
    allocation = allocation_service.allocate(project_id, _body(), allocated_by=g.jwt_user_id)
    return api_ok("User allocated to project", allocation.to_dict(), status=201)


@project_bp.route("/<int:project_id>/allocations/<int:allocation_id>", methods=["PUT"])
@require_project_access("project_id")
@require_privilege("projects", "MANAGE", project_param="project_id")
def update_allocation(project_id, allocation_id):
    allocation = allocation_service.update_allocation(
        project_id, allocation_id, _body(), changed_by=g.jwt_user_id,
    )
    return api_ok("Allocation updated", allocation.to_dict())


@project_bp.route("/<int:project_id>/allocations/<int:allocation_id>", methods=["DELETE"])
@require_project_access("project_id")
@require_privilege("projects", "MANAGE", project_param="project_id")
def deallocate(project_id, allocation_id):
    allocation = allocation_service.deallocate(
        project_id, allocation_id, changed_by=g.jwt_user_id, notes=_body().get("notes"),
    )
    return api_ok("User deallocated from project", allocation.to_dict())
