"""
Dashboard Blueprint: per-project quality metrics.

  GET /api/dashboard/dsi/<pid>                      Defect Severity Index + risk label
  GET /api/dashboard/defect_severity_summary/<pid>  high/medium/low × status counts
  GET /api/dashboard/defect-remark-ratio?projectId= comments per defect (%)
  GET /api/dashboard/defect-density/<pid>           defects per active module
  GET /api/dashboard/reopen-count_summary/<pid>     defects in a reopened status
  GET /api/dashboard/project-card-color/<pid>       card gradient from DSI
  GET /api/dashboard/defect-type/<pid>              defect count per type
  GET /api/dashboard/module?projectId=              defect count per module

All endpoints are read-only and require project membership.
"""

from flask import Blueprint, g

from defect_tracker.middleware.project_access import require_project_access
from defect_tracker.services import dashboard_metrics as metrics
from defect_tracker.utils.helpers import api_ok

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.route("/dsi/<int:project_id>", methods=["GET"])
@require_project_access("project_id")
def dsi(project_id):
    return api_ok("Defect severity index retrieved", metrics.get_dsi(project_id))


@dashboard_bp.route("/defect_severity_summary/<int:project_id>", methods=["GET"])
@require_project_access("project_id")
def severity_summary(project_id):
    return api_ok("Defect severity summary retrieved", metrics.get_severity_summary(project_id))


@dashboard_bp.route("/defect-remark-ratio", methods=["GET"])
@require_project_access("projectId", source="args")
def remark_ratio():
    return api_ok("Defect to remark ratio retrieved", metrics.get_remark_ratio(g.project_id))


@dashboard_bp.route("/defect-density/<int:project_id>", methods=["GET"])
@require_project_access("project_id")
def defect_density(project_id):
    return api_ok("Defect density retrieved", metrics.get_defect_density(project_id))


@dashboard_bp.route("/reopen-count_summary/<int:project_id>", methods=["GET"])
@require_project_access("project_id")
def reopen_count(project_id):
    return api_ok("Reopen count retrieved", metrics.get_reopen_count(project_id))


@dashboard_bp.route("/project-card-color/<int:project_id>", methods=["GET"])
@require_project_access("project_id")
def project_card_color(project_id):
    return api_ok("Project card color retrieved", metrics.get_project_card_color(project_id))


@dashboard_bp.route("/defect-type/<int:project_id>", methods=["GET"])
@require_project_access("project_id")
def defect_types(project_id):
    return api_ok("Defect type distribution retrieved", metrics.get_defect_types(project_id))


@dashboard_bp.route("/module", methods=["GET"])
@require_project_access("projectId", source="args")
def defects_by_module():
    return api_ok("Defects by module retrieved", metrics.get_defects_by_module(g.project_id))
