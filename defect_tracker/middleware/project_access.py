"""
Project Access Middleware: verifies project membership for JWT users.

Provides the ``@require_project_access`` decorator that checks whether the
authenticated user owns, or is actively allocated to, the project being
accessed.

Usage:
    @bp.route("/projects/<int:project_id>/defects")
    @require_project_access("project_id")
    def list_defects(project_id):
        ...  # Only reachable by project members

    @bp.route("/dashboard/module")
    @require_project_access("projectId", source="args")
    def defects_by_module():
        ...

The project id comes from the route parameter named by the argument, or
from the query string when ``source="args"``.

    missing / non-integer id   → 400 ERR_VALIDATION_REQUIRED
    project absent or inactive → 404 (NotFoundError)
    not a member               → 403 ERR_NOT_PROJECT_MEMBER
    database failure           → propagates (500)
"""

import functools
import logging

from flask import g, request

from defect_tracker.services.authorization import is_project_member
from defect_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def _project_id_from_request(param_name, source, kwargs):
    if source == "args":
        raw = request.args.get(param_name)
    else:
        raw = kwargs.get(param_name)
        if raw is None:
            raw = (request.view_args or {}).get(param_name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def require_project_access(param_name: str = "project_id", source: str = "view_args"):
    """
    Decorator: require the JWT user to be a member of the project
    identified by the given route (or query) parameter.

    Args:
        param_name: Name of the parameter containing the project ID.
        source: "view_args" (route parameter) or "args" (query string).
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_id = getattr(g, "jwt_user_id", None)
            if user_id is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")

            project_id = _project_id_from_request(param_name, source, kwargs)
            if project_id is None:
                return api_error(
                    E.VALIDATION_REQUIRED, f"{param_name} is required",
                    details={param_name: "required integer"},
                )

            if not is_project_member(user_id, project_id):
                logger.warning(
                    "User %d denied access to project %d (not a member)",
                    user_id, project_id,
                )
                return api_error(
                    E.NOT_PROJECT_MEMBER, "You do not have access to this project"
                )

            g.project_id = project_id
            return f(*args, **kwargs)
        return decorated
    return decorator
