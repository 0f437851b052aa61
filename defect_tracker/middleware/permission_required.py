"""
Permission Decorators: JWT-aware privilege checks for route protection.

Wraps ``authorization.authorize`` so a route declares the (module, action)
it needs:

    @bp.route("/users", methods=["POST"])
    @require_privilege("users", "CREATE")
    def create_user():
        ...

    @bp.route("/projects/<int:project_id>", methods=["PUT"])
    @require_project_access("project_id")
    @require_privilege("projects", "UPDATE", project_param="project_id")
    def update_project(project_id):
        ...

With ``project_param`` the check is scoped to that project, so
project-specific and role-derived grants take part. A denial returns 403
``ERR_FORBIDDEN`` and is logged; a database failure propagates (500).
"""

import functools
import logging

from flask import g, request

from defect_tracker.middleware.logging_config import log_context
from defect_tracker.services.authorization import explain
from defect_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_privilege(module: str, action: str, project_param: str | None = None):
    """
    Decorator: require the JWT user to hold ``action`` on ``module``.

    Args:
        module: Privilege module, e.g. "defects"
        action: CREATE / READ / UPDATE / DELETE / MANAGE
        project_param: Optional route parameter naming the project scope.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_id = getattr(g, "jwt_user_id", None)
            if user_id is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")

            project_id = None
            if project_param:
                project_id = kwargs.get(project_param)
                if project_id is None:
                    project_id = (request.view_args or {}).get(project_param)

            result = explain(user_id, module, action, project_id)
            if not result["allowed"]:
                logger.warning(
                    "User %d denied: missing privilege %s.%s on %s",
                    user_id, module, action, f.__name__,
                    extra=log_context(user_id=user_id, project_id=project_id,
                                      module=module, action=action),
                )
                return api_error(
                    E.FORBIDDEN, "Insufficient privileges",
                    details={"module": module, "action": action.upper()},
                )

            logger.debug("User %d allowed %s.%s via %s",
                         user_id, module, action, result["decision"])
            return f(*args, **kwargs)
        return decorated
    return decorator
