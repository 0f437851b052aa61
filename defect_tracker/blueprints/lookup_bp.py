"""
Lookup Blueprint: reference data for forms and filters.

  GET    /api/<kind>            any authenticated user
  GET    /api/<kind>/<id>       any authenticated user
  POST   /api/<kind>            <module> CREATE
  PUT    /api/<kind>/<id>       <module> UPDATE
  DELETE /api/<kind>/<id>       <module> DELETE (deactivates)

  kind: severities | priorities | defect-statuses | defect-types   (module: defects)
        release-types                                             (module: releases)
        roles | privileges | designations                         (module: users)

List query: ``is_active`` (default true; ``all`` returns every row), ``search``.
"""

from flask import Blueprint, g, request

from defect_tracker.blueprints import query_bool
from defect_tracker.middleware.permission_required import require_privilege
from defect_tracker.services import lookup_service
from defect_tracker.services.lookup_service import LOOKUPS
from defect_tracker.utils.helpers import api_ok

lookup_bp = Blueprint("lookup", __name__, url_prefix="/api")


def _label(kind):
    return kind.replace("-", " ").capitalize()


def _body():
    return request.get_json(silent=True) or {}


def _lookup_views(kind, module):
    def list_rows():
        raw = (request.args.get("is_active") or "").strip().lower()
        is_active = None if raw == "all" else (query_bool("is_active") if raw else True)
        rows = lookup_service.list_lookup(kind, is_active=is_active, search=request.args.get("search"))
        return api_ok(f"{_label(kind)} retrieved", rows)

    def get_row(row_id):
        return api_ok(f"{_label(kind)} entry retrieved", lookup_service.get_lookup(kind, row_id).to_dict())

    @require_privilege(module, "CREATE")
    def create_row():
        row = lookup_service.create_lookup(kind, _body(), created_by=g.jwt_user_id)
        return api_ok(f"{_label(kind)} entry created", row.to_dict(), status=201)

    @require_privilege(module, "UPDATE")
    def update_row(row_id):
        row = lookup_service.update_lookup(kind, row_id, _body(), updated_by=g.jwt_user_id)
        return api_ok(f"{_label(kind)} entry updated", row.to_dict())

    @require_privilege(module, "DELETE")
    def deactivate_row(row_id):
        row = lookup_service.deactivate_lookup(kind, row_id, deleted_by=g.jwt_user_id)
        return api_ok(f"{_label(kind)} entry deactivated", row.to_dict())

    return list_rows, get_row, create_row, update_row, deactivate_row


for _kind, _lookup in LOOKUPS.items():
    _endpoint = _kind.replace("-", "_")
    _list, _get, _create, _update, _deactivate = _lookup_views(_kind, _lookup.privilege_module)
    lookup_bp.add_url_rule(f"/{_kind}", f"list_{_endpoint}", _list, methods=["GET"])
    lookup_bp.add_url_rule(f"/{_kind}", f"create_{_endpoint}", _create, methods=["POST"])
    lookup_bp.add_url_rule(f"/{_kind}/<int:row_id>", f"get_{_endpoint}", _get, methods=["GET"])
    lookup_bp.add_url_rule(f"/{_kind}/<int:row_id>", f"update_{_endpoint}", _update, methods=["PUT"])
    lookup_bp.add_url_rule(f"/{_kind}/<int:row_id>", f"deactivate_{_endpoint}", _deactivate,
                           methods=["DELETE"])
