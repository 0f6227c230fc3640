"""
Financing Application Portal
Admin Blueprint - users and approver assignments.

All endpoints require the system_admin role.

Endpoints:
    GET/POST        /api/v1/admin/users                 (?role=&active=)
    GET/PUT         /api/v1/admin/users/<id>
    POST            /api/v1/admin/users/<id>/deactivate
    POST            /api/v1/admin/users/<id>/activate
    GET/POST        /api/v1/admin/assignments           (?approver_id=)
    GET             /api/v1/admin/assignments/grouped
    DELETE          /api/v1/admin/assignments/<id>
"""

import logging

from flask import Blueprint, jsonify, request

from loan_portal.blueprints import paginate_list, query_flag
from loan_portal.middleware.actor_context import require_role
from loan_portal.models.auth import ROLE_ADMIN
from loan_portal.services import assignment_service, user_service
from loan_portal.utils.errors import E, api_error, register_domain_error_handlers

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")
register_domain_error_handlers(admin_bp)


# ═════════════════════════════════════════════════════════════════════════
# Users
# ═════════════════════════════════════════════════════════════════════════


@admin_bp.route("/users", methods=["GET"])
@require_role(ROLE_ADMIN)
def list_users():
    users = user_service.list_users(
        role=request.args.get("role") or None,
        is_active=query_flag("active"),
    )
    page, total = paginate_list(users)
    return jsonify({"items": [u.to_dict(include_branch=True) for u in page], "total": total})


@admin_bp.route("/users", methods=["POST"])
@require_role(ROLE_ADMIN)
def create_user():
    user = user_service.create_user(request.get_json(silent=True) or {})
    return jsonify(user.to_dict(include_branch=True)), 201


@admin_bp.route("/users/<int:user_id>", methods=["GET"])
@require_role(ROLE_ADMIN)
def get_user(user_id):
    return jsonify(user_service.get_user(user_id).to_dict(include_branch=True))


@admin_bp.route("/users/<int:user_id>", methods=["PUT"])
@require_role(ROLE_ADMIN)
def update_user(user_id):
    user = user_service.update_user(user_id, request.get_json(silent=True) or {})
    return jsonify(user.to_dict(include_branch=True))


@admin_bp.route("/users/<int:user_id>/deactivate", methods=["POST"])
@require_role(ROLE_ADMIN)
def deactivate_user(user_id):
    return jsonify(user_service.set_user_active(user_id, False).to_dict())


@admin_bp.route("/users/<int:user_id>/activate", methods=["POST"])
@require_role(ROLE_ADMIN)
def activate_user(user_id):
    return jsonify(user_service.set_user_active(user_id, True).to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Approver assignments
# ═════════════════════════════════════════════════════════════════════════


@admin_bp.route("/assignments", methods=["GET"])
@require_role(ROLE_ADMIN)
def list_assignments():
    rows = assignment_service.list_assignments(request.args.get("approver_id", type=int))
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)})


@admin_bp.route("/assignments/grouped", methods=["GET"])
@require_role(ROLE_ADMIN)
def grouped_assignments():
    return jsonify({"items": assignment_service.assignments_by_approver()})


@admin_bp.route("/assignments", methods=["POST"])
@require_role(ROLE_ADMIN)
def create_assignments():
    """Body: {approver_id, district_ids?, branch_ids?, product_ids?}"""
    data = request.get_json(silent=True) or {}
    approver_id = data.get("approver_id")
    if not approver_id:
        return api_error(E.VALIDATION_REQUIRED, "approver_id is required")
    created = assignment_service.create_assignments(
        approver_id,
        district_ids=data.get("district_ids") or (),
        branch_ids=data.get("branch_ids") or (),
        product_ids=data.get("product_ids") or (),
    )
    return jsonify({"items": [r.to_dict() for r in created], "created": len(created)}), 201


@admin_bp.route("/assignments/<int:assignment_id>", methods=["DELETE"])
@require_role(ROLE_ADMIN)
def delete_assignment(assignment_id):
    assignment_service.delete_assignment(assignment_id)
    return jsonify({"message": "Assignment deleted"})
