"""
Financing Application Portal
Applications Blueprint.

Endpoints:
    POST /api/v1/applications                     - branch user submits
    GET  /api/v1/applications                     - role-scoped list (status, product_id, search)
    GET  /api/v1/applications/<id>                - detail (with refs)
    POST /api/v1/applications/<id>/actions        - approve | reject | return
    GET  /api/v1/applications/<id>/history        - status history, newest first
    GET  /api/v1/applications/<id>/approvers      - approvers this application routes to
    GET  /api/v1/dashboard                        - per-status counts for the actor
"""

import logging

from flask import Blueprint, g, jsonify, request

from loan_portal.blueprints import paginate_list
from loan_portal.core.exceptions import ValidationError
from loan_portal.middleware.actor_context import require_actor, require_role
from loan_portal.models.auth import ROLE_ADMIN, ROLE_APPROVER, ROLE_BRANCH_USER
from loan_portal.services import application_lifecycle as lifecycle
from loan_portal.services import user_service
from loan_portal.services.approver_resolver import resolve_for_application
from loan_portal.utils.errors import E, api_error, register_domain_error_handlers

logger = logging.getLogger(__name__)

applications_bp = Blueprint("applications", __name__, url_prefix="/api/v1")
register_domain_error_handlers(applications_bp)


def _int_arg(name):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _json_id(data, name, default=None):
    """Integer id from a JSON body; "3" is accepted, "abc" or 2.5 is a 422."""
    raw = data.get(name)
    if raw in (None, ""):
        return default
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise ValidationError(f"{name} must be an integer id", details={name: "must be an integer"})
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be an integer id", details={name: "must be an integer"}) from exc


@applications_bp.route("/applications", methods=["POST"])
@require_role(ROLE_BRANCH_USER)
def submit_application():
    data = request.get_json(silent=True) or {}
    application = lifecycle.submit(
        g.actor,
        product_id=_json_id(data, "product_id"),
        branch_id=_json_id(data, "branch_id", g.actor.branch_id),
        customer_name=data.get("customer_name"),
        phone_number=data.get("phone_number"),
        customer_id=data.get("customer_id"),
        remarks=data.get("remarks"),
        application_amount=data.get("application_amount"),
        profit_margin=data.get("profit_margin"),
        tenure_months=data.get("tenure_months"),
        monthly_installment=data.get("monthly_installment"),
    )
    return jsonify(application.to_dict(include_refs=True)), 201


@applications_bp.route("/applications", methods=["GET"])
@require_actor
def list_applications():
    items = lifecycle.list_applications(
        g.actor,
        status=request.args.get("status") or None,
        product_id=_int_arg("product_id"),
        search=request.args.get("search"),
    )
    page, total = paginate_list(items)
    return jsonify({
        "items": [a.to_dict(include_refs=True) for a in page],
        "total": total,
    })


@applications_bp.route("/applications/<int:application_id>", methods=["GET"])
@require_actor
def get_application(application_id):
    application = lifecycle.get_application(g.actor, application_id)
    return jsonify(application.to_dict(include_refs=True))


@applications_bp.route("/applications/<int:application_id>/actions", methods=["POST"])
@require_role(ROLE_APPROVER)
def act_on_application(application_id):
    data = request.get_json(silent=True) or {}
    decision = (data.get("decision") or "").strip()
    if not decision:
        return api_error(E.VALIDATION_REQUIRED, "decision is required")
    application = lifecycle.act(
        g.actor,
        application_id,
        decision,
        reason=data.get("reason"),
        comments=data.get("comments"),
    )
    return jsonify(application.to_dict(include_refs=True))


@applications_bp.route("/applications/<int:application_id>/history", methods=["GET"])
@require_actor
def application_history(application_id):
    entries = lifecycle.list_history(application_id, actor=g.actor)
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)})


@applications_bp.route("/applications/<int:application_id>/approvers", methods=["GET"])
@require_role(ROLE_APPROVER, ROLE_ADMIN)
def application_approvers(application_id):
    application = lifecycle.get_application(g.actor, application_id)
    approvers = [user_service.get_user(uid) for uid in sorted(resolve_for_application(application))]
    return jsonify({
        "items": [{"id": u.id, "full_name": u.full_name, "email": u.email} for u in approvers],
        "total": len(approvers),
    })


@applications_bp.route("/dashboard", methods=["GET"])
@require_actor
def dashboard():
    return jsonify(lifecycle.dashboard_stats(g.actor))
