"""
Financing Application Portal
Directory Blueprint - districts, branches and products.

Reads are open to every signed-in user (the submission form needs the
product and branch pickers). Writes require the system_admin role.

Endpoints:
    GET/POST          /api/v1/districts
    PUT/DELETE        /api/v1/districts/<id>
    GET/POST          /api/v1/branches          (?district_id=&active=)
    GET/PUT/DELETE    /api/v1/branches/<id>
    GET/POST          /api/v1/products          (?active=)
    PUT/DELETE        /api/v1/products/<id>     (DELETE deactivates)
"""

import logging

from flask import Blueprint, jsonify, request

from loan_portal.blueprints import query_flag
from loan_portal.middleware.actor_context import require_actor, require_role
from loan_portal.models.auth import ROLE_ADMIN
from loan_portal.services import directory_service
from loan_portal.utils.errors import register_domain_error_handlers

logger = logging.getLogger(__name__)

directory_bp = Blueprint("directory", __name__, url_prefix="/api/v1")
register_domain_error_handlers(directory_bp)


# ═════════════════════════════════════════════════════════════════════════
# Districts
# ═════════════════════════════════════════════════════════════════════════


@directory_bp.route("/districts", methods=["GET"])
@require_actor
def list_districts():
    districts = directory_service.list_districts()
    return jsonify({"items": [d.to_dict() for d in districts], "total": len(districts)})


@directory_bp.route("/districts", methods=["POST"])
@require_role(ROLE_ADMIN)
def create_district():
    district = directory_service.create_district(request.get_json(silent=True) or {})
    return jsonify(district.to_dict()), 201


@directory_bp.route("/districts/<int:district_id>", methods=["PUT"])
@require_role(ROLE_ADMIN)
def update_district(district_id):
    district = directory_service.update_district(district_id, request.get_json(silent=True) or {})
    return jsonify(district.to_dict())


@directory_bp.route("/districts/<int:district_id>", methods=["DELETE"])
@require_role(ROLE_ADMIN)
def delete_district(district_id):
    directory_service.delete_district(district_id)
    return jsonify({"message": "District deleted"})


# ═════════════════════════════════════════════════════════════════════════
# Branches
# ═════════════════════════════════════════════════════════════════════════


@directory_bp.route("/branches", methods=["GET"])
@require_actor
def list_branches():
    district_id = request.args.get("district_id", type=int)
    branches = directory_service.list_branches(
        district_id=district_id,
        active_only=bool(query_flag("active", False)),
    )
    return jsonify({
        "items": [b.to_dict(include_district=True) for b in branches],
        "total": len(branches),
    })


@directory_bp.route("/branches/<int:branch_id>", methods=["GET"])
@require_actor
def get_branch(branch_id):
    return jsonify(directory_service.get_branch(branch_id).to_dict(include_district=True))


@directory_bp.route("/branches", methods=["POST"])
@require_role(ROLE_ADMIN)
def create_branch():
    branch = directory_service.create_branch(request.get_json(silent=True) or {})
    return jsonify(branch.to_dict(include_district=True)), 201


@directory_bp.route("/branches/<int:branch_id>", methods=["PUT"])
@require_role(ROLE_ADMIN)
def update_branch(branch_id):
    branch = directory_service.update_branch(branch_id, request.get_json(silent=True) or {})
    return jsonify(branch.to_dict(include_district=True))


@directory_bp.route("/branches/<int:branch_id>", methods=["DELETE"])
@require_role(ROLE_ADMIN)
def delete_branch(branch_id):
    directory_service.delete_branch(branch_id)
    return jsonify({"message": "Branch deleted"})


# ═════════════════════════════════════════════════════════════════════════
# Products
# ═════════════════════════════════════════════════════════════════════════


@directory_bp.route("/products", methods=["GET"])
@require_actor
def list_products():
    products = directory_service.list_products(active_only=bool(query_flag("active", False)))
    return jsonify({"items": [p.to_dict() for p in products], "total": len(products)})


@directory_bp.route("/products", methods=["POST"])
@require_role(ROLE_ADMIN)
def create_product():
    product = directory_service.create_product(request.get_json(silent=True) or {})
    return jsonify(product.to_dict()), 201


@directory_bp.route("/products/<int:product_id>", methods=["PUT"])
@require_role(ROLE_ADMIN)
def update_product(product_id):
    product = directory_service.update_product(product_id, request.get_json(silent=True) or {})
    return jsonify(product.to_dict())


@directory_bp.route("/products/<int:product_id>", methods=["DELETE"])
@require_role(ROLE_ADMIN)
def deactivate_product(product_id):
    product = directory_service.set_product_active(product_id, False)
    return jsonify(product.to_dict())
