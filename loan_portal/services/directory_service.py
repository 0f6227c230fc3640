"""
Directory service - districts, branches and products.

Read helpers (get_branch, get_product, get_district_for_branch) are the
lookups the lifecycle engine depends on. The remaining functions back the
admin screens.

Rules:
  - db.session.commit() happens only in the write functions of this file.
  - Unique-name violations raise ConflictError before touching the DB.
  - A branch is never deleted while any user or application references it.
    A district is never deleted while it has branches. A foreign-key refusal
    at commit is rolled back and raised as ConflictError.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from loan_portal.core.exceptions import ConflictError, NotFoundError, ValidationError
from loan_portal.models import db
from loan_portal.models.application import OPEN_STATUSES, Application
from loan_portal.models.assignment import (
    SCOPE_BRANCH,
    SCOPE_DISTRICT,
    ApproverAssignment,
)
from loan_portal.models.auth import User
from loan_portal.models.directory import Branch, District, Product

logger = logging.getLogger(__name__)


def _clean(value) -> str:
    return (value or "").strip()


def _optional(value) -> str | None:
    return _clean(value) or None


def _require_name(data: dict, field: str = "name") -> str:
    name = _clean(data.get(field))
    if not name:
        raise ValidationError(f"{field} is required.", details={field: "required"})
    return name


# ── Lookups used by the lifecycle engine ─────────────────────────────────────


def get_district(district_id: int) -> District:
    district = db.session.get(District, district_id)
    if district is None:
        raise NotFoundError(resource="District", resource_id=district_id)
    return district


def get_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError(resource="Branch", resource_id=branch_id)
    return branch


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(resource="Product", resource_id=product_id)
    return product


def get_district_for_branch(branch_id: int) -> District:
    """Return the District a branch belongs to."""
    return get_branch(branch_id).district


# ═════════════════════════════════════════════════════════════════════════
# Districts
# ═════════════════════════════════════════════════════════════════════════


def list_districts() -> list[District]:
    return db.session.execute(select(District).order_by(District.name)).scalars().all()


def _check_district_unique(name: str, code: str | None, exclude_id: int | None = None) -> None:
    q = select(District).where(func.lower(District.name) == name.lower())
    if exclude_id is not None:
        q = q.where(District.id != exclude_id)
    if db.session.execute(q).first():
        raise ConflictError(resource="District", field="name", value=name)
    if code:
        q = select(District).where(District.code == code)
        if exclude_id is not None:
            q = q.where(District.id != exclude_id)
        if db.session.execute(q).first():
            raise ConflictError(resource="District", field="code", value=code)


def create_district(data: dict) -> District:
    """Create a district. ``code`` is optional but unique when given."""
    name = _require_name(data)
    code = _optional(data.get("code"))
    _check_district_unique(name, code)

    district = District(name=name, code=code)
    db.session.add(district)
    db.session.commit()
    logger.info("District created id=%s name=%s", district.id, name)
    return district


def update_district(district_id: int, data: dict) -> District:
    district = get_district(district_id)
    name = _require_name(data) if "name" in data else district.name
    code = _optional(data.get("code")) if "code" in data else district.code
    _check_district_unique(name, code, exclude_id=district.id)

    district.name = name
    district.code = code
    db.session.commit()
    return district


def _count(column, *criteria) -> int:
    return db.session.execute(select(func.count(column)).where(*criteria)).scalar() or 0


def _commit_delete(row, resource: str, name: str) -> None:
    """Delete *row* and commit; a foreign-key refusal becomes ConflictError."""
    db.session.delete(row)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("%s delete refused by the database name=%s", resource, name)
        raise ConflictError(
            resource=resource,
            field="references",
            value=name,
            message=f"{resource} '{name}' is still referenced and cannot be deleted.",
        ) from exc


def delete_district(district_id: int) -> None:
    """Delete a district with no branches, plus assignments routed to it."""
    district = get_district(district_id)
    branch_count = district.branches.count()
    if branch_count:
        raise ValidationError(
            f"District '{district.name}' still has {branch_count} branch(es).",
            details={"branches": branch_count},
        )
    ApproverAssignment.query.filter_by(scope_type=SCOPE_DISTRICT, scope_id=district.id).delete()
    _commit_delete(district, "District", district.name)
    logger.info("District deleted id=%s", district_id)


# ═════════════════════════════════════════════════════════════════════════
# Branches
# ═════════════════════════════════════════════════════════════════════════


def list_branches(district_id: int | None = None, active_only: bool = False) -> list[Branch]:
    q = select(Branch)
    if district_id is not None:
        q = q.where(Branch.district_id == district_id)
    if active_only:
        q = q.where(Branch.is_active.is_(True))
    return db.session.execute(q.order_by(Branch.name)).scalars().all()


def _check_branch_unique(district_id: int, name: str, exclude_id: int | None = None) -> None:
    q = select(Branch).where(
        Branch.district_id == district_id,
        func.lower(Branch.name) == name.lower(),
    )
    if exclude_id is not None:
        q = q.where(Branch.id != exclude_id)
    if db.session.execute(q).first():
        raise ConflictError(resource="Branch", field="name", value=name)


def create_branch(data: dict) -> Branch:
    """Create a branch under an existing district."""
    name = _require_name(data)
    district_id = data.get("district_id")
    if not district_id:
        raise ValidationError("district_id is required.", details={"district_id": "required"})
    get_district(district_id)
    _check_branch_unique(district_id, name)

    branch = Branch(
        district_id=district_id,
        name=name,
        code=_optional(data.get("code")),
        address=_optional(data.get("address")),
        phone=_optional(data.get("phone")),
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(branch)
    db.session.commit()
    logger.info("Branch created id=%s district_id=%s name=%s", branch.id, district_id, name)
    return branch


def update_branch(branch_id: int, data: dict) -> Branch:
    branch = get_branch(branch_id)
    district_id = data.get("district_id") or branch.district_id
    if district_id != branch.district_id:
        get_district(district_id)
    name = _require_name(data) if "name" in data else branch.name
    _check_branch_unique(district_id, name, exclude_id=branch.id)

    branch.district_id = district_id
    branch.name = name
    for field in ("code", "address", "phone"):
        if field in data:
            setattr(branch, field, _optional(data.get(field)))
    if "is_active" in data:
        branch.is_active = bool(data["is_active"])
    db.session.commit()
    return branch


def delete_branch(branch_id: int) -> None:
    """Delete a branch that no user or application references.

    Active users and open applications are refused with ValidationError.
    Inactive users and closed applications keep the branch as history, so
    that case is a ConflictError and the branch should be deactivated
    (is_active=False) instead.
    """
    branch = get_branch(branch_id)

    is_open = Application.status.in_(OPEN_STATUSES)
    active_users = _count(User.id, User.branch_id == branch.id, User.is_active.is_(True))
    open_apps = _count(Application.id, Application.branch_id == branch.id, is_open)
    if active_users or open_apps:
        raise ValidationError(
            f"Branch '{branch.name}' is still in use.",
            details={"active_users": active_users, "open_applications": open_apps},
        )
    inactive_users = _count(User.id, User.branch_id == branch.id, User.is_active.is_(False))
    closed_apps = _count(Application.id, Application.branch_id == branch.id, ~is_open)
    if inactive_users or closed_apps:
        raise ConflictError(
            resource="Branch",
            field="references",
            value=branch.name,
            message=(
                f"Branch '{branch.name}' is referenced by {inactive_users} inactive user(s) "
                f"and {closed_apps} closed application(s). Deactivate it instead."
            ),
        )

    ApproverAssignment.query.filter_by(scope_type=SCOPE_BRANCH, scope_id=branch.id).delete()
    _commit_delete(branch, "Branch", branch.name)
    logger.info("Branch deleted id=%s", branch_id)


# ═════════════════════════════════════════════════════════════════════════
# Products
# ═════════════════════════════════════════════════════════════════════════


def list_products(active_only: bool = False) -> list[Product]:
    q = select(Product)
    if active_only:
        q = q.where(Product.is_active.is_(True))
    return db.session.execute(q.order_by(Product.name)).scalars().all()


def _check_product_unique(name: str, exclude_id: int | None = None) -> None:
    q = select(Product).where(func.lower(Product.name) == name.lower())
    if exclude_id is not None:
        q = q.where(Product.id != exclude_id)
    if db.session.execute(q).first():
        raise ConflictError(resource="Product", field="name", value=name)


def create_product(data: dict) -> Product:
    name = _require_name(data)
    _check_product_unique(name)

    product = Product(
        name=name,
        description=_optional(data.get("description")),
        product_code=_optional(data.get("product_code")),
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(product)
    db.session.commit()
    logger.info("Product created id=%s name=%s", product.id, name)
    return product


def update_product(product_id: int, data: dict) -> Product:
    product = get_product(product_id)
    if "name" in data:
        name = _require_name(data)
        _check_product_unique(name, exclude_id=product.id)
        product.name = name
    for field in ("description", "product_code"):
        if field in data:
            setattr(product, field, _optional(data.get(field)))
    if "is_active" in data:
        product.is_active = bool(data["is_active"])
    db.session.commit()
    return product


def set_product_active(product_id: int, is_active: bool) -> Product:
    """Soft-delete or restore a product."""
    product = get_product(product_id)
    product.is_active = bool(is_active)
    db.session.commit()
    logger.info("Product %s id=%s", "activated" if is_active else "deactivated", product_id)
    return product
