"""
Approver assignment administration.

Mirrors the admin "approver settings" screen: pick one approver, tick any
number of districts, branches and products, and one assignment row is
created per ticked scope. Pairs that already exist are skipped.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import select

from loan_portal.core.exceptions import NotFoundError, ValidationError
from loan_portal.models import db
from loan_portal.models.assignment import AssignmentScope, ApproverAssignment
from loan_portal.models.auth import ROLE_APPROVER
from loan_portal.services import directory_service, user_service

logger = logging.getLogger(__name__)

_SCOPE_LOOKUPS = {
    "district": directory_service.get_district,
    "branch": directory_service.get_branch,
    "product": directory_service.get_product,
}


def _require_approver(approver_id: int):
    approver = user_service.get_user(approver_id)
    if approver.role != ROLE_APPROVER:
        raise ValidationError(
            "Assignments can only target head office approvers.",
            details={"approver_id": approver.role},
        )
    if not approver.is_active:
        raise ValidationError("Approver is inactive.", details={"approver_id": "inactive"})
    return approver


def create_assignments(
    approver_id: int,
    district_ids=(),
    branch_ids=(),
    product_ids=(),
) -> list[ApproverAssignment]:
    """Create one assignment per requested scope.

    Returns:
        The newly created rows (existing pairs are not repeated).

    Raises:
        ValidationError: no scopes given, or approver is not an active approver.
        NotFoundError:   approver or a referenced scope does not exist.
    """
    scopes = (
        [AssignmentScope.district(i) for i in district_ids or ()]
        + [AssignmentScope.branch(i) for i in branch_ids or ()]
        + [AssignmentScope.product(i) for i in product_ids or ()]
    )
    if not scopes:
        raise ValidationError("Select at least one district, branch or product.")

    _require_approver(approver_id)

    existing = {
        a.scope for a in db.session.execute(
            select(ApproverAssignment).where(ApproverAssignment.approver_id == approver_id)
        ).scalars()
    }

    requested = list(dict.fromkeys(scopes))
    for scope in requested:
        _SCOPE_LOOKUPS[scope.kind](scope.id)

    created = []
    for scope in requested:
        if scope in existing:
            logger.debug("Assignment exists approver_id=%s %s=%s", approver_id, scope.kind, scope.id)
            continue
        row = ApproverAssignment(approver_id=approver_id)
        row.scope = scope
        db.session.add(row)
        created.append(row)

    db.session.commit()
    logger.info("Assignments created approver_id=%s count=%d", approver_id, len(created))
    return created


def delete_assignment(assignment_id: int) -> None:
    row = db.session.get(ApproverAssignment, assignment_id)
    if row is None:
        raise NotFoundError(resource="ApproverAssignment", resource_id=assignment_id)
    db.session.delete(row)
    db.session.commit()
    logger.info("Assignment deleted id=%s", assignment_id)


def list_assignments(approver_id: int | None = None) -> list[ApproverAssignment]:
    q = select(ApproverAssignment)
    if approver_id is not None:
        q = q.where(ApproverAssignment.approver_id == approver_id)
    return db.session.execute(q.order_by(ApproverAssignment.created_at.desc())).scalars().all()


def assignments_by_approver() -> list[dict]:
    """Group assignments per approver, as shown on the settings screen."""
    grouped = defaultdict(lambda: {"districts": [], "branches": [], "products": []})
    approvers = {}
    for row in list_assignments():
        approvers[row.approver_id] = row.approver
        bucket = {"district": "districts", "branch": "branches", "product": "products"}[row.scope_type]
        grouped[row.approver_id][bucket].append({"assignment_id": row.id, "id": row.scope_id})

    return [
        {
            "approver": {
                "id": approver.id,
                "full_name": approver.full_name,
                "email": approver.email,
            },
            **grouped[approver_id],
        }
        for approver_id, approver in sorted(approvers.items())
    ]
