"""Approver routing: which head-office approvers may act on an application.

Policy is a union across three independent dimensions. An approver is
eligible when at least one of their assignments matches the application's
district, branch or product. An approver matched on several dimensions is
still returned once. No match means nobody is routed the application.
"""

from __future__ import annotations

import logging

from sqlalchemy import and_, false, or_, select

from loan_portal.models import db
from loan_portal.models.application import Application
from loan_portal.models.assignment import (
    SCOPE_BRANCH,
    SCOPE_DISTRICT,
    SCOPE_PRODUCT,
    ApproverAssignment,
)
from loan_portal.models.directory import Branch

logger = logging.getLogger(__name__)


def _scope_clause(scope_type: str, scope_id: int | None):
    if scope_id is None:
        return false()
    return and_(ApproverAssignment.scope_type == scope_type, ApproverAssignment.scope_id == scope_id)


def resolve_approvers(
    district_id: int | None,
    branch_id: int | None,
    product_id: int | None,
) -> frozenset[int]:
    """Return the ids of approvers eligible for the given routing triple.

    Pure read of the assignment table: the same inputs give the same set
    until an administrator changes the assignments.
    """
    stmt = (
        select(ApproverAssignment.approver_id)
        .where(or_(
            _scope_clause(SCOPE_DISTRICT, district_id),
            _scope_clause(SCOPE_BRANCH, branch_id),
            _scope_clause(SCOPE_PRODUCT, product_id),
        ))
        .distinct()
    )
    return frozenset(db.session.execute(stmt).scalars().all())


def resolve_for_application(application: Application) -> frozenset[int]:
    """Resolve approvers for a stored application; the district comes from its branch."""
    branch = application.branch or db.session.get(Branch, application.branch_id)
    district_id = branch.district_id if branch else None
    return resolve_approvers(district_id, application.branch_id, application.product_id)


def approver_filter(approver_id: int):
    """SQL predicate selecting the applications routed to *approver_id*.

    Meant for a query over Application joined to Branch.
    """
    def _ids(scope_type):
        return select(ApproverAssignment.scope_id).where(
            ApproverAssignment.approver_id == approver_id,
            ApproverAssignment.scope_type == scope_type,
        )

    return or_(
        Branch.district_id.in_(_ids(SCOPE_DISTRICT)),
        Application.branch_id.in_(_ids(SCOPE_BRANCH)),
        Application.product_id.in_(_ids(SCOPE_PRODUCT)),
    )
