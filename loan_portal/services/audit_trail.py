"""
Audit Trail - append-only status history per application.

``append`` only adds and flushes, so the lifecycle service keeps control of
the transaction that also changes ``Application.status``. Existing rows are
protected by ORM guards on StatusHistoryEntry (see models.application).

Usage:
    from loan_portal.services import audit_trail

    audit_trail.append(application_id=7, from_status="pending", to_status="approved",
                       action_by=3, action_by_role="head_office_approver")
    entries = audit_trail.list_for(7)
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from loan_portal.models import db
from loan_portal.models.application import STATUS_PENDING, StatusHistoryEntry

logger = logging.getLogger(__name__)


def append(
    *,
    application_id: int,
    from_status: str | None,
    to_status: str,
    action_by: int,
    action_by_role: str,
    reason: str | None = None,
    comments: str | None = None,
) -> StatusHistoryEntry:
    """Add one history row and flush it. The caller commits or rolls back."""
    entry = StatusHistoryEntry(
        application_id=application_id,
        from_status=from_status,
        to_status=to_status,
        action_by=action_by,
        action_by_role=action_by_role,
        reason=reason,
        comments=comments,
    )
    db.session.add(entry)
    db.session.flush()
    logger.debug(
        "History appended %s->%s role=%s", from_status, to_status, action_by_role,
        extra={"application_id": application_id, "actor_id": action_by, "event_type": "history.append"},
    )
    return entry


def list_for(application_id: int, *, newest_first: bool = True) -> list[StatusHistoryEntry]:
    """Return the application's history. Newest first is the display order."""
    # id breaks created_at ties: rows written in the same clock tick stay ordered
    if newest_first:
        order = (StatusHistoryEntry.created_at.desc(), StatusHistoryEntry.id.desc())
    else:
        order = (StatusHistoryEntry.created_at.asc(), StatusHistoryEntry.id.asc())
    stmt = select(StatusHistoryEntry).where(StatusHistoryEntry.application_id == application_id).order_by(*order)
    return db.session.execute(stmt).scalars().all()


def verify_chain(application_id: int) -> bool:
    """Check that the history forms one connected path starting at (None → pending)."""
    entries = list_for(application_id, newest_first=False)
    if not entries:
        return False
    first = entries[0]
    if first.from_status is not None or first.to_status != STATUS_PENDING:
        return False
    for prev, cur in zip(entries, entries[1:]):
        if cur.from_status != prev.to_status:
            return False
    return True
