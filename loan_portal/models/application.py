"""
Financing Application Portal
Application domain models.

Models:
    - Application: a customer's financing application and its current status
    - StatusHistoryEntry: append-only audit row, one per status transition

Lifecycle:
    (submit) → pending → approved | rejected | returned
    approved and rejected are terminal; returned is non-terminal.
"""

from datetime import datetime, timezone

from sqlalchemy import event as _sa_event

from loan_portal.core.exceptions import StorageError
from loan_portal.models import db

# ── Constants ────────────────────────────────────────────────────────────────

STATUS_DRAFT = "draft"
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_RETURNED = "returned"
STATUS_REJECTED = "rejected"

APPLICATION_STATUSES = (
    STATUS_DRAFT, STATUS_PENDING, STATUS_APPROVED, STATUS_RETURNED, STATUS_REJECTED,
)
TERMINAL_STATUSES = frozenset({STATUS_APPROVED, STATUS_REJECTED})
OPEN_STATUSES = frozenset(APPLICATION_STATUSES) - TERMINAL_STATUSES

# Decision → rule. "notify_type" is the notification type sent to the submitter.
APPLICATION_TRANSITIONS = {
    "approve": {
        "from": [STATUS_PENDING], "to": STATUS_APPROVED,
        "reason_required": False, "notify_type": "status_changed",
    },
    "reject": {
        "from": [STATUS_PENDING], "to": STATUS_REJECTED,
        "reason_required": True, "notify_type": "status_changed",
    },
    "return": {
        "from": [STATUS_PENDING], "to": STATUS_RETURNED,
        "reason_required": True, "notify_type": "returned",
    },
}

DECISIONS = tuple(APPLICATION_TRANSITIONS)


def _utcnow():
    return datetime.now(timezone.utc)


def _num(value):
    return float(value) if value is not None else None


class Application(db.Model):
    """
    Financing application submitted by a branch user.

    ``status`` must always equal the ``to_status`` of the newest
    StatusHistoryEntry; the lifecycle service writes both in one transaction.
    """

    __tablename__ = "applications"
    __table_args__ = (
        db.Index("idx_application_status", "status"),
        db.Index("idx_application_submitted_by", "submitted_by"),
        db.Index("idx_application_branch_product", "branch_id", "product_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_number = db.Column(db.String(30), nullable=False, unique=True, comment="APP-YYYYMMDD-NNNN")

    # Customer
    customer_name = db.Column(db.String(200), nullable=False)
    customer_id = db.Column(db.String(100), nullable=True, comment="National ID / CIF, optional")
    phone_number = db.Column(db.String(50), nullable=False)

    # Financing terms
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    application_amount = db.Column(db.Numeric(14, 2), nullable=True)
    profit_margin = db.Column(db.Numeric(6, 3), nullable=True, comment="Percent")
    tenure_months = db.Column(db.Integer, nullable=True)
    monthly_installment = db.Column(db.Numeric(14, 2), nullable=True)
    remarks = db.Column(db.Text, nullable=True)

    # Workflow
    branch_id = db.Column(
        db.Integer, db.ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    submitted_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False,
    )
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    product = db.relationship("Product")
    branch = db.relationship("Branch")
    submitter = db.relationship("User", foreign_keys=[submitted_by])
    history = db.relationship(
        "StatusHistoryEntry", back_populates="application", lazy="dynamic",
        order_by="StatusHistoryEntry.id",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_refs=False):
        d = {
            "id": self.id,
            "application_number": self.application_number,
            "customer_name": self.customer_name,
            "customer_id": self.customer_id,
            "phone_number": self.phone_number,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "status": self.status,
            "remarks": self.remarks,
            "application_amount": _num(self.application_amount),
            "profit_margin": _num(self.profit_margin),
            "tenure_months": self.tenure_months,
            "monthly_installment": _num(self.monthly_installment),
            "submitted_by": self.submitted_by,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_refs:
            d["product"] = {"id": self.product.id, "name": self.product.name} if self.product else None
            d["branch"] = {"id": self.branch.id, "name": self.branch.name} if self.branch else None
        return d

    def __repr__(self):
        return f"<Application {self.id}: {self.application_number} [{self.status}]>"


class StatusHistoryEntry(db.Model):
    """
    Immutable audit row for one status transition.

    ``action_by_role`` is a snapshot of the actor's role when the action was
    taken and is never recomputed. ``from_status`` is NULL only for the
    creation entry.
    """

    __tablename__ = "application_status_history"
    __table_args__ = (
        db.Index("idx_history_application", "application_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id", ondelete="RESTRICT"), nullable=False,
    )
    from_status = db.Column(db.String(20), nullable=True)
    to_status = db.Column(db.String(20), nullable=False)
    action_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    action_by_role = db.Column(db.String(30), nullable=False)
    reason = db.Column(db.Text, nullable=True, comment="Required for reject / return")
    comments = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    application = db.relationship("Application", back_populates="history")
    actor = db.relationship("User", foreign_keys=[action_by])

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "action_by": self.action_by,
            "action_by_name": self.actor.full_name if self.actor else None,
            "action_by_role": self.action_by_role,
            "reason": self.reason,
            "comments": self.comments,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<StatusHistoryEntry {self.id}: app={self.application_id} {self.from_status}→{self.to_status}>"


# ── Append-only guard ────────────────────────────────────────────────────────

@_sa_event.listens_for(StatusHistoryEntry, "before_update")
def _refuse_history_update(mapper, connection, target):
    raise StorageError(f"Status history entry {target.id} is append-only and cannot be updated")


@_sa_event.listens_for(StatusHistoryEntry, "before_delete")
def _refuse_history_delete(mapper, connection, target):
    raise StorageError(f"Status history entry {target.id} is append-only and cannot be deleted")
