"""
Financing Application Portal
Approver routing model.

An ApproverAssignment binds one approver to exactly one routing dimension:
a district, a branch or a product. The dimension is stored as a tagged
variant ``(scope_type, scope_id)`` instead of three nullable foreign keys,
so "exactly one dimension is set" holds by construction.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from loan_portal.models import db

# ── Constants ────────────────────────────────────────────────────────────────

SCOPE_DISTRICT = "district"
SCOPE_BRANCH = "branch"
SCOPE_PRODUCT = "product"

SCOPE_TYPES = (SCOPE_DISTRICT, SCOPE_BRANCH, SCOPE_PRODUCT)


@dataclass(frozen=True)
class AssignmentScope:
    """Routing dimension: ``District(id) | Branch(id) | Product(id)``."""

    kind: str
    id: int

    def __post_init__(self):
        if self.kind not in SCOPE_TYPES:
            raise ValueError(f"Unknown assignment scope: {self.kind!r}")

    @classmethod
    def district(cls, district_id: int) -> "AssignmentScope":
        return cls(SCOPE_DISTRICT, district_id)

    @classmethod
    def branch(cls, branch_id: int) -> "AssignmentScope":
        return cls(SCOPE_BRANCH, branch_id)

    @classmethod
    def product(cls, product_id: int) -> "AssignmentScope":
        return cls(SCOPE_PRODUCT, product_id)


class ApproverAssignment(db.Model):
    """One routing rule: *approver* is eligible for applications matching *scope*."""

    __tablename__ = "approver_assignments"
    __table_args__ = (
        db.UniqueConstraint("approver_id", "scope_type", "scope_id", name="uq_assignment_approver_scope"),
        db.Index("idx_assignment_scope", "scope_type", "scope_id"),
        db.CheckConstraint(
            "scope_type IN ('district', 'branch', 'product')", name="ck_assignment_scope_type",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    approver_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    scope_type = db.Column(db.String(20), nullable=False, comment="district | branch | product")
    scope_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    approver = db.relationship("User")

    @property
    def scope(self) -> AssignmentScope:
        return AssignmentScope(self.scope_type, self.scope_id)

    @scope.setter
    def scope(self, value: AssignmentScope):
        self.scope_type = value.kind
        self.scope_id = value.id

    def to_dict(self):
        return {
            "id": self.id,
            "approver_id": self.approver_id,
            "scope_type": self.scope_type,
            "scope_id": self.scope_id,
            # Legacy column view used by the admin screen
            "district_id": self.scope_id if self.scope_type == SCOPE_DISTRICT else None,
            "branch_id": self.scope_id if self.scope_type == SCOPE_BRANCH else None,
            "product_id": self.scope_id if self.scope_type == SCOPE_PRODUCT else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ApproverAssignment {self.id}: user={self.approver_id} {self.scope_type}={self.scope_id}>"
