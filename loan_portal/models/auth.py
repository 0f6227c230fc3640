"""
Auth Models - portal principals and the role capability matrix.

Authentication itself (passwords, sessions, sign-in) lives outside this
package. A User row is the principal the identity provider resolves a
request to; services receive it as an ``Actor`` snapshot.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from loan_portal.models import db


# ── Roles ────────────────────────────────────────────────────────────────────

ROLE_BRANCH_USER = "branch_user"
ROLE_APPROVER = "head_office_approver"
ROLE_ADMIN = "system_admin"

ROLES = frozenset({ROLE_BRANCH_USER, ROLE_APPROVER, ROLE_ADMIN})

ROLE_PERMISSIONS = {
    ROLE_BRANCH_USER: {
        "can_submit_applications": True,
        "can_view_own_applications": True,
        "can_view_all_applications": False,
        "can_approve_applications": False,
        "can_manage_users": False,
        "can_manage_organization": False,
    },
    ROLE_APPROVER: {
        "can_submit_applications": False,
        "can_view_own_applications": False,
        "can_view_all_applications": True,  # narrowed by approver assignments
        "can_approve_applications": True,
        "can_manage_users": False,
        "can_manage_organization": False,
    },
    ROLE_ADMIN: {
        "can_submit_applications": False,
        "can_view_own_applications": False,
        "can_view_all_applications": True,
        "can_approve_applications": False,
        "can_manage_users": True,
        "can_manage_organization": True,
    },
}


def has_permission(role: str, permission: str) -> bool:
    """Return True if *role* grants *permission*. Unknown roles grant nothing."""
    return ROLE_PERMISSIONS.get(role, {}).get(permission, False)


# ═══════════════════════════════════════════════════════════════
# USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    full_name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(30), nullable=False, comment="branch_user | head_office_approver | system_admin")
    branch_id = db.Column(
        db.Integer, db.ForeignKey("branches.id", ondelete="RESTRICT"), nullable=True, index=True,
        comment="Required iff role = branch_user",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_users_role", "role"),
    )

    branch = db.relationship("Branch")

    def to_dict(self, include_branch=False):
        d = {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "branch_id": self.branch_id,
            "is_active": self.is_active,
            "last_login": self.last_login.isoformat() if self.last_login else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_branch:
            d["branch"] = {"id": self.branch.id, "name": self.branch.name} if self.branch else None
        return d

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"


@dataclass(frozen=True)
class Actor:
    """Immutable snapshot of the principal performing a core operation."""

    id: int
    role: str
    branch_id: int | None = None
    is_active: bool = True

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(id=user.id, role=user.role, branch_id=user.branch_id, is_active=bool(user.is_active))

    def can(self, permission: str) -> bool:
        return self.is_active and has_permission(self.role, permission)
