"""
User service - principals managed by the system administrator.

Enforces the role/branch invariant:
    role = branch_user  ⇒ branch_id is set
    role ≠ branch_user  ⇒ branch_id is NULL
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from sqlalchemy import select

from loan_portal.core.exceptions import ConflictError, NotFoundError, ValidationError
from loan_portal.models import db
from loan_portal.models.assignment import ApproverAssignment
from loan_portal.models.auth import ROLE_APPROVER, ROLE_BRANCH_USER, ROLES, User
from loan_portal.services import directory_service

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def list_users(role: str | None = None, is_active: bool | None = None) -> list[User]:
    q = select(User)
    if role:
        q = q.where(User.role == role)
    if is_active is not None:
        q = q.where(User.is_active.is_(bool(is_active)))
    return db.session.execute(q.order_by(User.full_name)).scalars().all()


def _resolve_branch(role: str, branch_id) -> int | None:
    """Apply the role/branch invariant and return the branch_id to store."""
    if role != ROLE_BRANCH_USER:
        return None
    if not branch_id:
        raise ValidationError(
            "User branch is required for 'Branch User' role.",
            details={"branch_id": "required"},
        )
    directory_service.get_branch(branch_id)
    return branch_id


def create_user(data: dict) -> User:
    """Create a portal user.

    Raises:
        ValidationError: blank name, malformed email, unknown role, or
                         missing branch for a branch user.
        ConflictError:   email already registered.
    """
    full_name = (data.get("full_name") or "").strip()
    email = (data.get("email") or "").strip().lower()
    role = data.get("role") or ""

    errors = {}
    if not full_name:
        errors["full_name"] = "required"
    if not _EMAIL_RE.match(email):
        errors["email"] = "invalid"
    if role not in ROLES:
        errors["role"] = f"must be one of {sorted(ROLES)}"
    if errors:
        raise ValidationError("Invalid user data.", details=errors)

    if db.session.execute(select(User.id).where(User.email == email)).first():
        raise ConflictError(resource="User", field="email", value=email)

    user = User(
        full_name=full_name,
        email=email,
        role=role,
        branch_id=_resolve_branch(role, data.get("branch_id")),
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User created id=%s role=%s", user.id, role)
    return user


def update_user(user_id: int, data: dict) -> User:
    """Update name, role and branch. The invariant is re-checked on every change."""
    user = get_user(user_id)

    full_name = user.full_name
    if "full_name" in data:
        full_name = (data.get("full_name") or "").strip()
        if not full_name:
            raise ValidationError("full_name is required.", details={"full_name": "required"})

    role = data.get("role", user.role)
    if role not in ROLES:
        raise ValidationError(f"role must be one of {sorted(ROLES)}", details={"role": "invalid"})
    branch_id = _resolve_branch(role, data.get("branch_id", user.branch_id))

    if role != user.role:
        logger.info("User role changed id=%s %s→%s", user.id, user.role, role)
        if user.role == ROLE_APPROVER:
            # Routing rules only make sense for approvers
            ApproverAssignment.query.filter_by(approver_id=user.id).delete()
    user.full_name = full_name
    user.role = role
    user.branch_id = branch_id

    if "is_active" in data:
        user.is_active = bool(data["is_active"])
    db.session.commit()
    return user


def set_user_active(user_id: int, is_active: bool) -> User:
    user = get_user(user_id)
    user.is_active = bool(is_active)
    db.session.commit()
    logger.info("User %s id=%s", "activated" if is_active else "deactivated", user_id)
    return user


def record_login(user_id: int) -> User:
    """Stamp ``last_login``; called by the identity provider after sign-in."""
    user = get_user(user_id)
    user.last_login = datetime.now(timezone.utc)
    db.session.commit()
    return user
