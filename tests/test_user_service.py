"""Tests for the user service and the role capability matrix."""

import pytest

from loan_portal.core.exceptions import ConflictError, NotFoundError, ValidationError
from loan_portal.models import db
from loan_portal.models.assignment import ApproverAssignment, AssignmentScope
from loan_portal.models.auth import (
    ROLE_ADMIN,
    ROLE_APPROVER,
    ROLE_BRANCH_USER,
    Actor,
    has_permission,
)
from loan_portal.services import user_service


class TestCreateUser:
    def test_branch_user_requires_branch(self):
        with pytest.raises(ValidationError) as exc:
            user_service.create_user({
                "email": "teller@bank.test", "full_name": "Teller", "role": ROLE_BRANCH_USER,
            })
        assert exc.value.details["branch_id"] == "required"

    def test_branch_user_with_branch(self, branch):
        user = user_service.create_user({
            "email": "Teller@Bank.test", "full_name": "Teller",
            "role": ROLE_BRANCH_USER, "branch_id": branch.id,
        })
        assert user.email == "teller@bank.test"
        assert user.branch_id == branch.id

    @pytest.mark.parametrize("role", [ROLE_APPROVER, ROLE_ADMIN])
    def test_other_roles_drop_branch(self, branch, role):
        user = user_service.create_user({
            "email": f"{role}@bank.test", "full_name": "Head Office",
            "role": role, "branch_id": branch.id,
        })
        assert user.branch_id is None

    def test_invalid_fields(self):
        with pytest.raises(ValidationError) as exc:
            user_service.create_user({"email": "not-an-email", "full_name": "", "role": "root"})
        assert set(exc.value.details) == {"email", "full_name", "role"}

    def test_duplicate_email(self, approver):
        with pytest.raises(ConflictError):
            user_service.create_user({
                "email": approver.email.upper(), "full_name": "Copy", "role": ROLE_APPROVER,
            })


class TestUpdateUser:
    def test_role_change_to_branch_user_needs_branch(self, approver):
        with pytest.raises(ValidationError):
            user_service.update_user(approver.id, {"role": ROLE_BRANCH_USER})

    def test_leaving_approver_role_drops_assignments(self, approver, district):
        row = ApproverAssignment(approver_id=approver.id)
        row.scope = AssignmentScope.district(district.id)
        db.session.add(row)
        db.session.commit()

        user_service.update_user(approver.id, {"role": ROLE_ADMIN})
        assert ApproverAssignment.query.count() == 0

    def test_branch_user_to_approver_clears_branch(self, branch_user):
        user = user_service.update_user(branch_user.id, {"role": ROLE_APPROVER})
        assert user.branch_id is None

    def test_set_active_and_record_login(self, approver):
        user_service.set_user_active(approver.id, False)
        assert user_service.get_user(approver.id).is_active is False
        assert user_service.record_login(approver.id).last_login is not None

    def test_list_users_filters(self, branch_user, approver, admin):
        user_service.set_user_active(admin.id, False)
        assert [u.id for u in user_service.list_users(role=ROLE_APPROVER)] == [approver.id]
        assert {u.id for u in user_service.list_users(is_active=True)} == {branch_user.id, approver.id}

    def test_get_missing(self):
        with pytest.raises(NotFoundError):
            user_service.get_user(12345)


class TestPermissions:
    def test_matrix(self):
        assert has_permission(ROLE_BRANCH_USER, "can_submit_applications")
        assert not has_permission(ROLE_BRANCH_USER, "can_approve_applications")
        assert has_permission(ROLE_APPROVER, "can_approve_applications")
        assert has_permission(ROLE_ADMIN, "can_manage_users")
        assert not has_permission("guest", "can_submit_applications")

    def test_inactive_actor_has_no_permissions(self):
        assert not Actor(id=1, role=ROLE_ADMIN, is_active=False).can("can_manage_users")
