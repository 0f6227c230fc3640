"""Tests for approver assignment administration."""

import pytest

from loan_portal.core.exceptions import NotFoundError, ValidationError
from loan_portal.models.assignment import ApproverAssignment
from loan_portal.services import assignment_service
from loan_portal.services.approver_resolver import resolve_approvers


class TestCreateAssignments:
    def test_one_row_per_scope(self, approver, district, branch, product):
        created = assignment_service.create_assignments(
            approver.id, district_ids=[district.id], branch_ids=[branch.id], product_ids=[product.id],
        )
        assert sorted(a.scope_type for a in created) == ["branch", "district", "product"]
        assert resolve_approvers(district.id, None, None) == {approver.id}

    def test_existing_pairs_skipped(self, approver, district):
        assignment_service.create_assignments(approver.id, district_ids=[district.id])
        again = assignment_service.create_assignments(approver.id, district_ids=[district.id, district.id])
        assert again == []
        assert ApproverAssignment.query.count() == 1

    def test_requires_a_scope(self, approver):
        with pytest.raises(ValidationError):
            assignment_service.create_assignments(approver.id)

    def test_only_approvers(self, branch_user, district):
        with pytest.raises(ValidationError):
            assignment_service.create_assignments(branch_user.id, district_ids=[district.id])

    def test_inactive_approver_refused(self, make_user, district):
        inactive = make_user("head_office_approver", is_active=False)
        with pytest.raises(ValidationError):
            assignment_service.create_assignments(inactive.id, district_ids=[district.id])

    def test_unknown_scope_writes_nothing(self, approver, district):
        with pytest.raises(NotFoundError):
            assignment_service.create_assignments(approver.id, district_ids=[district.id], product_ids=[999])
        assert ApproverAssignment.query.count() == 0


class TestQueries:
    def test_delete(self, approver, branch):
        row, = assignment_service.create_assignments(approver.id, branch_ids=[branch.id])
        assignment_service.delete_assignment(row.id)
        assert assignment_service.list_assignments() == []
        with pytest.raises(NotFoundError):
            assignment_service.delete_assignment(row.id)

    def test_grouped_view(self, approver, district, product):
        assignment_service.create_assignments(approver.id, district_ids=[district.id], product_ids=[product.id])
        grouped = assignment_service.assignments_by_approver()
        assert len(grouped) == 1
        entry = grouped[0]
        assert entry["approver"]["id"] == approver.id
        assert [d["id"] for d in entry["districts"]] == [district.id]
        assert [p["id"] for p in entry["products"]] == [product.id]
        assert entry["branches"] == []
