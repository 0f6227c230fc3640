"""Tests for the application lifecycle service.

Coverage:
  1. submit creates a pending application, one (None → pending) history row
     and a daily application number
  2. submit authorization (role, own branch) and field validation
  3. act: approve / reject / return transitions and their history rows
  4. act on a non-pending application → InvalidStateError, nothing written
  5. reject/return without a reason → ValidationError, nothing written
  6. act by an approver not routed the application → AuthorizationError
  7. lost race (status changed underneath) → InvalidStateError, no history
  8. role-scoped reads: list_applications, get_application, dashboard_stats

Run: APP_ENV=testing pytest tests/test_application_lifecycle.py -v
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import update

from loan_portal.core.exceptions import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from loan_portal.models import db
from loan_portal.models.application import Application, StatusHistoryEntry
from loan_portal.models.assignment import ApproverAssignment, AssignmentScope
from loan_portal.models.auth import ROLE_ADMIN, ROLE_APPROVER, ROLE_BRANCH_USER, Actor
from loan_portal.services import application_lifecycle as lifecycle
from loan_portal.services import audit_trail


# ── Helpers ─────────────────────────────────────────────────────────────────


def _actor(user) -> Actor:
    return Actor.from_user(user)


def _assign(approver, scope: AssignmentScope) -> ApproverAssignment:
    row = ApproverAssignment(approver_id=approver.id)
    row.scope = scope
    db.session.add(row)
    db.session.commit()
    return row


def _submit(user, branch, product, **overrides) -> Application:
    payload = {
        "product_id": product.id,
        "branch_id": branch.id,
        "customer_name": "Amina Yusuf",
        "phone_number": "0712 000 111",
        "application_amount": "250000",
        "profit_margin": "12.5",
        "tenure_months": 36,
        "monthly_installment": "8400.50",
    }
    payload.update(overrides)
    return lifecycle.submit(_actor(user), **payload)


def _history_count(application_id) -> int:
    return StatusHistoryEntry.query.filter_by(application_id=application_id).count()


@pytest.fixture()
def routed_approver(approver, district):
    _assign(approver, AssignmentScope.district(district.id))
    return approver


@pytest.fixture()
def pending_app(branch_user, branch, product, routed_approver):
    return _submit(branch_user, branch, product)


# ═════════════════════════════════════════════════════════════════════════
# Submit
# ═════════════════════════════════════════════════════════════════════════


class TestSubmit:
    def test_creates_pending_with_creation_history(self, branch_user, branch, product):
        app = _submit(branch_user, branch, product, remarks="  walk-in customer ")

        assert app.id is not None
        assert app.status == "pending"
        assert app.submitted_by == branch_user.id
        assert app.remarks == "walk-in customer"
        assert float(app.application_amount) == 250000.0
        assert app.tenure_months == 36

        entries = audit_trail.list_for(app.id)
        assert len(entries) == 1
        assert entries[0].from_status is None
        assert entries[0].to_status == "pending"
        assert entries[0].action_by == branch_user.id
        assert entries[0].action_by_role == ROLE_BRANCH_USER

    def test_application_numbers_are_daily_sequences(self, branch_user, branch, product):
        first = _submit(branch_user, branch, product)
        second = _submit(branch_user, branch, product, customer_name="Second Customer")

        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        assert first.application_number == f"APP-{today}-0001"
        assert second.application_number == f"APP-{today}-0002"

    def test_generate_number_uses_given_date(self):
        number = lifecycle.generate_application_number(datetime(2026, 1, 5, tzinfo=timezone.utc))
        assert number == "APP-20260105-0001"

    def test_generate_number_respects_prefix(self, app):
        app.config["APPLICATION_NUMBER_PREFIX"] = "FIN"
        try:
            number = lifecycle.generate_application_number(datetime(2026, 1, 5, tzinfo=timezone.utc))
        finally:
            app.config["APPLICATION_NUMBER_PREFIX"] = "APP"
        assert number == "FIN-20260105-0001"

    def test_blank_required_fields_rejected(self, branch_user, branch, product):
        with pytest.raises(ValidationError) as exc:
            _submit(branch_user, branch, product, customer_name="   ", phone_number="")
        assert exc.value.details["customer_name"] == "required"
        assert exc.value.details["phone_number"] == "required"
        assert Application.query.count() == 0

    def test_invalid_numbers_rejected(self, branch_user, branch, product):
        with pytest.raises(ValidationError) as exc:
            _submit(branch_user, branch, product, application_amount="-5", tenure_months="abc")
        assert "application_amount" in exc.value.details
        assert "tenure_months" in exc.value.details

    def test_inactive_product_rejected(self, branch_user, branch, product):
        product.is_active = False
        db.session.commit()
        with pytest.raises(ValidationError) as exc:
            _submit(branch_user, branch, product)
        assert exc.value.details["product_id"] == "inactive"

    def test_unknown_product_rejected(self, branch_user, branch, product):
        with pytest.raises(ValidationError) as exc:
            _submit(branch_user, branch, product, product_id=9999)
        assert exc.value.details["product_id"] == "not found"

    def test_other_branch_refused(self, branch_user, branch, other_branch, product):
        with pytest.raises(AuthorizationError):
            _submit(branch_user, other_branch, product)
        assert Application.query.count() == 0

    @pytest.mark.parametrize("role", [ROLE_APPROVER, ROLE_ADMIN])
    def test_non_branch_roles_refused(self, make_user, branch, product, role):
        user = make_user(role)
        with pytest.raises(AuthorizationError):
            _submit(user, branch, product)

    def test_inactive_branch_user_refused(self, make_user, branch, product):
        user = make_user(ROLE_BRANCH_USER, branch=branch, is_active=False)
        with pytest.raises(AuthorizationError):
            _submit(user, branch, product)

    def test_submit_without_routing_still_succeeds(self, branch_user, branch, product):
        app = _submit(branch_user, branch, product)
        assert app.status == "pending"


# ═════════════════════════════════════════════════════════════════════════
# Act
# ═════════════════════════════════════════════════════════════════════════


class TestAct:
    def test_approve(self, pending_app, routed_approver):
        result = lifecycle.act(_actor(routed_approver), pending_app.id, "approve", comments="looks good")

        assert result.status == "approved"
        entries = audit_trail.list_for(pending_app.id)
        assert len(entries) == 2
        newest = entries[0]
        assert (newest.from_status, newest.to_status) == ("pending", "approved")
        assert newest.action_by == routed_approver.id
        assert newest.action_by_role == ROLE_APPROVER
        assert newest.reason is None
        assert newest.comments == "looks good"

    def test_reject_stores_reason(self, pending_app, routed_approver):
        lifecycle.act(_actor(routed_approver), pending_app.id, "reject", reason="Income too low")
        newest = audit_trail.list_for(pending_app.id)[0]
        assert newest.to_status == "rejected"
        assert newest.reason == "Income too low"

    def test_return_stores_reason_verbatim(self, pending_app, routed_approver):
        lifecycle.act(_actor(routed_approver), pending_app.id, "return", reason="missing ID")
        app = db.session.get(Application, pending_app.id)
        assert app.status == "returned"
        assert audit_trail.list_for(pending_app.id)[0].reason == "missing ID"

    @pytest.mark.parametrize("decision", ["reject", "return"])
    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, pending_app, routed_approver, decision, reason):
        with pytest.raises(ValidationError):
            lifecycle.act(_actor(routed_approver), pending_app.id, decision, reason=reason)
        assert db.session.get(Application, pending_app.id).status == "pending"
        assert _history_count(pending_app.id) == 1

    @pytest.mark.parametrize("decision", ["approve", "reject", "return"])
    def test_non_pending_is_invalid_state(self, pending_app, routed_approver, decision):
        lifecycle.act(_actor(routed_approver), pending_app.id, "approve")

        with pytest.raises(InvalidStateError) as exc:
            lifecycle.act(_actor(routed_approver), pending_app.id, decision, reason="late")
        assert exc.value.current_status == "approved"
        assert _history_count(pending_app.id) == 2

    def test_returned_application_cannot_be_approved(self, pending_app, routed_approver):
        lifecycle.act(_actor(routed_approver), pending_app.id, "return", reason="missing ID")
        with pytest.raises(InvalidStateError):
            lifecycle.act(_actor(routed_approver), pending_app.id, "approve")

    def test_unknown_decision(self, pending_app, routed_approver):
        with pytest.raises(ValidationError):
            lifecycle.act(_actor(routed_approver), pending_app.id, "escalate")

    def test_missing_application(self, routed_approver):
        with pytest.raises(NotFoundError):
            lifecycle.act(_actor(routed_approver), 4242, "approve")

    def test_unrouted_approver_refused(self, pending_app, make_user):
        stranger = make_user(ROLE_APPROVER)
        with pytest.raises(AuthorizationError):
            lifecycle.act(_actor(stranger), pending_app.id, "approve")
        assert _history_count(pending_app.id) == 1

    def test_branch_user_cannot_act(self, pending_app, branch_user):
        with pytest.raises(AuthorizationError):
            lifecycle.act(_actor(branch_user), pending_app.id, "approve")

    def test_deactivated_approver_refused(self, pending_app, routed_approver):
        snapshot = Actor(id=routed_approver.id, role=ROLE_APPROVER, is_active=False)
        with pytest.raises(AuthorizationError):
            lifecycle.act(snapshot, pending_app.id, "approve")

    def test_lost_race_writes_nothing(self, pending_app, routed_approver):
        # Load into the identity map, then change the row underneath it
        assert db.session.get(Application, pending_app.id).status == "pending"
        db.session.execute(
            update(Application)
            .where(Application.id == pending_app.id)
            .values(status="approved")
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(InvalidStateError):
            lifecycle.act(_actor(routed_approver), pending_app.id, "reject", reason="too late")
        assert _history_count(pending_app.id) == 1

    def test_role_snapshot_survives_role_change(self, pending_app, routed_approver):
        lifecycle.act(_actor(routed_approver), pending_app.id, "approve")
        routed_approver.role = ROLE_ADMIN
        db.session.commit()

        newest = audit_trail.list_for(pending_app.id)[0]
        assert newest.action_by_role == ROLE_APPROVER

    def test_history_chain_is_connected(self, pending_app, routed_approver):
        lifecycle.act(_actor(routed_approver), pending_app.id, "return", reason="missing ID")
        assert audit_trail.verify_chain(pending_app.id)
        app = db.session.get(Application, pending_app.id)
        assert audit_trail.list_for(pending_app.id)[0].to_status == app.status


# ═════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════


class TestReads:
    def test_branch_user_sees_only_own(self, make_user, branch, product, branch_user):
        colleague = make_user(ROLE_BRANCH_USER, branch=branch)
        mine = _submit(branch_user, branch, product)
        _submit(colleague, branch, product, customer_name="Someone Else")

        visible = lifecycle.list_applications(_actor(branch_user))
        assert [a.id for a in visible] == [mine.id]

    def test_approver_sees_routed_only(
        self, make_user, branch, other_branch, product, branch_user, routed_approver,
    ):
        far_user = make_user(ROLE_BRANCH_USER, branch=other_branch)
        near = _submit(branch_user, branch, product)
        _submit(far_user, other_branch, product, customer_name="Far Customer")

        visible = lifecycle.list_applications(_actor(routed_approver))
        assert [a.id for a in visible] == [near.id]

    def test_admin_sees_everything(self, make_user, branch, other_branch, product, branch_user, admin):
        far_user = make_user(ROLE_BRANCH_USER, branch=other_branch)
        _submit(branch_user, branch, product)
        _submit(far_user, other_branch, product, customer_name="Far Customer")
        assert len(lifecycle.list_applications(_actor(admin))) == 2

    def test_filters(self, branch_user, branch, product, other_product, routed_approver):
        a = _submit(branch_user, branch, product, customer_name="Amina Yusuf")
        b = _submit(branch_user, branch, other_product, customer_name="Brian Otieno")
        lifecycle.act(_actor(routed_approver), b.id, "approve")
        actor = _actor(branch_user)

        assert [x.id for x in lifecycle.list_applications(actor, status="approved")] == [b.id]
        assert [x.id for x in lifecycle.list_applications(actor, product_id=product.id)] == [a.id]
        assert [x.id for x in lifecycle.list_applications(actor, search="amina")] == [a.id]
        assert [x.id for x in lifecycle.list_applications(actor, search=a.application_number)] == [a.id]

    def test_unknown_status_filter(self, branch_user):
        with pytest.raises(ValidationError):
            lifecycle.list_applications(_actor(branch_user), status="archived")

    def test_get_application_outside_scope(self, pending_app, make_user):
        stranger = make_user(ROLE_APPROVER)
        with pytest.raises(AuthorizationError):
            lifecycle.get_application(_actor(stranger), pending_app.id)

    def test_get_application_missing(self, admin):
        with pytest.raises(NotFoundError):
            lifecycle.get_application(_actor(admin), 999)

    def test_dashboard_stats(self, branch_user, branch, product, routed_approver):
        first = _submit(branch_user, branch, product)
        _submit(branch_user, branch, product, customer_name="Second")
        lifecycle.act(_actor(routed_approver), first.id, "reject", reason="bad docs")

        stats = lifecycle.dashboard_stats(_actor(branch_user))
        assert stats["pending"] == 1
        assert stats["rejected"] == 1
        assert stats["approved"] == 0
        assert stats["total"] == 2

    def test_list_history_checks_visibility(self, pending_app, make_user, branch_user):
        assert len(lifecycle.list_history(pending_app.id, actor=_actor(branch_user))) == 1
        stranger = make_user(ROLE_APPROVER)
        with pytest.raises(AuthorizationError):
            lifecycle.list_history(pending_app.id, actor=_actor(stranger))
