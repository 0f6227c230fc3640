"""
Application Lifecycle Service

Owns the financing-application state machine:

    (submit) ──► pending ──approve──► approved   (terminal)
                        ├─reject───► rejected   (terminal)
                        └─return───► returned   (awaits remediation)

Every transition writes the new status and one StatusHistoryEntry in the
same transaction. ``act`` guards the status change with a compare-and-swap
UPDATE, so when two approvers race on one pending application exactly one
commits and the other gets InvalidStateError. Notifications are published
after the commit and can never undo a transition.

Usage:
    from loan_portal.services import application_lifecycle as lifecycle

    app = lifecycle.submit(actor, product_id=1, branch_id=2,
                           customer_name="Amina Yusuf", phone_number="0712 000 111")
    lifecycle.act(approver, app.id, "return", reason="missing ID")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from flask import current_app, has_app_context
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from loan_portal.core.exceptions import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from loan_portal.models import db
from loan_portal.models.application import (
    APPLICATION_STATUSES,
    APPLICATION_TRANSITIONS,
    STATUS_PENDING,
    Application,
    StatusHistoryEntry,
)
from loan_portal.models.auth import ROLE_ADMIN, ROLE_APPROVER, ROLE_BRANCH_USER, Actor
from loan_portal.models.directory import Branch
from loan_portal.services import audit_trail, directory_service, events
from loan_portal.services.approver_resolver import approver_filter, resolve_for_application

logger = logging.getLogger(__name__)

_NUMBER_RETRIES = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value) -> str:
    return (str(value) if value is not None else "").strip()


# ── Application number: {PREFIX}-{YYYYMMDD}-{SEQ:04d} ────────────────────────

def generate_application_number(now: datetime | None = None) -> str:
    """Next human-readable number for the day, e.g. APP-20261019-0007."""
    now = now or _utcnow()
    prefix = "APP"
    if has_app_context():
        prefix = current_app.config.get("APPLICATION_NUMBER_PREFIX", prefix)
    day = f"{prefix}-{now:%Y%m%d}-"
    count = (
        db.session.query(func.count(Application.id))
        .filter(Application.application_number.like(f"{day}%"))
        .scalar()
    ) or 0
    return f"{day}{count + 1:04d}"


# ── Submission ───────────────────────────────────────────────────────────────

def _parse_decimal(errors: dict, field: str, value, *, allow_zero: bool = False):
    if value is None or value == "":
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors[field] = "must be a number"
        return None
    if not number.is_finite() or number < 0 or (number == 0 and not allow_zero):
        errors[field] = "must be zero or greater" if allow_zero else "must be greater than zero"
        return None
    return number


def _parse_positive_int(errors: dict, field: str, value):
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        errors[field] = "must be a whole number"
        return None
    if number <= 0:
        errors[field] = "must be greater than zero"
        return None
    return number


def _require_active(errors: dict, field: str, lookup, ref_id):
    if not ref_id:
        errors[field] = "required"
        return None
    try:
        ref = lookup(ref_id)
    except NotFoundError:
        errors[field] = "not found"
        return None
    if not ref.is_active:
        errors[field] = "inactive"
        return None
    return ref


def submit(
    actor: Actor,
    product_id: int,
    branch_id: int,
    customer_name: str,
    phone_number: str,
    customer_id: str | None = None,
    remarks: str | None = None,
    *,
    application_amount=None,
    profit_margin=None,
    tenure_months=None,
    monthly_installment=None,
) -> Application:
    """Create a new application in ``pending`` for the actor's own branch.

    Raises:
        AuthorizationError: actor is not an active branch user of *branch_id*.
        ValidationError:    blank required field, bad number, or a missing /
                            inactive product or branch.
        StorageError:       the database write failed (nothing was written).
    """
    if actor.role != ROLE_BRANCH_USER or not actor.is_active:
        raise AuthorizationError("Only active branch users can submit applications.", action="submit")
    if actor.branch_id is None or branch_id != actor.branch_id:
        raise AuthorizationError("Applications can only be submitted for your own branch.", action="submit")

    errors: dict = {}
    customer_name = _clean(customer_name)
    phone_number = _clean(phone_number)
    if not customer_name:
        errors["customer_name"] = "required"
    if not phone_number:
        errors["phone_number"] = "required"
    _require_active(errors, "product_id", directory_service.get_product, product_id)
    _require_active(errors, "branch_id", directory_service.get_branch, branch_id)
    amount = _parse_decimal(errors, "application_amount", application_amount)
    margin = _parse_decimal(errors, "profit_margin", profit_margin, allow_zero=True)
    installment = _parse_decimal(errors, "monthly_installment", monthly_installment)
    tenure = _parse_positive_int(errors, "tenure_months", tenure_months)
    if errors:
        raise ValidationError("Application is incomplete or invalid.", details=errors)

    application = None
    for attempt in range(1, _NUMBER_RETRIES + 1):
        now = _utcnow()
        try:
            application = Application(
                application_number=generate_application_number(now),
                customer_name=customer_name,
                customer_id=_clean(customer_id) or None,
                phone_number=phone_number,
                product_id=product_id,
                branch_id=branch_id,
                application_amount=amount,
                profit_margin=margin,
                tenure_months=tenure,
                monthly_installment=installment,
                remarks=_clean(remarks) or None,
                status=STATUS_PENDING,
                submitted_by=actor.id,
                submitted_at=now,
            )
            db.session.add(application)
            db.session.flush()
            audit_trail.append(
                application_id=application.id,
                from_status=None,
                to_status=STATUS_PENDING,
                action_by=actor.id,
                action_by_role=actor.role,
            )
            db.session.commit()
            break
        except IntegrityError as exc:
            db.session.rollback()
            # Two submissions drew the same daily sequence number
            if attempt == _NUMBER_RETRIES:
                raise StorageError("Could not allocate an application number.") from exc
            logger.warning(
                "Application number collision, retrying attempt=%d", attempt,
                extra={"actor_id": actor.id, "event_type": "application.submit"},
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception(
                "Application submit failed",
                extra={"actor_id": actor.id, "event_type": "application.submit"},
            )
            raise StorageError("Could not save the application.") from exc

    approver_ids = resolve_for_application(application)
    log_ctx = {"application_id": application.id, "actor_id": actor.id, "event_type": "application.submit"}
    logger.info(
        "Application submitted id=%s number=%s approvers=%d",
        application.id, application.application_number, len(approver_ids),
        extra=log_ctx,
    )
    if not approver_ids:
        logger.warning(
            "No approver assignment matches application %s (branch_id=%s product_id=%s); "
            "it will not appear in any approval queue",
            application.application_number, branch_id, product_id,
            extra=log_ctx,
        )
    events.publish(events.application_submitted, application, approver_ids=approver_ids)
    return application


# ── Decisions ────────────────────────────────────────────────────────────────

def act(
    actor: Actor,
    application_id: int,
    decision: str,
    reason: str | None = None,
    comments: str | None = None,
) -> Application:
    """Approve, reject or return a pending application.

    Raises:
        ValidationError:    unknown decision, or reject/return without a reason.
        NotFoundError:      no such application.
        AuthorizationError: actor is not an active approver routed this application.
        InvalidStateError:  application is not pending (or another approver won the race).
        StorageError:       the database write failed (nothing was written).
    """
    rule = APPLICATION_TRANSITIONS.get(decision)
    if rule is None:
        raise ValidationError(
            f"Unknown decision: {decision!r}",
            details={"decision": f"must be one of {sorted(APPLICATION_TRANSITIONS)}"},
        )

    application = db.session.get(Application, application_id)
    if application is None:
        raise NotFoundError(resource="Application", resource_id=application_id)

    if actor.role != ROLE_APPROVER or not actor.is_active:
        raise AuthorizationError("Only active head office approvers can act on applications.", action=decision)
    if actor.id not in resolve_for_application(application):
        raise AuthorizationError("This application is not routed to you.", action=decision)

    from_status = application.status
    if from_status not in rule["from"]:
        raise InvalidStateError("Application", application_id, from_status, decision)

    reason = _clean(reason) or None
    if rule["reason_required"] and not reason:
        raise ValidationError(f"A reason is required to {decision} an application.", details={"reason": "required"})
    comments = _clean(comments) or None

    to_status = rule["to"]
    log_ctx = {"application_id": application_id, "actor_id": actor.id, "event_type": f"application.{decision}"}
    try:
        result = db.session.execute(
            update(Application)
            .where(Application.id == application_id, Application.status == from_status)
            .values(status=to_status, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            logger.info("Application %s lost to a concurrent decision", decision, extra=log_ctx)
            raise InvalidStateError("Application", application_id, None, decision)
        audit_trail.append(
            application_id=application_id,
            from_status=from_status,
            to_status=to_status,
            action_by=actor.id,
            action_by_role=actor.role,
            reason=reason,
            comments=comments,
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Application %s failed", decision, extra=log_ctx)
        raise StorageError(f"Could not {decision} the application.") from exc

    db.session.refresh(application)
    logger.info(
        "Application %s %s->%s", application.application_number, from_status, to_status,
        extra=log_ctx,
    )
    events.publish(
        events.application_status_changed,
        application,
        decision=decision,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        comments=comments,
        actor_id=actor.id,
    )
    return application


# ── Reads ────────────────────────────────────────────────────────────────────

def _visible_query(actor: Actor):
    """Applications the actor may see, joined to Branch for district routing."""
    stmt = select(Application).join(Branch, Application.branch_id == Branch.id)
    if not actor.is_active:
        raise AuthorizationError("Inactive users cannot view applications.")
    if actor.role == ROLE_BRANCH_USER:
        return stmt.where(Application.submitted_by == actor.id)
    if actor.role == ROLE_APPROVER:
        return stmt.where(approver_filter(actor.id))
    if actor.role == ROLE_ADMIN:
        return stmt
    raise AuthorizationError(f"Role {actor.role!r} cannot view applications.")


def get_application(actor: Actor, application_id: int) -> Application:
    """Fetch one application the actor is allowed to see."""
    application = db.session.get(Application, application_id)
    if application is None:
        raise NotFoundError(resource="Application", resource_id=application_id)
    visible = db.session.execute(
        _visible_query(actor).where(Application.id == application_id).with_only_columns(Application.id)
    ).first()
    if not visible:
        raise AuthorizationError("You do not have access to this application.")
    return application


def list_applications(
    actor: Actor,
    *,
    status: str | None = None,
    product_id: int | None = None,
    search: str | None = None,
) -> list[Application]:
    """Role-scoped application list, newest submission first."""
    stmt = _visible_query(actor)
    if status:
        if status not in APPLICATION_STATUSES:
            raise ValidationError(f"Unknown status: {status!r}", details={"status": "invalid"})
        stmt = stmt.where(Application.status == status)
    if product_id:
        stmt = stmt.where(Application.product_id == product_id)
    term = _clean(search).lower()
    if term:
        like = f"%{term}%"
        stmt = stmt.where(or_(
            func.lower(Application.application_number).like(like),
            func.lower(Application.customer_name).like(like),
        ))
    stmt = stmt.order_by(Application.submitted_at.desc(), Application.id.desc())
    return db.session.execute(stmt).scalars().all()


def dashboard_stats(actor: Actor) -> dict:
    """Per-status counts over the applications visible to the actor."""
    visible = _visible_query(actor).with_only_columns(Application.id, Application.status).subquery()
    rows = db.session.execute(
        select(visible.c.status, func.count(visible.c.id)).group_by(visible.c.status)
    ).all()
    stats = {status: 0 for status in APPLICATION_STATUSES}
    for status, count in rows:
        stats[status] = count
    stats["total"] = sum(stats[s] for s in APPLICATION_STATUSES)
    return stats


def list_history(application_id: int, actor: Actor | None = None) -> list[StatusHistoryEntry]:
    """History newest first. With an actor, visibility is checked first."""
    if actor is not None:
        get_application(actor, application_id)
    elif db.session.get(Application, application_id) is None:
        raise NotFoundError(resource="Application", resource_id=application_id)
    return audit_trail.list_for(application_id)
