"""
Lifecycle event bus.

The lifecycle service publishes events after its transaction commits;
subscribers (the notification dispatcher today, a push channel later) react
to them. Delivery is synchronous and best-effort: a failing subscriber is
logged and its pending session writes are rolled back, the remaining
subscribers still run, and the publisher never sees the error.

Signals:
    application_submitted       sender=Application, approver_ids=frozenset[int]
    application_status_changed  sender=Application, decision, from_status,
                                to_status, reason, comments, actor_id
"""

from __future__ import annotations

import logging

from blinker import Namespace

from loan_portal.models import db

logger = logging.getLogger(__name__)

_signals = Namespace()

application_submitted = _signals.signal("application-submitted")
application_status_changed = _signals.signal("application-status-changed")


def publish(signal, sender, **payload) -> int:
    """Send *signal* to every receiver, isolating receiver failures.

    Returns:
        Number of receivers that completed without raising.
    """
    delivered = 0
    for receiver in list(signal.receivers_for(sender)):
        try:
            receiver(sender, **payload)
            delivered += 1
        except Exception:
            db.session.rollback()
            logger.exception(
                "Event receiver failed signal=%s receiver=%s",
                signal.name, getattr(receiver, "__qualname__", receiver),
                extra={"event_type": signal.name, "application_id": getattr(sender, "id", None)},
            )
    return delivered
