"""
Actor context middleware - resolves the calling principal into ``g.actor``.

Resolution order:
  1. Authorization: Bearer <jwt>   →  sub claim is the user id
  2. X-User-Id header               →  only when API_AUTH_ENABLED is false
                                       (development and tests)

``g.actor`` is an immutable ``Actor`` snapshot, or None when the request is
anonymous. Services receive the actor explicitly; nothing below the
blueprints reads ``g``.

Usage:
    @bp.route("/applications", methods=["POST"])
    @require_role("branch_user")
    def submit_application():
        actor = g.actor
"""

import functools
import logging

import jwt as pyjwt
from flask import current_app, g, jsonify, request

from loan_portal.models import db
from loan_portal.models.auth import Actor, User
from loan_portal.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that never need an actor
ACTOR_SKIP_PREFIXES = (
    "/api/v1/health",
)


def _auth_enabled() -> bool:
    return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in ("false", "0", "no", "off")


def _user_id_from_request():
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            payload = decode_access_token(auth_header[7:])
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token path=%s", request.path)
            return None
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Invalid access token path=%s: %s", request.path, exc)
            return None
        return payload.get("sub")

    if not _auth_enabled():
        return request.headers.get("X-User-Id")
    return None


def init_actor_context(app):
    """Register the actor resolution hook."""

    @app.before_request
    def _resolve_actor():
        g.actor = None
        path = request.path
        if not path.startswith("/api/v1/"):
            return
        if any(path.startswith(p) for p in ACTOR_SKIP_PREFIXES):
            return

        raw_id = _user_id_from_request()
        if raw_id in (None, ""):
            return
        try:
            user_id = int(raw_id)
        except (TypeError, ValueError):
            logger.warning("Malformed actor id %r path=%s", raw_id, path)
            return

        user = db.session.get(User, user_id)
        if user is None:
            logger.warning("Unknown actor id=%s path=%s", user_id, path)
            return
        g.actor = Actor.from_user(user)


def require_actor(f):
    """Decorator: reject anonymous requests with 401."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "actor", None) is None:
            return jsonify({"error": "Authentication required", "code": "ERR_UNAUTHENTICATED"}), 401
        return f(*args, **kwargs)
    return decorated


def require_role(*roles: str):
    """
    Decorator: require an authenticated, active actor holding one of *roles*.
    """
    def decorator(f):
        @functools.wraps(f)
        @require_actor
        def decorated(*args, **kwargs):
            actor = g.actor
            if not actor.is_active or actor.role not in roles:
                logger.warning(
                    "User %d denied: role '%s' not in %s on %s",
                    actor.id, actor.role, roles, f.__name__,
                )
                return jsonify({
                    "error": "Permission denied",
                    "code": "ERR_FORBIDDEN",
                    "required_any": list(roles),
                }), 403
            return f(*args, **kwargs)
        return decorated
    return decorator
