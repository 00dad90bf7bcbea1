# Overview: Request decorators that establish and check the acting staff member.

from functools import wraps
from flask import request, jsonify, g

from .actor import ActorContext, ROLES

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


def _actor_from_headers() -> ActorContext | None:
    raw_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
    role = (request.headers.get(ACTOR_ROLE_HEADER) or "").strip().lower()

    if not raw_id.isdigit() or role not in ROLES:
        return None
    user_id = int(raw_id)
    if user_id < 1:
        return None
    return ActorContext(user_id=user_id, role=role)


def require_actor(f):
    """
    Require an authenticated staff member.

    Authentication itself happens upstream; the gateway forwards the user as
    X-Actor-Id / X-Actor-Role headers. Sets g.actor to an immutable
    ActorContext which routes pass into every service call.

    Returns 401 if either header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = _actor_from_headers()
        if actor is None:
            return jsonify({"error": "Authentication required"}), 401

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_role(role: str):
    """Require g.actor to hold the given role. Use below @require_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401

            if actor.role != role:
                return jsonify({
                    "error": "Permission denied",
                    "required_role": role,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
