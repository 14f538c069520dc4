# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .permissions import role_allows
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user and g.token. Returns 401 if the header is missing,
    the token is unknown, expired or revoked, or the user is banned.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def require_permission(resource: str, action: str):
    """Require the current user's role to grant action on resource. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401

            if not role_allows(user.role, resource, action):
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": f"{resource}:{action}",
                    "message": f"Role '{user.role}' cannot {action} {resource}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def current_user_id() -> int | None:
    user = getattr(g, "current_user", None)
    return user.id if user is not None else None
