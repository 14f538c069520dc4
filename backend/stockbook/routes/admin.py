# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for user, role and audit management.

Provides endpoints for:
- User management (list, get, create, set role, ban, unban)
- Role table (read-only; roles are declared in permissions.py)
- Audit log (paginated, newest first)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import current_user_id, require_auth, require_permission
from ..permissions import STATEMENT, permissions_for_role, role_table
from ..responses import json_object
from ..services import audit_service, auth_service
from ..services.auth_service import UserNotFoundError
from ..validation import ConflictError, ValidationError

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_permission("user", "read")
def list_users():
    users = auth_service.list_users()
    return jsonify({"users": [user.to_dict() for user in users], "count": len(users)})


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_permission("user", "read")
def get_user(user_id: int):
    try:
        user = auth_service.get_user(user_id)
    except UserNotFoundError:
        return jsonify({"error": "User not found"}), 404

    user_dict = user.to_dict()
    user_dict["permissions"] = permissions_for_role(user.role)
    return jsonify({"user": user_dict})


@admin_bp.post("/users")
@require_auth
@require_permission("user", "create")
def create_user():
    """
    Request body:
    - username: str (required)
    - email: str (required)
    - password: str (required)
    - name: str (optional)
    - role: str (optional, default "user")
    """
    try:
        data = json_object()
        username = data.get("username")
        email = data.get("email")
        password = data.get("password")

        if not all([username, email, password]):
            return jsonify({"error": "username, email, and password required"}), 400

        user = auth_service.create_user(
            username,
            email,
            password,
            name=data.get("name"),
            role=data.get("role") or "user",
            actor_user_id=current_user_id(),
        )
        return jsonify({"user": user.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/users/<int:user_id>/role")
@require_auth
@require_permission("role", "assign")
def set_user_role(user_id: int):
    if user_id == g.current_user.id:
        return jsonify({"error": "You cannot change your own role"}), 400

    try:
        role = json_object().get("role")
        if not role:
            return jsonify({"error": "role required"}), 400
        user = auth_service.set_role(user_id, role, actor_user_id=current_user_id())
        return jsonify({"user": user.to_dict()})
    except UserNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@admin_bp.post("/users/<int:user_id>/ban")
@require_auth
@require_permission("user", "ban")
def ban_user(user_id: int):
    try:
        user = auth_service.ban_user(user_id, json_object().get("reason"), actor_user_id=current_user_id())
        return jsonify({"user": user.to_dict()})
    except UserNotFoundError:
        return jsonify({"error": "User not found"}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@admin_bp.post("/users/<int:user_id>/unban")
@require_auth
@require_permission("user", "ban")
def unban_user(user_id: int):
    try:
        user = auth_service.unban_user(user_id, actor_user_id=current_user_id())
        return jsonify({"user": user.to_dict()})
    except UserNotFoundError:
        return jsonify({"error": "User not found"}), 404


# =============================================================================
# ROLES & AUDIT
# =============================================================================

@admin_bp.get("/roles")
@require_auth
@require_permission("role", "read")
def list_roles():
    return jsonify({
        "roles": role_table(),
        "statement": {resource: list(actions) for resource, actions in STATEMENT.items()},
    })


@admin_bp.get("/audit")
@require_auth
@require_permission("audit", "read")
def list_audit():
    """
    Query params: limit (default 50, max 200), offset, action, target_type, target_id.
    """
    result = audit_service.get_audit_logs(
        limit=request.args.get("limit", default=50, type=int),
        offset=request.args.get("offset", default=0, type=int),
        action=request.args.get("action") or None,
        target_type=request.args.get("target_type") or None,
        target_id=request.args.get("target_id") or None,
    )
    return jsonify(result)
