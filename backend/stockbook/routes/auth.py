# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Self-registration does not exist: accounts are created by an admin
(POST /api/admin/users) or the CLI (flask users create).
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..permissions import permissions_for_role
from ..responses import json_object
from ..services import auth_service, session_service
from ..validation import ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be sent as "Authorization: Bearer <token>" on protected routes.
    """
    try:
        data = json_object()
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "permissions": permissions_for_role(user.role),
            "token": token,
            "expires_at": session.to_dict()["expires_at"],
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": permissions_for_role(user.role),
    }), 200
