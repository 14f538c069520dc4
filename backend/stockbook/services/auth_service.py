# Overview: Service-layer operations for auth; user accounts, passwords and role assignment.

"""
Authentication Service

Every ledger write carries the acting user's id, so every action is
attributable. Passwords are hashed with bcrypt.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Banned users cannot authenticate; banning revokes their sessions
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..permissions import DEFAULT_ROLE, ROLES, is_valid_role
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, optional_text
from .audit_service import log_audit
from .session_service import revoke_all_user_sessions

BCRYPT_ROUNDS = 12
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,64}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


class UserNotFoundError(LookupError):
    """Referenced user does not exist."""


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check via bcrypt.checkpw. A malformed stored hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise UserNotFoundError(f"User {user_id} not found")
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.username.asc()).all()


def create_user(
    username: str,
    email: str,
    password: str,
    *,
    name: str | None = None,
    role: str = DEFAULT_ROLE,
    actor_user_id: int | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: malformed username/email, unknown role
        PasswordValidationError: weak password
        ConflictError: username or email already taken
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not USERNAME_PATTERN.match(username):
        raise ValidationError("username must be 3-64 characters: letters, digits, '.', '_' or '-'")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("email is not valid")
    if not is_valid_role(role):
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    name = optional_text(name, "name", 200)

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=role,
        banned=False,
    )
    db.session.add(user)
    db.session.flush()

    log_audit(
        action="user.create",
        user_id=actor_user_id,
        target_type="user",
        target_id=user.id,
        after={"username": username, "email": email, "role": role},
    )
    db.session.commit()
    current_app.logger.info("Created user %s (role=%s)", username, role)
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns the User on success, None otherwise (unknown user, wrong
    password, banned). Updates last_login_at on success.
    """
    if not username or not password:
        return None

    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username.lower())
    ).first()

    if not user or user.banned:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def set_role(user_id: int, role: str, *, actor_user_id: int | None = None) -> User:
    """Assign a role. Existing sessions are revoked so the new role applies at next login."""
    if not is_valid_role(role):
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    user = get_user(user_id)
    before = user.role
    if before == role:
        return user

    user.role = role
    revoke_all_user_sessions(user.id, reason="Role changed", commit=False)
    log_audit(
        action="user.set_role",
        user_id=actor_user_id,
        target_type="user",
        target_id=user.id,
        before={"role": before},
        after={"role": role},
    )
    db.session.commit()
    return user


def ban_user(user_id: int, reason: str | None = None, *, actor_user_id: int | None = None) -> User:
    user = get_user(user_id)
    if actor_user_id is not None and user.id == actor_user_id:
        raise ValidationError("You cannot ban yourself")

    user.banned = True
    user.ban_reason = optional_text(reason, "reason", 255)
    revoked = revoke_all_user_sessions(user.id, reason="User banned", commit=False)
    log_audit(
        action="user.ban",
        user_id=actor_user_id,
        target_type="user",
        target_id=user.id,
        before={"banned": False},
        after={"banned": True, "ban_reason": user.ban_reason, "sessions_revoked": revoked},
    )
    db.session.commit()
    return user


def unban_user(user_id: int, *, actor_user_id: int | None = None) -> User:
    user = get_user(user_id)
    before = {"banned": user.banned, "ban_reason": user.ban_reason}
    user.banned = False
    user.ban_reason = None
    log_audit(
        action="user.unban",
        user_id=actor_user_id,
        target_type="user",
        target_id=user.id,
        before=before,
        after={"banned": False},
    )
    db.session.commit()
    return user
