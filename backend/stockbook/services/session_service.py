# Overview: Service-layer operations for session; bearer tokens for dashboard users.

"""
Session Token Management Service

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout from SESSION_TTL_HOURS
- Revocable on logout, ban and role change
- Tracks client IP and user agent
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


def generate_token() -> str:
    """64-character hex string; the only copy of the plaintext goes to the client."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy, so a fast hash is sufficient here.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _ttl() -> timedelta:
    return timedelta(hours=int(current_app.config.get("SESSION_TTL_HOURS", 24)))


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Raises ValueError if the user does not exist or is banned.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")
    if user.banned:
        raise ValueError("User is banned")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + _ttl(),
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its user.

    Returns None if the token is unknown, expired or revoked, or if the
    user has been banned since the session was created.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    user = session.user
    if not user or user.banned:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = "User banned"
        db.session.commit()
        return None

    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if a live session was revoked, False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason

    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", *, commit: bool = True) -> int:
    """
    Revoke all active sessions for a user.

    Returns count of sessions revoked. With commit=False the caller owns
    the transaction (ban, role change).
    """
    now = utcnow()

    sessions = db.session.query(SessionToken).filter_by(
        user_id=user_id,
        is_revoked=False,
    ).all()

    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason

    if commit:
        db.session.commit()
    return len(sessions)
