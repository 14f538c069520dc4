# Overview: Service-layer operations for the audit log; append and read.

from __future__ import annotations

from flask import has_request_context, request

from ..extensions import db
from ..models import AuditLog
from ..time_utils import utcnow
"""
Audit Log Invariants (authoritative)

- Append-only: entries are never updated or deleted.
- No domain/business logic in the audit log itself.
- Entries are written inside the same DB transaction as the change they
  record (flush, never commit), so a rolled-back operation leaves no entry.
"""

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def log_audit(
    *,
    action: str,
    user_id: int | None = None,
    target_type: str | None = None,
    target_id=None,
    before: dict | None = None,
    after: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    """
    Append an audit entry to the current unit of work.

    When called during a request, client IP and User-Agent are taken from
    the request unless given explicitly.
    """
    if has_request_context():
        ip_address = ip_address or request.remote_addr
        user_agent = user_agent or request.headers.get("User-Agent")

    entry = AuditLog(
        user_id=user_id,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        action=action,
        before=before,
        after=after,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def get_audit_logs(
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
    action: str | None = None,
    target_type: str | None = None,
    target_id=None,
) -> dict:
    """Newest-first page of audit entries with the total count."""
    limit = max(1, min(int(limit or DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE))
    offset = max(0, int(offset or 0))

    query = db.session.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    if target_type:
        query = query.filter(AuditLog.target_type == target_type)
    if target_id is not None:
        query = query.filter(AuditLog.target_id == str(target_id))

    total = query.count()
    entries = (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        "items": [entry.to_dict() for entry in entries],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
