from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Append-only audit trail.

    Written inside the same DB transaction as the change it records, so an
    entry exists if and only if the change committed. before/after hold JSON
    snapshots of the affected record where one applies.

    action examples: "stock.in", "stock.out", "stock.correct",
    "sale.create", "sale.void", "payment.create", "product.update",
    "user.ban", "user.set_role".
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_created_at", "created_at"),
        db.Index("ix_audit_logs_target", "target_type", "target_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    target_type = db.Column(db.String(32), nullable=True)
    target_id = db.Column(db.String(64), nullable=True)
    action = db.Column(db.String(64), nullable=False, index=True)

    before = db.Column(db.JSON, nullable=True)
    after = db.Column(db.JSON, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "action": self.action,
            "before": self.before,
            "after": self.after,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": to_utc_z(self.created_at),
        }
