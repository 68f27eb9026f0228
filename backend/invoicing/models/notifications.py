from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


class Notification(db.Model):
    """
    Persisted notification for a single recipient.

    The row is the source of truth; push delivery is only a latency
    optimisation. Mutated only by the recipient (read flag) and deleted only
    by the recipient.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    message = db.Column(db.String(1000), nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "message": self.message,
            "isRead": self.is_read,
            "createdAt": to_utc_z(self.created_at),
        }
