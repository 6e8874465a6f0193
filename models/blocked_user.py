from datetime import datetime
from models.db import db


class BlockedUser(db.Model):
    """One row per blocked account. Deleting the row unblocks it."""
    __tablename__ = "blocked_users"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)
    reason = db.Column(db.String(255), nullable=True)
    blocked_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "reason": self.reason,
            "blocked_by": self.blocked_by,
            "created_at": self.created_at.isoformat(),
        }
