from datetime import datetime
from sqlalchemy import text
from models.db import db

ACTIVE_STATUSES = ("pending", "confirmed")


class Meeting(db.Model):
    __tablename__ = "meetings"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(40), nullable=False)  # "+55 11 91234-5678"

    project_type = db.Column(db.String(160), nullable=False)  # may be "Other: ..."
    project_description = db.Column(db.Text, nullable=False)
    timeline = db.Column(db.String(80), nullable=True)
    budget = db.Column(db.String(80), nullable=True)

    # meeting_date is the full instant, meeting_day/meeting_time are what slot uniqueness keys on
    meeting_date = db.Column(db.DateTime, nullable=False, index=True)
    meeting_day = db.Column(db.Date, nullable=False, index=True)
    meeting_time = db.Column(db.String(5), nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending")
    # status values: pending, confirmed, completed, cancelled

    reschedule_count = db.Column(db.Integer, nullable=False, default=0)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancellation_counted = db.Column(db.Boolean, nullable=False, default=False)

    submission_key = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="meetings")

    __table_args__ = (
        # Hard business-rule: one active meeting per (day, slot). Cancelled/completed rows don't count.
        db.Index(
            "uq_meetings_active_slot",
            "meeting_day",
            "meeting_time",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "project_type": self.project_type,
            "project_description": self.project_description,
            "timeline": self.timeline,
            "budget": self.budget,
            "meeting_date": self.meeting_date.isoformat(),
            "meeting_time": self.meeting_time,
            "status": self.status,
            "reschedule_count": self.reschedule_count,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
