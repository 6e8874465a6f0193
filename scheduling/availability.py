import logging
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.meeting import Meeting, ACTIVE_STATUSES
from scheduling.slot_calendar import daily_slots, to_day

logger = logging.getLogger(__name__)


def configured_slots() -> list:
    return daily_slots(slots=current_app.config.get("MEETING_SLOTS"))


def occupied_times(day) -> set:
    """Slot labels held by pending/confirmed meetings on that day. Query errors propagate."""
    rows = (
        db.session.query(Meeting.meeting_time)
        .filter(Meeting.meeting_day == to_day(day), Meeting.status.in_(ACTIVE_STATUSES))
        .all()
    )
    return {r.meeting_time for r in rows if r.meeting_time}


def get_available_slots(day, today=None) -> list:
    """
    Advisory read: free slots for a day, in calendar order.

    Past days yield []. A failing query degrades to the full slot list so the
    caller is never blocked; the unique index on insert is what actually
    prevents double booking.
    """
    day = to_day(day)
    today = today or datetime.utcnow().date()
    if day < today:
        return []

    slots = configured_slots()
    try:
        taken = occupied_times(day)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Availability read failed for %s, returning unfiltered slots: %s", day, exc)
        return slots

    return [s for s in slots if s not in taken]


def is_time_available(day, time_label: str, today=None) -> bool:
    return time_label in get_available_slots(day, today=today)
