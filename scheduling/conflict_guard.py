"""
Write-side protection for new meetings.

Reads here are advisory and fail open; the partial unique index
uq_meetings_active_slot on (meeting_day, meeting_time) is the only check
that is guaranteed to catch two sessions racing for the same slot.
"""
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.meeting import Meeting, ACTIVE_STATUSES
from scheduling.availability import configured_slots, get_available_slots
from scheduling.errors import AccountBlocked, ActiveMeetingExists, SlotAlreadyTaken, InvalidSlot, StorageUnavailable
from scheduling.slot_calendar import is_slot_label, slot_instant, to_day
from utils.blocklist import is_user_blocked
from utils.retry import run_write

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_PGCODE = "23505"
ACTIVE_SLOT_INDEX = "uq_meetings_active_slot"


@dataclass
class MeetingRequest:
    full_name: str
    email: str
    phone: str
    project_type: str
    project_description: str
    meeting_day: object
    meeting_time: str
    timeline: Optional[str] = None
    budget: Optional[str] = None


def is_unique_violation(exc: Exception) -> bool:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode == UNIQUE_VIOLATION_PGCODE:
        return True
    message = str(exc).lower()
    return ACTIVE_SLOT_INDEX in message or "duplicate" in message or "unique constraint" in message


def assert_not_blocked(actor) -> None:
    """Blocked accounts cannot book. Admin accounts are never blocked. A failing lookup lets the attempt through."""
    if actor.is_admin:
        return
    try:
        blocked = is_user_blocked(actor.user_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Block lookup failed for user %s, allowing booking: %s", actor.user_id, exc)
        return
    if blocked:
        raise AccountBlocked()


def assert_no_active_meeting(actor) -> None:
    """
    Non-admins may hold one pending/confirmed meeting at a time.
    A failing lookup lets the attempt through.
    """
    if actor.is_admin:
        return

    try:
        existing = (
            Meeting.query
            .filter(Meeting.user_id == actor.user_id, Meeting.status.in_(ACTIVE_STATUSES))
            .order_by(Meeting.meeting_date.asc())
            .first()
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Active-meeting lookup failed for user %s, allowing booking: %s", actor.user_id, exc)
        return

    if existing is not None:
        raise ActiveMeetingExists(meeting_id=existing.id)


def submission_key(user_id, email: str, meeting_date: datetime) -> str:
    raw = f"{user_id}|{(email or '').strip().lower()}|{meeting_date.isoformat()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def suppress_duplicate_submission(user_id, email, meeting_date, window_seconds=None, now=None):
    """
    Return the meeting already created from this same (user, email, instant)
    within the window, or None. Lookup failures are logged and return None.
    """
    if window_seconds is None:
        window_seconds = current_app.config.get("DUPLICATE_SUBMISSION_WINDOW_SECONDS", 120)
    now = now or datetime.utcnow()
    key = submission_key(user_id, email, meeting_date)

    try:
        return (
            Meeting.query
            .filter(
                Meeting.submission_key == key,
                Meeting.status != "cancelled",
                Meeting.created_at >= now - timedelta(seconds=window_seconds),
            )
            .order_by(Meeting.created_at.desc())
            .first()
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Duplicate-submission lookup failed for user %s: %s", user_id, exc)
        return None


def insert_meeting(meeting: Meeting) -> Meeting:
    """Persist a new meeting. A lost slot race surfaces as SlotAlreadyTaken."""
    def _write():
        db.session.add(meeting)
        db.session.commit()
        return meeting

    try:
        return run_write(_write, label="meeting insert")
    except IntegrityError as exc:
        db.session.rollback()
        if is_unique_violation(exc):
            logger.info("Slot %s %s lost to a concurrent booking", meeting.meeting_day, meeting.meeting_time)
            raise SlotAlreadyTaken(available=get_available_slots(meeting.meeting_day)) from exc
        logger.error("Meeting insert rejected by storage: %s", exc)
        raise StorageUnavailable() from exc


def book_meeting(actor, req: MeetingRequest, now=None):
    """
    Returns (meeting, created). created is False when the request replays a
    submission made moments ago; the earlier row is returned instead.
    """
    now = now or datetime.utcnow()
    assert_not_blocked(actor)
    try:
        day = to_day(req.meeting_day)
    except ValueError:
        raise InvalidSlot("Invalid meeting date. Use YYYY-MM-DD")

    if not is_slot_label(req.meeting_time, configured_slots()):
        raise InvalidSlot("Invalid meeting time", slots=configured_slots())
    if day < now.date():
        raise InvalidSlot("Cannot book a meeting in the past")

    meeting_date = slot_instant(day, req.meeting_time)

    replay = suppress_duplicate_submission(actor.user_id, req.email, meeting_date, now=now)
    if replay is not None:
        logger.info("Duplicate submission from user %s suppressed (meeting %s)", actor.user_id, replay.id)
        return replay, False

    assert_no_active_meeting(actor)

    available = get_available_slots(day, today=now.date())
    if req.meeting_time not in available:
        raise SlotAlreadyTaken(available=available)

    meeting = Meeting(
        user_id=actor.user_id,
        full_name=req.full_name,
        email=req.email,
        phone=req.phone,
        project_type=req.project_type,
        project_description=req.project_description,
        timeline=req.timeline,
        budget=req.budget,
        meeting_date=meeting_date,
        meeting_day=day,
        meeting_time=req.meeting_time,
        status="pending",
        reschedule_count=0,
        submission_key=submission_key(actor.user_id, req.email, meeting_date),
        created_at=now,
        updated_at=now,
    )
    try:
        return insert_meeting(meeting), True
    except SlotAlreadyTaken:
        # the slot may have gone to an identical submission racing this one
        replay = suppress_duplicate_submission(actor.user_id, req.email, meeting_date, now=now)
        if replay is not None:
            logger.info("Concurrent duplicate submission from user %s resolved to meeting %s",
                        actor.user_id, replay.id)
            return replay, False
        raise
