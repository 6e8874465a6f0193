"""
Reschedule and cancellation quotas.

- reschedule_count on the meeting: at most RESCHEDULE_LIMIT user reschedules per meeting.
- user_monthly_cancellations: at most MONTHLY_CANCELLATION_LIMIT user cancellations per calendar month.

Admins bypass both. A user cancellation claims its unit of the monthly counter
before the meeting is touched, and gives it back if the meeting update fails.
When the counter cannot be reached the cancellation still goes ahead and is
charged afterwards by record_cancellation.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.meeting import Meeting, ACTIVE_STATUSES
from models.monthly_cancellation import MonthlyCancellation
from scheduling.availability import configured_slots, get_available_slots
from scheduling.conflict_guard import is_unique_violation
from scheduling.errors import (
    SchedulingError,
    RescheduleLimitExceeded,
    CancellationLimitExceeded,
    NoOpReschedule,
    InvalidSlot,
    InvalidTransition,
    ConcurrentModification,
    SlotAlreadyTaken,
    StorageUnavailable,
)
from scheduling.lifecycle import CANCELLED, ensure_transition, apply_status
from scheduling.slot_calendar import is_slot_label, slot_instant, to_day
from utils.retry import run_write

logger = logging.getLogger(__name__)


@dataclass
class PolicyResult:
    meeting: Meeting
    remaining: Optional[int]  # None means unlimited (admin)


def reschedule_limit() -> int:
    return current_app.config.get("RESCHEDULE_LIMIT", 3)


def monthly_cancellation_limit() -> int:
    return current_app.config.get("MONTHLY_CANCELLATION_LIMIT", 2)


def remaining_reschedules(meeting: Meeting) -> int:
    return max(reschedule_limit() - (meeting.reschedule_count or 0), 0)


# ---------- reschedule ----------

def reschedule(meeting: Meeting, new_date, actor, new_time=None, now=None) -> PolicyResult:
    now = now or datetime.utcnow()

    if meeting.status not in ACTIVE_STATUSES:
        raise InvalidTransition(f"A {meeting.status} meeting cannot be rescheduled")

    count = meeting.reschedule_count or 0
    limit = reschedule_limit()
    if not actor.is_admin and count >= limit:
        raise RescheduleLimitExceeded(
            f"You have reached the limit of {limit} reschedules for this meeting.",
            limit=limit,
        )

    try:
        new_day = to_day(new_date)
    except ValueError:
        raise InvalidSlot("Invalid new date. Use YYYY-MM-DD")

    if new_day == to_day(meeting.meeting_date):
        raise NoOpReschedule()

    new_time = new_time or meeting.meeting_time
    if not is_slot_label(new_time, configured_slots()):
        raise InvalidSlot("Invalid meeting time", slots=configured_slots())
    if new_day < now.date():
        raise InvalidSlot("Cannot reschedule to a past date")

    # advisory; the unique index below is the real check
    available = get_available_slots(new_day, today=now.date())
    if new_time not in available:
        raise SlotAlreadyTaken(available=available)

    stmt = (
        update(Meeting)
        .where(
            Meeting.id == meeting.id,
            Meeting.status.in_(ACTIVE_STATUSES),
            Meeting.reschedule_count == count,
        )
        .values(
            meeting_date=slot_instant(new_day, new_time),
            meeting_day=new_day,
            meeting_time=new_time,
            reschedule_count=count + 1,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    def _write():
        rowcount = db.session.execute(stmt).rowcount
        db.session.commit()
        return rowcount

    try:
        rowcount = run_write(_write, label="meeting reschedule")
    except IntegrityError as exc:
        db.session.rollback()
        if is_unique_violation(exc):
            raise SlotAlreadyTaken(available=get_available_slots(new_day, today=now.date())) from exc
        logger.error("Reschedule of meeting %s rejected by storage: %s", meeting.id, exc)
        raise StorageUnavailable() from exc

    if rowcount == 0:
        raise ConcurrentModification()
    db.session.refresh(meeting)

    remaining = None if actor.is_admin else max(limit - meeting.reschedule_count, 0)
    return PolicyResult(meeting=meeting, remaining=remaining)


# ---------- cancellation ----------

def _month_key(now: datetime):
    return now.month, now.year


def monthly_cancellation_count(user_id: int, now=None) -> int:
    """Soft-fail read: a failing lookup counts as zero."""
    month, year = _month_key(now or datetime.utcnow())
    try:
        row = MonthlyCancellation.query.filter_by(user_id=user_id, month=month, year=year).first()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Monthly cancellation lookup failed for user %s: %s", user_id, exc)
        return 0
    return row.cancellation_count if row else 0


def remaining_cancellations(user_id: int, now=None) -> int:
    return max(monthly_cancellation_limit() - monthly_cancellation_count(user_id, now=now), 0)


def _charge_counter(meeting_id: int, user_id: int, month: int, year: int) -> bool:
    # Flip the meeting's flag first: if it was already set, this cancellation was counted.
    claimed = db.session.execute(
        update(Meeting)
        .where(
            Meeting.id == meeting_id,
            Meeting.cancellation_counted == False,  # noqa: E712
        )
        .values(cancellation_counted=True)
        .execution_options(synchronize_session=False)
    ).rowcount
    if not claimed:
        db.session.rollback()
        return False

    bumped = db.session.execute(
        update(MonthlyCancellation)
        .where(
            MonthlyCancellation.user_id == user_id,
            MonthlyCancellation.month == month,
            MonthlyCancellation.year == year,
        )
        .values(
            cancellation_count=MonthlyCancellation.cancellation_count + 1,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    ).rowcount
    if not bumped:
        db.session.add(MonthlyCancellation(user_id=user_id, month=month, year=year, cancellation_count=1))

    db.session.commit()
    return True


def record_cancellation(meeting_id: int, user_id: int, now=None) -> bool:
    """
    Charge one cancellation to the user's monthly counter, at most once per
    cancellation of a meeting. Runs after the cancellation committed, when no
    unit could be reserved up front; failures are logged and swallowed so
    the cancellation itself always stands.
    """
    month, year = _month_key(now or datetime.utcnow())
    attempts = current_app.config.get("COUNTER_RETRY_ATTEMPTS", 2)

    for attempt in range(1, attempts + 1):
        try:
            return run_write(
                lambda: _charge_counter(meeting_id, user_id, month, year),
                label="cancellation counter",
            )
        except IntegrityError as exc:
            # another request created the month row first; the update path will find it next time
            db.session.rollback()
            logger.info("Counter row race for user %s (%s/%s), attempt %d: %s", user_id, month, year, attempt, exc)
        except (SQLAlchemyError, StorageUnavailable) as exc:
            db.session.rollback()
            logger.error("Monthly cancellation counter update failed for user %s meeting %s: %s",
                         user_id, meeting_id, exc)
            return False

    logger.error("Monthly cancellation counter for user %s meeting %s not updated after %d attempts",
                 user_id, meeting_id, attempts)
    return False


def _take_counter_unit(user_id: int, month: int, year: int, limit: int) -> int:
    """
    Bump the month's counter only while it is below the limit, in one
    statement. Returns the new count, or 0 when the limit is already used up.
    """
    bumped = db.session.execute(
        update(MonthlyCancellation)
        .where(
            MonthlyCancellation.user_id == user_id,
            MonthlyCancellation.month == month,
            MonthlyCancellation.year == year,
            MonthlyCancellation.cancellation_count < limit,
        )
        .values(
            cancellation_count=MonthlyCancellation.cancellation_count + 1,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    ).rowcount

    if not bumped:
        exists = (
            db.session.query(MonthlyCancellation.id)
            .filter_by(user_id=user_id, month=month, year=year)
            .first()
        )
        if exists is not None or limit <= 0:
            db.session.rollback()
            return 0
        db.session.add(MonthlyCancellation(user_id=user_id, month=month, year=year, cancellation_count=1))
        db.session.flush()

    count = (
        db.session.query(MonthlyCancellation.cancellation_count)
        .filter_by(user_id=user_id, month=month, year=year)
        .scalar()
    )
    db.session.commit()
    return count


def reserve_cancellation(user_id: int, now=None) -> Optional[int]:
    """
    Claim one of the user's monthly cancellations before the meeting is
    cancelled, so two concurrent cancels cannot both pass the limit.

    Returns the month's count including this claim, or None when the counter
    could not be reached (the caller cancels anyway and charges afterwards).
    Raises CancellationLimitExceeded when the month is used up.
    """
    month, year = _month_key(now or datetime.utcnow())
    limit = monthly_cancellation_limit()
    attempts = current_app.config.get("COUNTER_RETRY_ATTEMPTS", 2)

    for attempt in range(1, attempts + 1):
        try:
            count = run_write(
                lambda: _take_counter_unit(user_id, month, year, limit),
                label="cancellation reservation",
            )
        except IntegrityError as exc:
            # month row created concurrently; the conditional update sees it next round
            db.session.rollback()
            logger.info("Counter row race for user %s (%s/%s), attempt %d: %s", user_id, month, year, attempt, exc)
            continue
        except (SQLAlchemyError, StorageUnavailable) as exc:
            db.session.rollback()
            logger.warning("Cancellation reservation failed for user %s, charging after the fact: %s", user_id, exc)
            return None

        if not count:
            raise CancellationLimitExceeded(
                f"You have reached the limit of {limit} cancellations per month.",
                limit=limit,
            )
        return count

    logger.warning("Cancellation reservation for user %s gave up after %d attempts", user_id, attempts)
    return None


def release_cancellation(user_id: int, now=None) -> bool:
    """Give back a reserved cancellation whose meeting update did not go through."""
    month, year = _month_key(now or datetime.utcnow())
    try:
        db.session.execute(
            update(MonthlyCancellation)
            .where(
                MonthlyCancellation.user_id == user_id,
                MonthlyCancellation.month == month,
                MonthlyCancellation.year == year,
                MonthlyCancellation.cancellation_count > 0,
            )
            .values(cancellation_count=MonthlyCancellation.cancellation_count - 1)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Could not release reserved cancellation for user %s (%s/%s): %s", user_id, month, year, exc)
        return False
    return True


def cancel(meeting: Meeting, actor, now=None) -> PolicyResult:
    now = now or datetime.utcnow()

    ensure_transition(meeting.status, CANCELLED, actor.is_admin)

    if actor.is_admin:
        apply_status(meeting, CANCELLED, now=now)
        return PolicyResult(meeting=meeting, remaining=None)

    limit = monthly_cancellation_limit()
    used = reserve_cancellation(actor.user_id, now=now)

    if used is None:
        apply_status(meeting, CANCELLED, now=now)
        record_cancellation(meeting.id, actor.user_id, now=now)
        return PolicyResult(meeting=meeting, remaining=remaining_cancellations(actor.user_id, now=now))

    try:
        apply_status(meeting, CANCELLED, now=now, extra={"cancellation_counted": True})
    except (SchedulingError, SQLAlchemyError):
        release_cancellation(actor.user_id, now=now)
        raise
    return PolicyResult(meeting=meeting, remaining=max(limit - used, 0))
