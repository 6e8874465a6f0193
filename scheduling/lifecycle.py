"""
Meeting status transitions.

    pending -> confirmed -> completed
    pending | confirmed -> cancelled
    cancelled | completed -> confirmed   (admin reopen)

Owners may only cancel (through the policy engine); every other transition
belongs to an admin.
"""
import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from models import db
from models.meeting import Meeting
from scheduling.availability import get_available_slots
from scheduling.conflict_guard import is_unique_violation
from scheduling.errors import (
    InvalidTransition,
    PermissionDenied,
    ConcurrentModification,
    SlotAlreadyTaken,
    StorageUnavailable,
)
from utils.retry import run_write

logger = logging.getLogger(__name__)

PENDING = "pending"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"

STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED)

# (from, to) -> admin only
TRANSITIONS = {
    (PENDING, CONFIRMED): True,
    (PENDING, CANCELLED): False,
    (CONFIRMED, COMPLETED): True,
    (CONFIRMED, CANCELLED): False,
    (CANCELLED, CONFIRMED): True,
    (COMPLETED, CONFIRMED): True,
}


def allowed_targets(current: str, is_admin: bool) -> list:
    return [to for (frm, to), admin_only in TRANSITIONS.items()
            if frm == current and (is_admin or not admin_only)]


def can_transition(current: str, target: str, is_admin: bool) -> bool:
    admin_only = TRANSITIONS.get((current, target))
    if admin_only is None:
        return False
    return is_admin or not admin_only


def ensure_transition(current: str, target: str, is_admin: bool) -> None:
    if target not in STATUSES:
        raise InvalidTransition(f"Unknown status: {target}")
    admin_only = TRANSITIONS.get((current, target))
    if admin_only is None:
        raise InvalidTransition(
            f"Cannot move a {current} meeting to {target}",
            allowed=allowed_targets(current, is_admin),
        )
    if admin_only and not is_admin:
        raise PermissionDenied("Only administrators can perform this status change")


def apply_status(meeting: Meeting, target: str, now=None, extra=None) -> Meeting:
    """
    Conditional single-row update: only applies if the row still has the
    status we read. Reopening goes through the active-slot unique index and
    makes the next cancellation chargeable again. `extra` holds further
    column values written in the same statement.
    """
    now = now or datetime.utcnow()
    expected = meeting.status
    values = {"status": target, "updated_at": now}
    if target == CANCELLED:
        values["cancelled_at"] = now
    elif expected == CANCELLED:
        values["cancelled_at"] = None
        values["cancellation_counted"] = False
    values.update(extra or {})

    stmt = (
        update(Meeting)
        .where(Meeting.id == meeting.id, Meeting.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    def _write():
        rowcount = db.session.execute(stmt).rowcount
        db.session.commit()
        return rowcount

    try:
        rowcount = run_write(_write, label="meeting status update")
    except IntegrityError as exc:
        db.session.rollback()
        if is_unique_violation(exc):
            raise SlotAlreadyTaken(
                "Another meeting already holds this slot",
                available=get_available_slots(meeting.meeting_day),
            ) from exc
        logger.error("Status update for meeting %s rejected by storage: %s", meeting.id, exc)
        raise StorageUnavailable() from exc

    if rowcount == 0:
        current = db.session.get(Meeting, meeting.id)
        raise ConcurrentModification(status=current.status if current else None)
    db.session.refresh(meeting)
    return meeting


def change_status(meeting: Meeting, target: str, actor, now=None):
    """
    Admin-console entry point. A non-admin asking to cancel is routed through
    the policy engine so monthly quotas apply; returns (meeting, remaining).
    """
    ensure_transition(meeting.status, target, actor.is_admin)

    if target == CANCELLED and not actor.is_admin:
        from scheduling.policy import cancel
        result = cancel(meeting, actor, now=now)
        return result.meeting, result.remaining

    previous = meeting.status
    apply_status(meeting, target, now=now)
    logger.info("Meeting %s moved %s -> %s by user %s", meeting.id, previous, target, actor.user_id)
    return meeting, None
