from datetime import datetime

from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.meeting import Meeting
from scheduling.availability import configured_slots, get_available_slots
from scheduling.conflict_guard import MeetingRequest, book_meeting
from scheduling.errors import SlotAlreadyTaken, ActiveMeetingExists, SchedulingError
from scheduling.lifecycle import STATUSES
from scheduling.policy import cancel, reschedule, remaining_cancellations, remaining_reschedules
from scheduling.slot_calendar import to_day
from utils.audit import log_event
from utils.auth_context import login_required

meetings_bp = Blueprint("meetings", __name__, url_prefix="/meetings")

OTHER_PROJECT_TYPE = "Other"
OTHER_DESCRIPTION_MIN_LENGTH = 10
REQUIRED_FIELDS = ("full_name", "email", "phone", "project_type", "project_description",
                   "meeting_date", "meeting_time")


def _clean(data, key):
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


def _parse_meeting_request(data):
    """Returns (MeetingRequest, None) or (None, error message)."""
    missing = [f for f in REQUIRED_FIELDS if not _clean(data, f)]
    if missing:
        return None, f"Missing required fields: {', '.join(missing)}"

    full_name = _clean(data, "full_name")
    if " " not in full_name:
        return None, "Please enter your full name"

    email = _clean(data, "email")
    if not 0 < email.find("@") < len(email) - 1:
        return None, "Invalid email"

    description = _clean(data, "project_description")
    min_len = current_app.config.get("PROJECT_DESCRIPTION_MIN_LENGTH", 250)
    if len(description) < min_len:
        return None, f"Project description must have at least {min_len} characters"

    project_type = _clean(data, "project_type")
    if project_type == OTHER_PROJECT_TYPE:
        other = _clean(data, "other_description")
        if len(other) < OTHER_DESCRIPTION_MIN_LENGTH:
            return None, f"Describe your project type (at least {OTHER_DESCRIPTION_MIN_LENGTH} characters)"
        project_type = f"{OTHER_PROJECT_TYPE}: {other}"

    phone = _clean(data, "phone")
    dial_code = _clean(data, "dial_code")
    if dial_code and not phone.startswith(dial_code):
        phone = f"{dial_code} {phone}"

    return MeetingRequest(
        full_name=full_name,
        email=email.lower(),
        phone=phone,
        project_type=project_type,
        project_description=description,
        timeline=_clean(data, "timeline") or None,
        budget=_clean(data, "budget") or None,
        meeting_day=_clean(data, "meeting_date"),
        meeting_time=_clean(data, "meeting_time"),
    ), None


def _get_meeting_for_actor(meeting_id: int):
    meeting = db.session.get(Meeting, meeting_id)
    if not meeting:
        return None
    if not g.actor.is_admin and meeting.user_id != g.actor.user_id:
        return None
    return meeting


# ---------- availability (advisory, no login needed for the wizard) ----------
@meetings_bp.get("/slots")
def list_slots():
    date_str = request.args.get("date")
    try:
        day = to_day(date_str)
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    return jsonify(
        date=day.isoformat(),
        slots=configured_slots(),
        available=get_available_slots(day),
    ), 200


# ---------- create ----------
@meetings_bp.post("")
@login_required
def create_meeting():
    data = request.get_json(silent=True) or {}
    req, error = _parse_meeting_request(data)
    if error:
        return jsonify(error=error), 400

    try:
        meeting, created = book_meeting(g.actor, req)
    except ActiveMeetingExists as exc:
        log_event("MEETING_FAIL_ACTIVE_EXISTS", user_id=g.actor.user_id, entity="meeting",
                  entity_id=exc.extra.get("meeting_id"))
        raise
    except SlotAlreadyTaken:
        log_event("MEETING_FAIL_SLOT_TAKEN", user_id=g.actor.user_id,
                  metadata={"date": req.meeting_day, "time": req.meeting_time})
        raise

    if not created:
        return jsonify(meeting=meeting.to_dict(), duplicate=True), 200

    log_event("MEETING_CREATE", user_id=g.actor.user_id, entity="meeting", entity_id=meeting.id,
              metadata={"date": meeting.meeting_day.isoformat(), "time": meeting.meeting_time})
    return jsonify(meeting=meeting.to_dict(), duplicate=False), 201


# ---------- my meetings ----------
@meetings_bp.get("/me")
@login_required
def my_meetings():
    status = request.args.get("status")
    sort = request.args.get("sort", "date")

    q = Meeting.query.filter_by(user_id=g.actor.user_id)
    if status and status != "all":
        if status not in STATUSES:
            return jsonify(error="Unknown status"), 400
        q = q.filter_by(status=status)

    if sort == "created":
        q = q.order_by(Meeting.created_at.desc())
    else:
        q = q.order_by(Meeting.meeting_date.asc())

    out = []
    for m in q.all():
        row = m.to_dict()
        row["remaining_reschedules"] = None if g.actor.is_admin else remaining_reschedules(m)
        out.append(row)
    return jsonify(out), 200


@meetings_bp.get("/quota")
@login_required
def my_quota():
    if g.actor.is_admin:
        return jsonify(is_admin=True, remaining_cancellations=None,
                       reschedule_limit=None, cancellation_limit=None), 200

    return jsonify(
        is_admin=False,
        remaining_cancellations=remaining_cancellations(g.actor.user_id),
        reschedule_limit=current_app.config.get("RESCHEDULE_LIMIT", 3),
        cancellation_limit=current_app.config.get("MONTHLY_CANCELLATION_LIMIT", 2),
    ), 200


# ---------- reschedule ----------
@meetings_bp.post("/<int:meeting_id>/reschedule")
@login_required
def reschedule_meeting(meeting_id: int):
    data = request.get_json(silent=True) or {}
    new_date = (data.get("new_date") or "").strip()
    new_time = (data.get("new_time") or "").strip() or None
    if not new_date:
        return jsonify(error="new_date required"), 400

    meeting = _get_meeting_for_actor(meeting_id)
    if not meeting:
        return jsonify(error="Meeting not found"), 404

    previous = meeting.meeting_date.isoformat()
    try:
        result = reschedule(meeting, new_date, g.actor, new_time=new_time)
    except SchedulingError as exc:
        log_event("MEETING_RESCHEDULE_FAIL", user_id=g.actor.user_id, entity="meeting",
                  entity_id=meeting_id, metadata={"code": exc.code})
        raise

    log_event("MEETING_RESCHEDULE", user_id=g.actor.user_id, entity="meeting", entity_id=meeting_id,
              metadata={"from": previous, "to": result.meeting.meeting_date.isoformat(),
                        "reschedule_count": result.meeting.reschedule_count})

    if result.remaining is None:
        message = "Meeting rescheduled. Administrators have unlimited reschedules."
    else:
        message = f"Meeting rescheduled. You can reschedule {result.remaining} more time(s)."
    return jsonify(message=message, meeting=result.meeting.to_dict(), remaining=result.remaining), 200


# ---------- cancel ----------
@meetings_bp.post("/<int:meeting_id>/cancel")
@login_required
def cancel_meeting(meeting_id: int):
    meeting = _get_meeting_for_actor(meeting_id)
    if not meeting:
        return jsonify(error="Meeting not found"), 404

    try:
        result = cancel(meeting, g.actor)
    except SchedulingError as exc:
        log_event("MEETING_CANCEL_FAIL", user_id=g.actor.user_id, entity="meeting",
                  entity_id=meeting_id, metadata={"code": exc.code})
        raise

    log_event("MEETING_CANCEL", user_id=g.actor.user_id, entity="meeting", entity_id=meeting_id,
              metadata={"cancelled_at": datetime.utcnow().isoformat()})

    if result.remaining is None:
        message = "Meeting cancelled. Administrators have unlimited cancellations."
    else:
        message = f"Meeting cancelled. You can cancel {result.remaining} more meeting(s) this month."
    return jsonify(message=message, meeting=result.meeting.to_dict(), remaining=result.remaining), 200
