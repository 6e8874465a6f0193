from datetime import datetime, timedelta

from flask import Blueprint, jsonify, g, request, current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.audit_log import AuditLog
from models.blocked_user import BlockedUser
from models.meeting import Meeting
from models.user import User
from scheduling.lifecycle import STATUSES, change_status, allowed_targets
from scheduling.slot_calendar import to_day
from security.rbac import admin_required
from utils.audit import log_event
from utils.blocklist import block_user, blocked_user_ids, unblock_user

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

STATS_CACHE_KEY = "admin:stats"
RECENT_DAYS = 30
USER_FILTERS = ("all", "active", "blocked")
EMPTY_STATS = {
    "total_meetings": 0,
    "pending_meetings": 0,
    "confirmed_meetings": 0,
    "completed_meetings": 0,
    "cancelled_meetings": 0,
    "total_users": 0,
    "blocked_users": 0,
    "users_last_30_days": 0,
    "meetings_last_30_days": 0,
    "generated_at": None,
    "stale": True,
}


def _cache():
    return current_app.extensions["meetingslot_cache"]


def _load_stats():
    try:
        counts = dict(
            db.session.query(Meeting.status, func.count(Meeting.id))
            .group_by(Meeting.status)
            .all()
        )
        total_users = User.query.count()
        blocked_users = BlockedUser.query.count()
        since = datetime.utcnow() - timedelta(days=RECENT_DAYS)
        users_recent = User.query.filter(User.created_at >= since).count()
        meetings_recent = Meeting.query.filter(Meeting.created_at >= since).count()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return {
        "total_meetings": sum(counts.values()),
        "pending_meetings": counts.get("pending", 0),
        "confirmed_meetings": counts.get("confirmed", 0),
        "completed_meetings": counts.get("completed", 0),
        "cancelled_meetings": counts.get("cancelled", 0),
        "total_users": total_users,
        "blocked_users": blocked_users,
        "users_last_30_days": users_recent,
        "meetings_last_30_days": meetings_recent,
        "generated_at": datetime.utcnow().isoformat(),
    }


@admin_bp.get("/stats")
@admin_required
def stats():
    force = request.args.get("refresh") in ("1", "true")
    data = _cache().get_or_load(
        STATS_CACHE_KEY,
        _load_stats,
        ttl=current_app.config.get("ADMIN_STATS_CACHE_TTL_SECONDS", 60),
        force_refresh=force,
        fallback=EMPTY_STATS,
    )
    return jsonify(data), 200


@admin_bp.get("/meetings")
@admin_required
def list_meetings():
    status = request.args.get("status")
    date_str = request.args.get("date")  # YYYY-MM-DD
    search = (request.args.get("q") or "").strip().lower()
    sort = request.args.get("sort", "date")

    q = Meeting.query
    if status and status != "all":
        if status not in STATUSES:
            return jsonify(error="Unknown status"), 400
        q = q.filter(Meeting.status == status)

    if date_str:
        try:
            day = to_day(date_str)
        except ValueError:
            return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
        q = q.filter(Meeting.meeting_day == day)

    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            func.lower(Meeting.full_name).like(like),
            func.lower(Meeting.email).like(like),
            func.lower(Meeting.project_type).like(like),
            Meeting.phone.like(like),
        ))

    if sort == "created":
        q = q.order_by(Meeting.created_at.desc())
    else:
        q = q.order_by(Meeting.meeting_date.asc())

    rows = q.limit(200).all()
    return jsonify([
        dict(m.to_dict(), allowed_transitions=allowed_targets(m.status, True))
        for m in rows
    ]), 200


@admin_bp.post("/meetings/<int:meeting_id>/status")
@admin_required
def update_meeting_status(meeting_id: int):
    data = request.get_json(silent=True) or {}
    new_status = (data.get("status") or "").strip().lower()
    if not new_status:
        return jsonify(error="status required"), 400

    meeting = db.session.get(Meeting, meeting_id)
    if not meeting:
        return jsonify(error="Meeting not found"), 404

    previous = meeting.status
    meeting, _ = change_status(meeting, new_status, g.actor)
    _cache().invalidate(STATS_CACHE_KEY)

    log_event(
        "ADMIN_MEETING_STATUS",
        user_id=g.actor.user_id,
        entity="meeting",
        entity_id=meeting.id,
        metadata={"from": previous, "to": meeting.status},
    )
    return jsonify(message="Status updated", meeting=meeting.to_dict()), 200


@admin_bp.get("/users")
@admin_required
def list_users():
    user_filter = request.args.get("filter", "all")
    search = (request.args.get("q") or "").strip().lower()
    if user_filter not in USER_FILTERS:
        return jsonify(error="Unknown filter"), 400

    q = User.query
    if user_filter == "blocked":
        q = q.filter(User.id.in_(db.select(BlockedUser.user_id)))
    elif user_filter == "active":
        q = q.filter(~User.id.in_(db.select(BlockedUser.user_id)))
    if search:
        like = f"%{search}%"
        q = q.filter(or_(func.lower(User.email).like(like), func.lower(User.full_name).like(like)))

    users = q.order_by(User.created_at.desc()).limit(200).all()
    blocks = blocked_user_ids(u.id for u in users)
    return jsonify([
        {
            "id": u.id,
            "email": u.email,
            "full_name": u.full_name,
            "roles": u.role_names,
            "is_admin": u.is_admin,
            "is_blocked": u.id in blocks,
            "blocked_reason": blocks[u.id].reason if u.id in blocks else None,
            "created_at": u.created_at.isoformat(),
        }
        for u in users
    ]), 200


@admin_bp.post("/users/<int:user_id>/block")
@admin_required
def block_account(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify(error="User not found"), 404
    if user.is_admin:
        return jsonify(error="Administrators cannot be blocked"), 403
    if blocked_user_ids([user.id]):
        return jsonify(error="User already blocked"), 409

    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:255] or "Blocked by an administrator"
    row = block_user(user.id, reason=reason, blocked_by=g.actor.user_id)
    _cache().invalidate(STATS_CACHE_KEY)

    log_event(
        "ADMIN_BLOCK_USER",
        user_id=g.actor.user_id,
        entity="user",
        entity_id=user.id,
        metadata={"email": user.email, "reason": reason},
    )
    return jsonify(message="User blocked", block=row.to_dict()), 201


@admin_bp.post("/users/<int:user_id>/unblock")
@admin_required
def unblock_account(user_id: int):
    if not unblock_user(user_id):
        return jsonify(error="User is not blocked"), 404
    _cache().invalidate(STATS_CACHE_KEY)

    log_event("ADMIN_UNBLOCK_USER", user_id=g.actor.user_id, entity="user", entity_id=user_id)
    return jsonify(message="User unblocked"), 200


@admin_bp.get("/audit-logs")
@admin_required
def list_audit_logs():
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))

    action = request.args.get("action")
    user_id = request.args.get("user_id", type=int)

    q = AuditLog.query
    if action:
        q = q.filter(AuditLog.action == action)
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([r.to_dict() for r in rows]), 200
