from models import db
from models.blocked_user import BlockedUser
from security.session import revoke_all_sessions


def is_user_blocked(user_id) -> bool:
    if user_id is None:
        return False
    return BlockedUser.query.filter_by(user_id=user_id).first() is not None


def blocked_user_ids(user_ids) -> dict:
    """user_id -> BlockedUser for the blocked ones among user_ids."""
    ids = list(user_ids)
    if not ids:
        return {}
    return {b.user_id: b for b in BlockedUser.query.filter(BlockedUser.user_id.in_(ids)).all()}


def block_user(user_id: int, reason=None, blocked_by=None) -> BlockedUser:
    """Block the account and end all of its sessions."""
    row = BlockedUser(user_id=user_id, reason=reason, blocked_by=blocked_by)
    db.session.add(row)
    db.session.commit()
    revoke_all_sessions(user_id)
    return row


def unblock_user(user_id: int) -> bool:
    row = BlockedUser.query.filter_by(user_id=user_id).first()
    if not row:
        return False
    db.session.delete(row)
    db.session.commit()
    return True
