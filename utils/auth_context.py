from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import g, jsonify
from security.session import get_session_from_request
from models import db
from models.user import User


@dataclass(frozen=True)
class Actor:
    """Who is acting, as asserted by the identity layer. is_admin is trusted as given."""
    user_id: int
    email: str
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, email=user.email, is_admin=user.is_admin)


def load_current_user():
    sess = get_session_from_request()
    if not sess:
        g.user = None
        g.session = None
        return
    g.session = sess
    g.user = db.session.get(User, sess.user_id)


def current_actor() -> Optional[Actor]:
    user = getattr(g, "user", None)
    if user is None:
        return None
    return Actor.from_user(user)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        g.actor = current_actor()
        return fn(*args, **kwargs)
    return wrapper
