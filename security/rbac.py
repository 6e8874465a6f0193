from functools import wraps
from flask import g, jsonify

from models.user import ADMIN_ROLE
from utils.auth_context import current_actor


def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")

    Sets g.actor for the view, like login_required does.
    """
    wanted = set(role_names)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401
            if wanted.isdisjoint(user.role_names):
                return jsonify(error="Forbidden"), 403

            g.actor = current_actor()
            return fn(*args, **kwargs)
        return wrapper
    return decorator


admin_required = require_roles(ADMIN_ROLE)
