import logging

from models import db
from models.user import User, Role, USER_ROLE, ADMIN_ROLE

logger = logging.getLogger(__name__)

DEFAULT_ROLES = (USER_ROLE, ADMIN_ROLE)


def seed_roles():
    """Create missing default roles. Idempotent, runs at every startup."""
    existing = {r.name for r in Role.query.all()}
    missing = [name for name in DEFAULT_ROLES if name not in existing]
    for name in missing:
        db.session.add(Role(name=name))
    db.session.commit()
    if missing:
        logger.info("Seeded roles: %s", ", ".join(missing))


def grant_role(email: str, role_name: str):
    """Attach a role to the user with that email. Returns the user, or None if there is no such user."""
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user:
        return None

    role = Role.query.filter_by(name=role_name).first()
    if not role:
        role = Role(name=role_name)
        db.session.add(role)

    if role not in user.roles:
        user.roles.append(role)
    db.session.commit()
    return user
