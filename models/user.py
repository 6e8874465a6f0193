from datetime import datetime
from models.db import db

USER_ROLE = "USER"
ADMIN_ROLE = "ADMIN"

user_roles = db.Table(
    "user_roles",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
    db.Column("role_id", db.Integer, db.ForeignKey("roles.id"), primary_key=True),
)


class User(db.Model):
    """An account that books meetings. Contact details for a meeting live on the meeting itself."""
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    roles = db.relationship("Role", secondary=user_roles, back_populates="users")
    meetings = db.relationship("Meeting", back_populates="user", lazy="dynamic")

    @property
    def role_names(self) -> list:
        return sorted(r.name for r in self.roles)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.role_names


class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)

    users = db.relationship("User", secondary=user_roles, back_populates="roles")
