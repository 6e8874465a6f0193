from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .meeting import Meeting
from .monthly_cancellation import MonthlyCancellation
from .blocked_user import BlockedUser
