from .health import health_bp
from .auth import auth_bp
from .meetings import meetings_bp
from .admin import admin_bp
