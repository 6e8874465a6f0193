import logging

import click
from flask import Flask, jsonify

from config import Config
from models import db
from models.user import ADMIN_ROLE
from flask_migrate import Migrate
from routes import health_bp, auth_bp, meetings_bp, admin_bp
from scheduling.errors import SchedulingError
from security.csrf import csrf_protect
from utils.auth_context import load_current_user
from utils.cache import TTLCache
from utils.seed import seed_roles, grant_role

logger = logging.getLogger(__name__)


def _configure_logging(app):
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    _configure_logging(app)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(meetings_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Per-app cache, injected rather than held in module globals
    app.extensions["meetingslot_cache"] = TTLCache(
        default_ttl=app.config.get("ADMIN_STATS_CACHE_TTL_SECONDS", 60)
    )

    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        # Seed default roles at startup (safe & idempotent)
        seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf():
        return csrf_protect()

    @app.errorhandler(SchedulingError)
    def _scheduling_error(exc):
        if exc.status >= 500:
            logger.error("Scheduling failure: %s", exc, exc_info=exc.__cause__)
        return jsonify(exc.to_dict()), exc.status

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app


def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = grant_role(email, ADMIN_ROLE)
        if not user:
            click.echo("User not found")
            return
        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("seed-roles")
    def seed_roles_command():
        """Create the default roles if they are missing."""
        seed_roles()
        click.echo("Roles seeded")


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
