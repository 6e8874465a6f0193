import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _slots_from_env():
    raw = os.getenv("MEETING_SLOTS")
    if not raw:
        return ["09:00", "11:00", "14:00", "16:00", "18:00"]
    return [s.strip() for s in raw.split(",") if s.strip()]


def _engine_options(url: str, statement_timeout_ms: int) -> dict:
    options = {"pool_pre_ping": True}
    if url.startswith("postgresql"):
        # bound every query server-side so a hung call can't hold a request forever
        options["pool_timeout"] = 10
        options["connect_args"] = {
            "connect_timeout": 5,
            "options": f"-c statement_timeout={statement_timeout_ms}",
        }
    return options


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file next to this module by default; Postgres in production
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "meetingslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "8000"))
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI, DB_STATEMENT_TIMEOUT_MS)

    # Create tables at startup instead of running migrations (tests / local only)
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true"

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "meetingslot_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"
    CSRF_ENABLED = True
    BCRYPT_ROUNDS = 12

    # Scheduling
    MEETING_SLOTS = _slots_from_env()
    PROJECT_DESCRIPTION_MIN_LENGTH = int(os.getenv("PROJECT_DESCRIPTION_MIN_LENGTH", "250"))
    DUPLICATE_SUBMISSION_WINDOW_SECONDS = int(os.getenv("DUPLICATE_SUBMISSION_WINDOW_SECONDS", "120"))

    # Reschedule / cancellation policy (admins are exempt)
    RESCHEDULE_LIMIT = int(os.getenv("RESCHEDULE_LIMIT", "3"))                       # per meeting
    MONTHLY_CANCELLATION_LIMIT = int(os.getenv("MONTHLY_CANCELLATION_LIMIT", "2"))   # per user per month

    # Write retries on transient DB failures
    WRITE_RETRY_ATTEMPTS = 3
    WRITE_RETRY_BACKOFF_SECONDS = 0.2
    WRITE_RETRY_MAX_DELAY_SECONDS = 2.0
    COUNTER_RETRY_ATTEMPTS = 2

    # Admin dashboard stats cache
    ADMIN_STATS_CACHE_TTL_SECONDS = 60

    # Basic app settings
    DEBUG = False
