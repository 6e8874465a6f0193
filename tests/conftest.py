from datetime import datetime, timedelta

import pytest

from app import create_app
from config import Config
from models import db
from models.meeting import Meeting
from models.user import User, Role
from security.password import hash_password
from scheduling.slot_calendar import slot_instant
from utils.auth_context import Actor

PASSWORD = "correct-horse-1"


class ConfigForTests(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    AUTO_CREATE_TABLES = True
    CSRF_ENABLED = False
    BCRYPT_ROUNDS = 4
    LOG_LEVEL = "WARNING"
    MEETING_SLOTS = ["09:00", "11:00", "14:00", "16:00", "18:00"]
    WRITE_RETRY_BACKOFF_SECONDS = 0
    WRITE_RETRY_MAX_DELAY_SECONDS = 0


@pytest.fixture
def app():
    app = create_app(ConfigForTests)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def future_day():
    return datetime.utcnow().date() + timedelta(days=10)


def create_user(email, admin=False, full_name="Ana Souza"):
    user = User(email=email, password_hash=hash_password(PASSWORD), full_name=full_name)
    role = Role.query.filter_by(name="ADMIN" if admin else "USER").first()
    user.roles.append(role)
    db.session.add(user)
    db.session.commit()
    return user


def create_meeting(user, day, time_label="14:00", status="pending", reschedule_count=0, **fields):
    now = datetime.utcnow()
    meeting = Meeting(
        user_id=user.id,
        full_name=fields.get("full_name", "Ana Souza"),
        email=fields.get("email", user.email),
        phone=fields.get("phone", "+55 11 91234-5678"),
        project_type=fields.get("project_type", "E-commerce"),
        project_description=fields.get("project_description", "x" * 260),
        meeting_date=slot_instant(day, time_label),
        meeting_day=day,
        meeting_time=time_label,
        status=status,
        reschedule_count=reschedule_count,
        created_at=now,
        updated_at=now,
    )
    db.session.add(meeting)
    db.session.commit()
    return meeting


@pytest.fixture
def user(app_ctx):
    return create_user("ana@example.com")


@pytest.fixture
def admin(app_ctx):
    return create_user("admin@example.com", admin=True, full_name="Site Admin")


@pytest.fixture
def actor(user):
    return Actor.from_user(user)


@pytest.fixture
def admin_actor(admin):
    return Actor.from_user(admin)


def login(client, email):
    resp = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200, resp.get_json()
    return resp


def meeting_payload(day, time_label="14:00", **overrides):
    payload = {
        "full_name": "Ana Souza",
        "email": "ana@example.com",
        "dial_code": "+55",
        "phone": "11 91234-5678",
        "project_type": "E-commerce",
        "project_description": "We need an online store with a catalogue and checkout. " * 6,
        "timeline": "Short term (1-3 months)",
        "budget": "Not sure",
        "meeting_date": day.isoformat(),
        "meeting_time": time_label,
    }
    payload.update(overrides)
    return payload
