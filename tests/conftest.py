import math
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import routers.auth
import routers.users
from db import create_db_and_tables, get_session
from main import app
from models import Role, User
from routers.auth import create_access_token, hash_password

EARTH_RADIUS_M = 6371008.8

# Nyabihu, and two points ~0.3 km and ~70 km away from it.
NYABIHU = (29.4577, -1.6868)
NEARBY = (29.4600, -1.6890)
KIGALI = (30.0619, -1.9441)

PASSWORD = "password123"


# SQLite stand-ins for the PostGIS calls built by geo.within_radius.

def _make_point(lon, lat):
    if lon is None or lat is None:
        return None
    return f"{lon} {lat}"


def _passthrough(value, *args):
    return value


def _dwithin(a, b, radius):
    if a is None or b is None or radius is None:
        return 0
    lon1, lat1 = (math.radians(float(v)) for v in a.split())
    lon2, lat2 = (math.radians(float(v)) for v in b.split())
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    distance = 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))
    return int(distance <= radius)


def _on_connect(dbapi_connection, connection_record):
    dbapi_connection.create_function("ST_MakePoint", 2, _make_point)
    dbapi_connection.create_function("ST_SetSRID", 2, _passthrough)
    dbapi_connection.create_function("geography", 1, _passthrough)
    dbapi_connection.create_function("ST_DWithin", 3, _dwithin)
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", _on_connect)
    create_db_and_tables(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Captures OTP emails instead of talking to SMTP."""
    sent = []

    def fake_send(to, otp):
        sent.append({"to": to, "otp": otp})
        return True

    monkeypatch.setattr(routers.auth, "send_otp_email", fake_send)
    monkeypatch.setattr(routers.users, "send_otp_email", fake_send)
    return sent


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make_user(role=Role.DONOR, email=None, verified=True, location=None, **extra):
        counter["n"] += 1
        user = User(
            fname=extra.pop("fname", f"First{counter['n']}"),
            lname=extra.pop("lname", f"Last{counter['n']}"),
            email=email or f"user{counter['n']}@example.com",
            password=hash_password(PASSWORD),
            role=role,
            address="1 Test Road",
            is_verified=verified,
            longitude=location[0] if location else None,
            latitude=location[1] if location else None,
            **extra,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def donor(make_user):
    return make_user(Role.DONOR, email="donor@example.com", location=NYABIHU)


@pytest.fixture
def acceptor(make_user):
    return make_user(Role.ACCEPTOR, email="acceptor@example.com", location=NEARBY)


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN, email="admin@example.com")
