import os
import tempfile
import uuid
from datetime import date, timedelta

import pytest

_tmpdir = tempfile.mkdtemp(prefix="servicehub-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'test.db')}"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.setdefault("AUTO_CREATE_DB", "true")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from servicehub.db import Base, engine, get_db  # noqa: E402
from servicehub.main import app  # noqa: E402
from servicehub.models.models import User, Service, Inventory  # noqa: E402
from servicehub.auth.security import create_access_token, get_password_hash  # noqa: E402


TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sqlite_foreign_keys():
    """Enforce foreign keys the way PostgreSQL does for the rest of the test."""

    def _on_connect(dbapi_conn, _record):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    event.listen(engine, "connect", _on_connect)
    engine.dispose()
    yield
    event.remove(engine, "connect", _on_connect)
    engine.dispose()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def _make_user(db, role: str, username: str, mobile: str) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=get_password_hash("secret123"),
        mobile=mobile,
        role=role,
        is_active=True,
        is_email_verified=True,
        is_mobile_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user.id), user.role)}"}


@pytest.fixture
def admin(db):
    return _make_user(db, "admin", "admin_user", "+94770000001")


@pytest.fixture
def owner(db):
    return _make_user(db, "house_owner", "owner_one", "+94770000002")


@pytest.fixture
def other_owner(db):
    return _make_user(db, "house_owner", "owner_two", "+94770000003")


@pytest.fixture
def technician(db):
    return _make_user(db, "technician", "tech_one", "+94770000004")


@pytest.fixture
def technician_two(db):
    return _make_user(db, "technician", "tech_two", "+94770000005")


@pytest.fixture
def service(db):
    s = Service(
        name="Pipe Repair",
        category="plumbing",
        description="Fix leaking pipes",
        base_price=1500.0,
        estimated_duration="1-2 hours",
        features=[],
        requirements=[],
        image_url="",
        is_active=True,
    )
    db.add(s)
    db.commit()
    db.refresh(s)
    return s


@pytest.fixture
def item(db):
    i = Inventory(
        name="PVC Pipe",
        description="Half inch PVC pipe",
        category="plumbing",
        quantity=10,
        unit="meter",
        price=200.0,
        cost=120.0,
        reorder_level=2,
        location="Main Storage",
    )
    db.add(i)
    db.commit()
    db.refresh(i)
    return i


def booking_payload(service_id, lines=None, scheduled_date=None, scheduled_time="10:00", payment_method="cash") -> dict:
    return {
        "serviceId": str(service_id),
        "scheduledDate": (scheduled_date or date.today() + timedelta(days=3)).isoformat(),
        "scheduledTime": scheduled_time,
        "address": "12 Temple Road, Colombo",
        "description": "Kitchen sink leaking",
        "urgency": "normal",
        "paymentMethod": payment_method,
        "selectedInventory": lines or [],
    }


def line_for(item, quantity: int) -> dict:
    return {"itemId": str(item.id), "name": item.name, "unit": item.unit, "quantity": quantity, "price": item.price}


@pytest.fixture
def make_booking(client, owner, service):
    def _make(user=None, lines=None, **kwargs):
        user = user or owner
        r = client.post("/api/bookings", json=booking_payload(service.id, lines, **kwargs), headers=auth_headers(user))
        assert r.status_code == 201, r.text
        return r.json()["booking"]

    return _make


def new_id() -> str:
    return str(uuid.uuid4())
