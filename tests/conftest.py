import os

# must be set before wheelz.database is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("NOTIFY_CHANNELS", "inapp")

from types import SimpleNamespace

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from wheelz.auth import get_current_user, get_socket_user_id
from wheelz.bookings import BookingLifecycle, sink_notifier
from wheelz.database import Base, SessionLocal, engine, get_db
from wheelz.errors import NotificationError
from wheelz.main import app
from wheelz.models import User, Vehicle
from wheelz.notifications import get_notification_sink


class RecordingSink:
    """Keeps every notice; raises for user ids listed in ``fail_for``."""

    name = "recording"

    def __init__(self, fail_for=()):
        self.sent = []
        self.attempts = []
        self.fail_for = set(fail_for)

    def notify(self, notice):
        self.attempts.append(notice)
        if notice.user_id in self.fail_for:
            raise NotificationError(notice.email or "?", notice.subject, "mailbox unavailable")
        self.sent.append(notice)

    def subjects_for(self, user_id):
        return [n.subject for n in self.sent if n.user_id == user_id]


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def people(db):
    owner = User(name="Bashir Owner", email="owner@example.com")
    renter = User(name="Amina Renter", email="renter@example.com")
    other = User(name="Chen Renter", email="chen@example.com")
    driver = User(name="Dev Driver", email="driver@example.com", user_type="Driver")
    admin = User(name="Ada Admin", email="admin@example.com", is_admin=True)
    db.add_all([owner, renter, other, driver, admin])
    db.flush()
    vehicle = Vehicle(owner_id=owner.id, brand="Toyota", model="Axio", year=2018, price_per_day=100)
    second = Vehicle(owner_id=owner.id, brand="Yamaha", model="FZ", type="Bike", price_per_day=30)
    db.add_all([vehicle, second])
    db.commit()
    return SimpleNamespace(
        owner=owner.id,
        renter=renter.id,
        other=other.id,
        driver=driver.id,
        admin=admin.id,
        vehicle=vehicle.id,
        bike=second.id,
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def lifecycle(db, sink):
    return BookingLifecycle(db, notify=sink_notifier(sink))


@pytest.fixture
def client(sink):
    app.dependency_overrides[get_notification_sink] = lambda: sink
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def login_as():
    """Make requests run as the given user id (None logs out)."""

    def _login(user_id):
        def _current(db: Session = Depends(get_db)):
            return db.get(User, user_id) if user_id else None

        app.dependency_overrides[get_current_user] = _current
        # sockets resolve their user once, when they connect
        app.dependency_overrides[get_socket_user_id] = lambda: user_id

    return _login
