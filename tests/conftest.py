from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.database import Base
from app.dependencies import create_access_token, get_clock, get_db
from app.main import app
from app.models.bonding_question import BondingQuestion
from app.models.connection import Connection
from app.models.listing import Listing
from app.models.user import User

if settings.test_database_url.startswith("sqlite"):
    test_engine = create_engine(
        settings.test_database_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    test_engine = create_engine(settings.test_database_url)
TestSession = sessionmaker(bind=test_engine)

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db():
    connection = test_engine.connect()
    transaction = connection.begin()
    session = TestSession(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def client(db, clock):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _user(db, email, username, role="member", **extra):
    user = User(email=email, username=username, role=role, password_hash="x", **extra)
    user.set_password("secret123")
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def buyer(db):
    return _user(db, "buyer@test.com", "jimin_stan", country="KR", instagram="@buyer_ig")


@pytest.fixture
def seller(db):
    return _user(db, "seller@test.com", "yoongi_stan", country="US", instagram="@seller_ig")


@pytest.fixture
def outsider(db):
    return _user(db, "outsider@test.com", "lurker")


@pytest.fixture
def admin_user(db):
    return _user(db, "admin@test.com", "admin", role="admin")


def _headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def buyer_headers(buyer):
    return _headers(buyer)


@pytest.fixture
def seller_headers(seller):
    return _headers(seller)


@pytest.fixture
def outsider_headers(outsider):
    return _headers(outsider)


@pytest.fixture
def admin_headers(admin_user):
    return _headers(admin_user)


@pytest.fixture
def questions(db):
    prompts = [
        "Who is your bias?",
        "Which album got you into BTS?",
        "What does ARMY mean to you?",
    ]
    rows = [BondingQuestion(prompt=p) for p in prompts]
    db.add_all(rows)
    db.flush()
    return rows


@pytest.fixture
def ticket_listing(db, seller):
    listing = Listing(seller_id=seller.id, kind="ticket", title="Busan Day 1 - Floor")
    db.add(listing)
    db.flush()
    return listing


@pytest.fixture
def merch_listing(db, seller):
    listing = Listing(seller_id=seller.id, kind="merch", title="Proof lightstick")
    db.add(listing)
    db.flush()
    return listing


@pytest.fixture
def make_connection():
    """Build unsaved connections with every workflow field filled in."""

    def factory(**overrides) -> Connection:
        fields = dict(
            id=1,
            kind="ticket",
            listing_id=10,
            buyer_id=100,
            seller_id=200,
            stage="pending_seller",
            stage_started_at=START,
            stage_expires_at=START + timedelta(hours=24),
            bonding_question_ids=None,
            buyer_bonding_submitted_at=None,
            seller_bonding_submitted_at=None,
            buyer_comfort=None,
            seller_comfort=None,
            buyer_social_share=None,
            seller_social_share=None,
            buyer_want_social_share=None,
            seller_want_social_share=None,
            buyer_agreed=False,
            seller_agreed=False,
            ended_by=None,
            ended_at=None,
            stage_before_ended=None,
            ended_reason=None,
        )
        fields.update(overrides)
        return Connection(**fields)

    return factory
