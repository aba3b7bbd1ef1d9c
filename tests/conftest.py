"""
Test configuration and fixtures.
"""
import os
from datetime import date, timedelta
from typing import Generator

import pytest

# Set test configuration before importing app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-scanfarma-suite-0123456789"

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from scanfarma.main import app
from scanfarma.db.base import Base
from scanfarma.db.session import get_db
from scanfarma.models import Pharmacy, User
from scanfarma.core.calendar_dates import today_for
from scanfarma.core.security import hash_password
from scanfarma.services.batch_store import BatchStore


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh in-memory schema per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create test client with database session override."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def today() -> date:
    """Today in UTC, which is what a UTC pharmacy sees."""
    return today_for("UTC")


@pytest.fixture
def test_user(db: Session) -> User:
    user = User(
        email="testuser@example.com",
        hashed_password=hash_password("testpassword123"),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def pharmacy(db: Session, test_user: User) -> Pharmacy:
    pharmacy = Pharmacy(name="Test Pharmacy", owner_id=test_user.id, timezone="UTC")
    db.add(pharmacy)
    db.commit()
    db.refresh(pharmacy)
    return pharmacy


@pytest.fixture
def other_pharmacy(db: Session) -> Pharmacy:
    """A second tenant, to check data never leaks across pharmacies."""
    owner = User(email="other@example.com", hashed_password=hash_password("otherpassword123"))
    db.add(owner)
    db.commit()
    pharmacy = Pharmacy(name="Other Pharmacy", owner_id=owner.id, timezone="UTC")
    db.add(pharmacy)
    db.commit()
    db.refresh(pharmacy)
    return pharmacy


@pytest.fixture
def auth_headers(client: TestClient, test_user: User) -> dict:
    """Get auth headers for test user."""
    response = client.post(
        "/api/auth/login",
        json={"email": "testuser@example.com", "password": "testpassword123"}
    )
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def pharmacy_headers(auth_headers: dict, pharmacy: Pharmacy) -> dict:
    """Auth headers for a user who already has a pharmacy."""
    return auth_headers


@pytest.fixture
def load_batch(db: Session, pharmacy: Pharmacy, today: date):
    """
    Factory loading a batch that expires ``days`` from today.

    Usage:
        batch = load_batch("7791", days=10, quantity=5)
    """
    def _load(barcode: str = "7790001", days: int = 60, quantity: int = 10,
              lot_number: str = None, name: str = "Ibuprofeno 400mg", expiration_date: date = None):
        store = BatchStore(db, pharmacy.id)
        _, batch, _ = store.load_stock(
            barcode=barcode,
            lot_number=lot_number or f"L-{barcode}-{days}",
            expiration_date=expiration_date or today + timedelta(days=days),
            quantity=quantity,
            name=name,
        )
        store.commit()
        db.refresh(batch)
        return batch

    return _load
