"""Pytest configuration and fixtures."""

import os

# Must be set before the application modules build their engine/limiter
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Generator, List, Optional

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockrecon.api.routes.stock import get_inventory_client
from stockrecon.core.config import settings
from stockrecon.core.rbac import UserRole
from stockrecon.core.security import create_access_token
from stockrecon.db.base import Base
from stockrecon.db.session import get_db
from stockrecon.main import app
# Import all models to ensure they're registered with Base.metadata
from stockrecon.models import *
from stockrecon.models.report import Report, ReportStatus, ReportType
from stockrecon.models.stock import ProductGroup
from stockrecon.services.inventory_client import ConsumptionRecord

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

ADMIN_ID = 1
STAFF_ID = 2
OTHER_STAFF_ID = 3


class FakeInventoryClient:
    """Stands in for the POS client: canned records per day, call log."""

    def __init__(self):
        self.records: Dict[date, List[ConsumptionRecord]] = {}
        self.calls: List[date] = []
        self.error: Optional[Exception] = None

    def fetch_daily_consumption(self, day: date) -> List[ConsumptionRecord]:
        self.calls.append(day)
        if self.error is not None:
            raise self.error
        return list(self.records.get(day, []))


def _make_record(
    product_id,
    name: str,
    beginning="0",
    sales="0",
    outgoing="0",
    sku: Optional[str] = None,
    group: ProductGroup = ProductGroup.RAW_MATERIAL,
) -> ConsumptionRecord:
    return ConsumptionRecord(
        product_id=str(product_id),
        product_name=name,
        product_sku=sku,
        product_group=group,
        beginning_qty=Decimal(str(beginning)),
        sales_qty=Decimal(str(sales)),
        outgoing_qty=Decimal(str(outgoing)),
    )


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_inventory() -> FakeInventoryClient:
    return FakeInventoryClient()


@pytest.fixture
def make_record() -> Callable[..., ConsumptionRecord]:
    """Factory for POS consumption records."""
    return _make_record


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    """Point the media store at a temporary directory."""
    path = tmp_path / "uploads"
    monkeypatch.setattr(settings, "upload_dir", str(path))
    return path


@pytest.fixture(scope="function")
def client(
    db_session: Session, fake_inventory: FakeInventoryClient, upload_dir
) -> Generator[TestClient, None, None]:
    """Create a test client with database and POS overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_inventory_client] = lambda: fake_inventory
    # Disable rate limiter during tests to avoid flaky failures
    from stockrecon.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = settings.rate_limit_enabled
    app.dependency_overrides.clear()


def _auth_headers(user_id: int, role: UserRole) -> dict:
    token = create_access_token(
        data={"sub": str(user_id), "email": f"user{user_id}@example.com", "role": role.value}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict:
    return _auth_headers(ADMIN_ID, UserRole.ADMIN)


@pytest.fixture
def staff_headers() -> dict:
    return _auth_headers(STAFF_ID, UserRole.STAFF)


@pytest.fixture
def other_staff_headers() -> dict:
    return _auth_headers(OTHER_STAFF_ID, UserRole.STAFF)


@pytest.fixture
def make_report(db_session: Session) -> Callable[..., Report]:
    """Factory for draft reports."""
    def _make(
        user_id: int = STAFF_ID,
        report_type: ReportType = ReportType.STOCK,
        status: ReportStatus = ReportStatus.DRAFT,
    ) -> Report:
        report = Report(user_id=user_id, type=report_type, status=status, title="Daily stock")
        db_session.add(report)
        db_session.commit()
        db_session.refresh(report)
        return report

    return _make


@pytest.fixture
def stock_report(make_report) -> Report:
    """A draft stock report owned by the staff user."""
    return make_report()


@pytest.fixture
def admin_report(make_report) -> Report:
    """A draft stock report owned by the admin."""
    return make_report(user_id=ADMIN_ID)
