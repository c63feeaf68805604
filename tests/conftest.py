import os
import sys
from collections.abc import Callable, Generator
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_JSON", "false")

from clubdesk.config import Base, settings  # noqa: E402
from clubdesk.api.dependencies import get_db  # noqa: E402
from clubdesk.constants import TENANT_HEADER  # noqa: E402
from clubdesk.main import app  # noqa: E402
# Import the full models module so all tables register with Base metadata.
from clubdesk.models import models as _all_models  # noqa: E402,F401
from clubdesk.models.models import Enrollment, Fee, TenantMembership  # noqa: E402

TENANT_ID = "tenant-a"


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        test_client.close()
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[..., dict]:
    def _headers(user_id: str, tenant_id: str = TENANT_ID) -> dict:
        token = jwt.encode({"sub": user_id}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
        return {"Authorization": f"Bearer {token}", TENANT_HEADER: tenant_id}

    return _headers


@pytest.fixture
def create_membership(db_session: Session) -> Callable[..., TenantMembership]:
    def _create(
        user_id: str,
        role: str = "member",
        is_owner: bool = False,
        permissions: Optional[dict] = None,
        tenant_id: str = TENANT_ID,
    ) -> TenantMembership:
        membership = TenantMembership(
            tenant_id=tenant_id,
            user_id=user_id,
            role=role,
            is_owner=is_owner,
            permissions=permissions,
        )
        db_session.add(membership)
        db_session.commit()
        return membership

    return _create


@pytest.fixture
def create_enrollment(db_session: Session) -> Callable[..., Enrollment]:
    counter = {"value": 0}

    def _create(
        plan_type: str = "quarterly",
        monthly_fee: Decimal = Decimal("150.00"),
        start_date: date = date(2024, 1, 31),
        payment_day: Optional[int] = 31,
        tenant_id: str = TENANT_ID,
        athlete_id: Optional[str] = None,
    ) -> Enrollment:
        counter["value"] += 1
        enrollment = Enrollment(
            tenant_id=tenant_id,
            athlete_id=athlete_id or f"athlete-{counter['value']}",
            plan_type=plan_type,
            monthly_fee=monthly_fee,
            start_date=start_date,
            payment_day=payment_day,
            status="active",
        )
        db_session.add(enrollment)
        db_session.commit()
        return enrollment

    return _create


@pytest.fixture
def create_fee(db_session: Session) -> Callable[..., Fee]:
    def _create(
        due_date: date,
        amount: Decimal = Decimal("100.00"),
        status: str = "pending",
        paid_at=None,
        tenant_id: str = TENANT_ID,
        athlete_id: str = "athlete-x",
    ) -> Fee:
        fee = Fee(
            tenant_id=tenant_id,
            athlete_id=athlete_id,
            due_date=due_date,
            amount=amount,
            status=status,
            paid_at=paid_at,
        )
        db_session.add(fee)
        db_session.commit()
        return fee

    return _create
