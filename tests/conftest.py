"""Shared test fixtures for all test modules."""

import contextlib
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import coupon_engine.models  # noqa: F401
from coupon_engine.core import database as db_module
from coupon_engine.core.database import Base, get_db
from coupon_engine.models.organization import Organization
from coupon_engine.models.shared import DEFAULT_ORGANIZATION_ID, utc_now
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.schemas.coupon import CouponCreate

# In-memory SQLite engine with StaticPool so all sessions share one database.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

DEFAULT_ORG_ID = DEFAULT_ORGANIZATION_ID


def _seed_default_organization(session: Session) -> None:
    """Insert the default organization used by all tests."""
    org = session.query(Organization).filter(Organization.id == DEFAULT_ORG_ID).first()
    if org is None:
        session.add(Organization(id=DEFAULT_ORG_ID, name="Default Test Organization"))
        session.commit()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    session = _TestSessionLocal()
    try:
        _seed_default_organization(session)
    finally:
        session.close()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def default_org_id():
    """Return the default organization ID for tests."""
    return DEFAULT_ORG_ID


@pytest.fixture
def db_session():
    """Create a database session for direct repository and service testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def other_org_id(db_session):
    """A second organization, for tenant isolation checks."""
    org = Organization(name="Other Test Organization")
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org.id


@pytest.fixture
def make_coupon(db_session):
    """Factory creating coupons that started yesterday unless told otherwise."""

    def _make(code: str = "SAVE10", organization_id=DEFAULT_ORG_ID, **overrides):
        fields = {
            "name": f"{code} coupon",
            "discount_type": "percentage",
            "discount_value": Decimal("10"),
            "start_at": utc_now() - timedelta(days=1),
        }
        fields.update(overrides)
        return CouponRepository(db_session).create(
            CouponCreate(code=code, **fields), organization_id
        )

    return _make
