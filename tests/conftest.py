import pytest
import os
from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from leave_engine.database import Base, get_db
from leave_engine.core.clock import FixedClock
from leave_engine.main import app
from leave_engine.models.enums import Gender, MaritalStatus, Region, Role
from leave_engine.services.engine import LeaveGovernanceEngine
from fastapi.testclient import TestClient
from tests.factories import RecordingNotifier, add_employee

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# A Wednesday. 2025-03-15 is a Saturday, 2025-03-17 a Monday.
TODAY = datetime(2025, 3, 19, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_session():
    """Fresh in-memory database per test; services commit for real."""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def clock():
    return FixedClock(TODAY)


@pytest.fixture(scope="function")
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope="function")
def engine(db_session, clock, notifier):
    return LeaveGovernanceEngine(db_session, clock=clock, notifier=notifier)


@pytest.fixture(scope="function")
def org(db_session):
    """
    Small reporting tree:

        hr-admin (HR_ADMIN)
        director (MANAGER, INDIA)
          manager (MANAGER, INDIA)
            priya (EMPLOYEE, INDIA, female, married)
            anita (EMPLOYEE, INDIA, female, single)
            ravi  (EMPLOYEE, INDIA, male, married)
        us-director (SVP, USA)
          us-vp (VP, USA)
          us-manager (MANAGER, USA)
    """
    db = db_session
    add_employee(db, "hr-admin", role=Role.HR_ADMIN)
    add_employee(db, "director", role=Role.MANAGER, gender=Gender.MALE)
    add_employee(db, "manager", role=Role.MANAGER, manager="director", gender=Gender.MALE)
    add_employee(db, "priya", manager="manager")
    add_employee(db, "anita", manager="manager", marital=MaritalStatus.SINGLE)
    add_employee(db, "ravi", manager="manager", gender=Gender.MALE)
    add_employee(db, "us-director", region=Region.USA, role=Role.SVP, gender=Gender.MALE)
    add_employee(db, "us-vp", region=Region.USA, role=Role.VP, manager="us-director", gender=Gender.MALE)
    add_employee(db, "us-manager", region=Region.USA, role=Role.MANAGER, manager="us-director")
    return db


@pytest.fixture(scope="function")
def client(db_session, org):
    """TestClient bound to the per-test session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
