import pytest
import os
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from pld_scheduler.database import Base, get_db
from pld_scheduler.main import app
from pld_scheduler.models.member import Member, MemberRole
from pld_scheduler.core.config import settings
from fastapi.testclient import TestClient


@pytest.fixture(scope="function")
def engine():
    """
    A fresh in-memory database per test. Services commit and roll back on their own,
    so isolation comes from throwing the whole database away.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def make_member(db_session):
    """Factory for members; defaults to a senior member of division 'D1' with 2 SDV days."""
    counter = {"n": 0}

    def _make_member(**overrides):
        counter["n"] += 1
        fields = dict(
            pin_number=f"PIN{counter['n']:04d}",
            first_name="Test",
            last_name=f"Member{counter['n']}",
            division="D1",
            company_hire_date=date(2000, 1, 1),
            sdv_entitlement=2,
            role=MemberRole.USER,
        )
        fields.update(overrides)
        member = Member(**fields)
        db_session.add(member)
        db_session.commit()
        db_session.refresh(member)
        return member
    return _make_member


@pytest.fixture(scope="function")
def member(make_member):
    return make_member()


@pytest.fixture(scope="function")
def other_member(make_member):
    return make_member(first_name="Other")


@pytest.fixture(scope="function")
def division_admin(make_member):
    return make_member(first_name="Division", last_name="Admin", role=MemberRole.DIVISION_ADMIN)


@pytest.fixture(scope="function")
def company_admin(make_member):
    return make_member(first_name="Company", last_name="Admin", division=None, role=MemberRole.COMPANY_ADMIN)


@pytest.fixture(scope="function")
def auth_headers():
    """Builds the identity header the upstream gateway would forward."""
    def _auth_headers(member):
        return {settings.member_id_header: str(member.id)}
    return _auth_headers


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
