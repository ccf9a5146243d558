import pytest
import os
from types import SimpleNamespace
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from perfwork.database import Base, get_db
from perfwork.main import app
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Get a clean database session for each test function with rollback safety."""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()


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


@pytest.fixture(scope="function")
def make_employee(db_session):
    """Factory for roster entries."""
    from perfwork.models.employee import Employee

    def _make(first_name, supervisor_id=None, reviewer_id=None, **kwargs):
        emp = Employee(
            first_name=first_name,
            last_name=kwargs.pop("last_name", "Tester"),
            supervisor_id=supervisor_id,
            reviewer_id=reviewer_id,
            is_supervisor=kwargs.pop("is_supervisor", False),
            is_reviewer=kwargs.pop("is_reviewer", False),
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db_session.add(emp)
        db_session.commit()
        return emp
    return _make


@pytest.fixture(scope="function")
def org_chart(make_employee):
    """
    director
      └── supervisor
            └── employee (reviewed by reviewer)
    reviewer: flagged reviewer with no reports
    outsider: unrelated employee
    """
    director = make_employee("Dana", position="Engineering Director", is_supervisor=True)
    supervisor = make_employee("Sam", supervisor_id=director.id, position="Team Lead", is_supervisor=True)
    reviewer = make_employee("Riley", position="Principal Engineer", is_reviewer=True)
    employee = make_employee(
        "Eli", supervisor_id=supervisor.id, reviewer_id=reviewer.id, position="Engineer"
    )
    outsider = make_employee("Olga", position="Analyst")
    return SimpleNamespace(
        director=director,
        supervisor=supervisor,
        reviewer=reviewer,
        employee=employee,
        outsider=outsider,
    )


@pytest.fixture(scope="function")
def auth_headers():
    """Helper fixture building the identity headers forwarded by the gateway."""
    def _headers(employee=None, roles="EMPLOYEE", permissions=None):
        headers = {"X-User-Roles": roles}
        if employee is not None:
            headers["X-Employee-Id"] = str(employee.id)
            headers["X-User-Name"] = employee.full_name
        if permissions:
            headers["X-User-Permissions"] = permissions
        return headers
    return _headers


@pytest.fixture(scope="function")
def hr_headers(auth_headers):
    return auth_headers(roles="HR_ADMIN")
