"""
Pytest fixtures for the accounting and treasury core.

Provides:
- An in-memory SQLite database per test (StaticPool keeps one connection)
- Organizations, users and bearer tokens
- A FastAPI TestClient bound to the test session
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from obraledger.core.config import settings
from obraledger.core.database import Base, get_db
from obraledger.core.security import create_access_token
from obraledger.main import app
from obraledger.models import Organization, User, UserRole
from obraledger.schemas import CashBoxCreate, BankAccountCreate, CheckCreate
from obraledger.services.accounting_service import StandardChartService
from obraledger.services.treasury_service import CashBoxService, BankAccountService

settings.RATE_LIMIT_ENABLED = False


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_organization(db, name="Constructora Norte", enable_accounting=False):
    organization = Organization(name=name, local_currency="PESOS", enable_accounting=enable_accounting)
    db.add(organization)
    db.commit()
    return organization


def make_user(db, organization, username="admin", role=UserRole.ADMIN.value, is_superuser=False):
    # Tokens are minted directly, so the hash is never checked
    user = User(
        username=username,
        email=f"{username}@example.com",
        hashed_password="not-a-real-hash",
        role=role,
        is_superuser=is_superuser,
        organization_id=organization.id,
    )
    db.add(user)
    db.commit()
    return user


def auth_headers(user):
    token = create_access_token(data={"sub": user.username, "organization_id": user.organization_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def organization(db):
    return make_organization(db)


@pytest.fixture
def accounting_org(db, organization):
    StandardChartService(db).setup_standard_chart(organization.id)
    db.commit()
    return organization


@pytest.fixture
def other_organization(db):
    return make_organization(db, name="Obras del Sur")


@pytest.fixture
def admin_user(db, organization):
    return make_user(db, organization)


@pytest.fixture
def headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def cash_box(db, organization):
    cash_box = CashBoxService(db).create(organization.id, CashBoxCreate(name="Caja Obra"))
    db.commit()
    return cash_box


@pytest.fixture
def bank_account(db, organization):
    bank_account = BankAccountService(db).create(
        organization.id,
        BankAccountCreate(name="Cuenta Corriente", bank_name="Banco Nación", account_number="0001-22")
    )
    db.commit()
    return bank_account


def check_data(number, amount, due_date=None, is_received=True, cash_box_id=None, bank_account_id=None,
               currency="PESOS"):
    return CheckCreate(
        check_number=number,
        amount=Decimal(str(amount)),
        currency=currency,
        due_date=due_date or date.today() + timedelta(days=30),
        is_received=is_received,
        cash_box_id=cash_box_id,
        bank_account_id=bank_account_id,
    )


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.state.metrics_cache.clear()
    # No context manager: the lifespan would create tables on the configured database
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()
