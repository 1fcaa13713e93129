import os

# Force an isolated in-memory database before the app modules read settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

from database import Base, SessionLocal, engine
from main import app
from models.product import QuantityType
from models.users import User
from services.ledger import LedgerService
from utils.hashing import get_password_hash
from utils.tokenJWT import create_access_token


@pytest.fixture(autouse=True)
def schema():
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session():
    db = SessionLocal()
    yield db
    db.rollback()
    db.close()


@pytest.fixture
def ledger(session):
    return LedgerService(session)


@pytest.fixture
def make_product(ledger):
    """Factory creating products through the ledger so opening stock is booked."""
    counter = {"code": 1000}

    def _make(stock=0, code=None, description=None, quantity_type=QuantityType.UNITS, price=None):
        counter["code"] += 1
        code = code or counter["code"]
        return ledger.create_product(
            code=code,
            description=description or f"Product {code}",
            quantity_type=quantity_type,
            price=price,
            initial_stock=stock,
        )

    return _make


@pytest.fixture
def client():
    return TestClient(app)


def _user(session, email, role):
    user = User(email=email, password_hash=get_password_hash("password123"), role=role)
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def admin_user(session):
    return _user(session, "admin@example.com", "admin")


@pytest.fixture
def operator_user(session):
    return _user(session, "operator@example.com", "operator")


@pytest.fixture
def admin_headers(admin_user):
    token = create_access_token({"sub": admin_user.email, "role": admin_user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(operator_user):
    token = create_access_token({"sub": operator_user.email, "role": operator_user.role})
    return {"Authorization": f"Bearer {token}"}
