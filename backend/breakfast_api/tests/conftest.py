"""
Shared fixtures: a throwaway SQLite database, seeded accounts and an app client.

Settings are read at import time, so the environment is prepared before any
breakfast_api module is imported.
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="breakfast_api_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["LOG_LEVEL"] = "WARNING"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from breakfast_api.core.database import SessionLocal, engine
from breakfast_api.core.security import create_access_token
from breakfast_api.main import app
from breakfast_api.models import Outlet, Product, User
from breakfast_api.models.outlet import Base


SHIPPING = {
    "fullName": "Ama Mensah",
    "address": "12 Ring Road",
    "city": "Accra",
    "state": "Greater Accra",
    "postalCode": "00233",
    "phone": "+233201234567",
}


@pytest.fixture
def db_session():
    """Fresh schema per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    # One portal for HTTP calls and sockets, so pushes reach open test sockets
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(role="user", name=None):
        counter["n"] += 1
        user = User(
            name=name or f"{role.title()} {counter['n']}",
            email=f"{role}{counter['n']}@breakfast.test",
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", "Ops Admin")


@pytest.fixture
def owner(make_user):
    return make_user("outlet", "Outlet Owner")


@pytest.fixture
def customer(make_user):
    return make_user("user", "Kofi Boateng")


@pytest.fixture
def other_customer(make_user):
    return make_user("user", "Efua Owusu")


@pytest.fixture
def outlet(db_session, owner):
    outlet = Outlet(name="Osu Breakfast Bar", owner_id=owner.id, location="Osu")
    db_session.add(outlet)
    db_session.commit()
    db_session.refresh(outlet)
    return outlet


@pytest.fixture
def products(db_session, outlet):
    croissant = Product(
        outlet_id=outlet.id, name="Croissant", price=Decimal("25.00"), stock=20,
        images=["croissant.jpg"],
    )
    juice = Product(
        outlet_id=outlet.id, name="Orange juice", price=Decimal("10.00"), stock=8,
        low_stock_threshold=5,
    )
    db_session.add_all([croissant, juice])
    db_session.commit()
    db_session.refresh(croissant)
    db_session.refresh(juice)
    return croissant, juice


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}

    return _headers


@pytest.fixture
def checkout(client, auth_headers, products):
    """POST /createOrder for a customer; defaults to a 100.00 credit order."""
    croissant, _ = products

    def _checkout(user, items=None, payment_method="credit", **extra):
        body = {
            "items": items or [{"productId": croissant.id, "quantity": 4}],
            "shipping": SHIPPING,
            "paymentMethod": payment_method,
        }
        body.update(extra)
        return client.post("/createOrder", json=body, headers=auth_headers(user))

    return _checkout


@pytest.fixture
def place_order(checkout):
    def _place(user, **kwargs):
        r = checkout(user, **kwargs)
        assert r.status_code == 201, r.text
        return r.json()

    return _place
