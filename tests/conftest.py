from types import SimpleNamespace

import jwt
import pytest

from orders_service.app import create_app
from orders_service.db import db
from orders_service.models import User, Wine, WineStatus
from orders_service.services import cart_service, order_service

JWT_SECRET = "test-secret"
MAC_KEY = "test-mac-key"

ADDRESS = {
    "first_name": "Bea",
    "last_name": "Buyer",
    "address1": "Via Roma 1",
    "city": "Firenze",
    "zip_code": "50100",
    "country": "IT",
}


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "JWT_SECRET": JWT_SECRET,
        "PAYMENT_PROVIDERS": "PAYPAL,STRIPE,ESCROW,BANK_GATEWAY",
        "BANK_GATEWAY_ALIAS": "ALIAS_WEB_TEST",
        "BANK_GATEWAY_MAC_KEY": MAC_KEY,
        "BANK_GATEWAY_ENVIRONMENT": "test",
        "SHIPPING_LABEL_URL": None,
        "WEB_URL": "http://web.test",
        "API_URL": "http://api.test",
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def users(app):
    buyer = User(username="buyer", email="buyer@example.com", first_name="Bea", last_name="Buyer")
    seller_a = User(username="cantina_a", email="a@example.com", first_name="Aldo", last_name="Rossi")
    seller_b = User(username="cantina_b", email="b@example.com", first_name="Bruna", last_name="Verdi")
    admin = User(username="admin", email="admin@example.com", role="ADMIN")
    db.session.add_all([buyer, seller_a, seller_b, admin])
    db.session.commit()
    return SimpleNamespace(buyer=buyer, seller_a=seller_a, seller_b=seller_b, admin=admin)


@pytest.fixture
def make_wine(app):
    def _make(seller, price, quantity=10, title="Chianti Classico", status=WineStatus.ACTIVE):
        w = Wine(seller_id=seller.id, title=title, price=price, quantity=quantity, status=status)
        db.session.add(w)
        db.session.commit()
        return w

    return _make


@pytest.fixture
def token():
    def _token(user, role=None):
        claims = {"sub": str(user.id), "role": role or user.role}
        return jwt.encode(claims, JWT_SECRET, algorithm="HS256")

    return _token


@pytest.fixture
def auth(token):
    def _auth(user, role=None):
        return {"Authorization": f"Bearer {token(user, role)}"}

    return _auth


@pytest.fixture
def place_order(users, make_wine):
    """Check out a single-seller cart and return the confirmed order with its wine."""

    def _place(quantity=2, stock=10, price=20, provider="PAYPAL"):
        wine = make_wine(users.seller_a, price, quantity=stock)
        cart_service.add_item(users.buyer.id, wine.id, quantity)
        result = order_service.checkout(users.buyer.id, provider, shipping_address=ADDRESS)
        return result["orders"][0], wine

    return _place


def reload(obj):
    db.session.expire_all()
    return db.session.get(type(obj), obj.id)
