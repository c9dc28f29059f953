import itertools

import mongomock
import pytest
from fastapi.testclient import TestClient

from storefront.config import API_PREFIX, Settings
from storefront.database import CATEGORIES, PRODUCTS
from storefront.main import create_app
from storefront.utils import utcnow

PASSWORD = "Secret#123"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "Admin#1234"

_counter = itertools.count(1)


class FakeGateway:
    key_id = "rzp_test_key"

    def __init__(self):
        self.orders = []
        self.refunds = []

    def create_order(self, amount_paise, currency="INR", receipt=None):
        order = {"id": f"order_test_{len(self.orders) + 1}", "amount": amount_paise, "currency": currency,
                 "receipt": receipt}
        self.orders.append(order)
        return order

    def refund(self, payment_id, amount_paise):
        refund = {"id": f"rfnd_test_{len(self.refunds) + 1}", "payment_id": payment_id, "amount": amount_paise}
        self.refunds.append(refund)
        return refund


class FakeMailer:
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html, text=None):
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        app_env="test",
        database_url="mongodb://localhost:27017",
        database_name="storefront_test",
        jwt_access_secret="access-secret-for-tests",
        jwt_refresh_secret="refresh-secret-for-tests",
        bcrypt_rounds=4,
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret="rzp_test_secret",
        razorpay_webhook_secret="rzp_webhook_secret",
        email_host="smtp.example.com",
        email_user="mailer",
        email_password="mailer-password",
        email_from="store@example.com",
        client_url="http://localhost:5173",
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
        admin_name="Store Admin",
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def client(settings, db, gateway, mailer):
    app = create_app(settings, db=db, gateway=gateway, mailer=mailer)
    with TestClient(app) as c:
        yield c


def api(path: str) -> str:
    return f"{API_PREFIX}{path}"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register(client, email=None, name="Test Shopper", phone="9876543210"):
    email = email or f"shopper{next(_counter)}@example.com"
    res = client.post(api("/auth/register"), json={"name": name, "email": email, "password": PASSWORD,
                                                   "phone": phone})
    assert res.status_code == 201, res.text
    data = res.json()["data"]
    return data["access_token"], data["user"]


@pytest.fixture
def user_headers(client):
    token, _ = register(client)
    return bearer(token)


@pytest.fixture
def admin_headers(client):
    res = client.post(api("/auth/login"), json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert res.status_code == 200, res.text
    return bearer(res.json()["data"]["access_token"])


def make_category(db, name="Electronics", slug=None):
    now = utcnow()
    return db[CATEGORIES].insert_one({
        "name": name, "slug": slug or name.lower(), "is_active": True, "created_at": now, "updated_at": now,
    }).inserted_id


def make_product(db, category=None, **overrides):
    n = next(_counter)
    now = utcnow()
    doc = {
        "name": f"Product {n}",
        "slug": f"product-{n}",
        "description": "A perfectly ordinary product.",
        "price": 600.0,
        "discount_price": None,
        "category": category or make_category(db, name=f"Category {n}", slug=f"category-{n}"),
        "sku": f"SKU-{n:05d}",
        "stock": 10,
        "sold": 0,
        "images": [],
        "thumbnail": {"public_id": f"seed/{n}", "url": f"https://cdn.example.com/{n}.jpg"},
        "features": [],
        "specifications": {},
        "rating": 0.0,
        "num_reviews": 0,
        "is_featured": False,
        "is_new": False,
        "is_trending": False,
        "is_active": True,
        "tags": [],
        "created_at": now,
        "updated_at": now,
    }
    doc.update(overrides)
    doc["_id"] = db[PRODUCTS].insert_one(doc).inserted_id
    return doc


SHIPPING_ADDRESS = {
    "full_name": "Test Shopper",
    "phone": "9876543210",
    "address_line1": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}
