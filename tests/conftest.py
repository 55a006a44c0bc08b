"""Pytest fixtures for Storefront tests.

The app runs against an in-memory mongomock database with fake payment,
media and mail adapters injected through create_app().
"""
import itertools
import json
from typing import Any, Dict, List

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes
from dependencies import build_services
from errors import BadRequestError, MailDeliveryError, PaymentGatewayError
from main import create_app
from schemas import Product, User
from security import create_access_token, hash_password
from services.gateway import GatewayPayment

PASSWORD = "secret-pass-1"
PASSWORD_HASH = hash_password(PASSWORD)


class FakeGateway:
    """In-memory stand-in for StripeGateway."""

    configured = True

    def __init__(self):
        self.payments: Dict[str, GatewayPayment] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.checkouts: List[Dict[str, Any]] = []
        self.lookups: List[str] = []
        self.fail_lookups = False
        self._ids = itertools.count(1)

    def add_payment(self, payment_id, status, order_id=None, amount=None):
        self.payments[payment_id] = GatewayPayment(
            id=payment_id, status=status, raw_status=status, order_id=order_id, amount=amount, currency="usd"
        )

    def create_order_checkout(self, order, customer_email=None):
        session_id = f"cs_test_{next(self._ids)}"
        self.sessions[session_id] = {
            "id": session_id,
            "payment_id": None,
            "order_id": str(order["_id"]),
            "status": "open",
            "payment_status": "unpaid",
        }
        checkout = {"id": session_id, "url": f"https://checkout.test/{session_id}", "status": "pending",
                    "order_id": str(order["_id"])}
        self.checkouts.append(checkout)
        return checkout

    def create_payment(self, description, amount, payer_email=None, external_reference=None):
        session_id = f"cs_test_{next(self._ids)}"
        return {"id": session_id, "url": f"https://checkout.test/{session_id}", "status": "pending"}

    def create_subscription(self, reason, amount, frequency, frequency_type, payer_email=None, external_reference=None):
        sub_id = f"sub_test_{next(self._ids)}"
        self.subscriptions[sub_id] = {"id": sub_id, "status": "active", "reason": reason}
        return {"id": sub_id, "url": f"https://checkout.test/{sub_id}", "status": "pending"}

    def get_subscription(self, subscription_id):
        if subscription_id not in self.subscriptions:
            raise PaymentGatewayError("subscription lookup", "No such subscription")
        return self.subscriptions[subscription_id]

    def cancel_subscription(self, subscription_id):
        sub = self.get_subscription(subscription_id)
        sub["status"] = "canceled"
        return {"id": subscription_id, "status": "canceled"}

    def get_payment(self, payment_id):
        self.lookups.append(payment_id)
        if self.fail_lookups or payment_id not in self.payments:
            raise PaymentGatewayError("payment lookup", f"No such payment_intent: {payment_id}")
        p = self.payments[payment_id]
        return GatewayPayment(p.id, p.status, p.raw_status, p.order_id, p.amount, p.currency)

    def get_checkout_session(self, session_id):
        if session_id not in self.sessions:
            raise PaymentGatewayError("checkout lookup", f"No such checkout.session: {session_id}")
        return dict(self.sessions[session_id])

    def parse_webhook(self, payload, signature):
        return json.loads(payload)


class FakeMedia:
    def __init__(self):
        self.uploads = []

    def upload(self, content, filename, content_type, folder):
        if content_type not in ("image/png", "image/jpeg"):
            raise BadRequestError(f"Unsupported file type {content_type}")
        self.uploads.append((folder, filename, len(content)))
        return {"url": f"https://media.test/{folder}/{filename}", "public_id": f"{folder}/{filename}"}


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, template, to, name, url):
        if self.fail:
            raise MailDeliveryError(to, "provider unavailable")
        self.sent.append({"template": template, "to": to, "name": name, "url": url})

    def last_token(self):
        return self.sent[-1]["url"].rsplit("/", 1)[-1]


@pytest.fixture
def db():
    client = mongomock.MongoClient(tz_aware=True)
    database = client["storefront_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def media():
    return FakeMedia()


@pytest.fixture
def services(db, gateway, media, mailer):
    return build_services(db, gateway=gateway, media=media, mailer=mailer)


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


@pytest.fixture
def make_user(services):
    counter = itertools.count(1)

    def _make(role="user", email=None, name=None, is_active=True):
        n = next(counter)
        return services.users.create(User(
            name=name or f"{role.title()} {n}",
            email=email or f"{role}{n}@example.com",
            password=PASSWORD_HASH,
            role=role,
            is_active=is_active,
            email_verified=True,
        ))

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role="admin")


def headers_for(user_doc) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user_doc['_id']), user_doc['role'])}"}


@pytest.fixture
def headers():
    return headers_for


@pytest.fixture
def user_headers(user):
    return headers_for(user)


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture
def make_category(services):
    counter = itertools.count(1)

    def _make(name=None, description=""):
        return services.categories.create(name or f"Category {next(counter)}", description)

    return _make


@pytest.fixture
def make_product(services):
    counter = itertools.count(1)

    def _make(price=10.0, stock=5, **fields):
        fields.setdefault("name", f"Product {next(counter)}")
        return services.products.products.create(Product(price=price, stock=stock, **fields))

    return _make


@pytest.fixture
def password():
    return PASSWORD
