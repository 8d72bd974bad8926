import itertools
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from app import create_app
from billing.errors import PaymentRequestError
from billing.gateway import CreatedIntent, PaymentIntentInfo
from billing.pricing import to_minor_units
from config import Config
from models import db
from models.coupon import Coupon
from models.item import Event, Service
from models.subscription import Subscription
from models.user import User
from security.password import hash_password

PASSWORD = "walkies123"


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    BCRYPT_ROUNDS = 4
    STRIPE_SECRET_KEY = "sk_test_dummy"
    PAYMENT_CURRENCY = "usd"


def _stringify(metadata):
    # Stripe hands metadata back as strings
    return {key: str(val) for key, val in (metadata or {}).items()}


class FakeGateway:
    """In-memory stand-in for StripeGateway."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.intents = {}
        self.retrieve_error = None
        self.retrieve_calls = []

    def create_intent(self, amount, currency, metadata=None):
        intent_id = f"pi_test_{next(self._ids)}"
        minor = to_minor_units(amount)
        self.intents[intent_id] = PaymentIntentInfo(
            intent_id, minor, currency.lower(), "requires_payment_method", _stringify(metadata)
        )
        return CreatedIntent(f"{intent_id}_secret_abc", intent_id, minor)

    def add_intent(self, amount_minor, status="succeeded", currency="usd", metadata=None):
        intent_id = f"pi_test_{next(self._ids)}"
        self.intents[intent_id] = PaymentIntentInfo(intent_id, amount_minor, currency, status, _stringify(metadata))
        return intent_id

    def succeed(self, intent_id):
        self.intents[intent_id] = self.intents[intent_id]._replace(status="succeeded")

    def retrieve_intent(self, intent_id):
        self.retrieve_calls.append(intent_id)
        if self.retrieve_error is not None:
            raise self.retrieve_error
        if intent_id not in self.intents:
            raise PaymentRequestError("Payment not found")
        return self.intents[intent_id]


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(gateway):
    app = create_app(TestingConfig, gateway=gateway)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(email="owner@example.com", tier=None):
        user = User(email=email, password_hash=hash_password(PASSWORD), full_name="Pet Owner")
        db.session.add(user)
        db.session.commit()
        if tier:
            set_tier(user.id, tier)
        return user
    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def login(client):
    def _login(user):
        resp = client.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert resp.status_code == 200
        return resp
    return _login


def set_tier(user_id, tier):
    db.session.add(Subscription(user_id=user_id, tier=tier, status="active"))
    db.session.commit()


def make_service(price="100.00", provider_discount="10", premium_only=False, title="Grooming"):
    service = Service(
        title=title,
        provider="Happy Paws",
        price=Decimal(price),
        provider_discount=Decimal(provider_discount),
        is_premium_only=premium_only,
    )
    db.session.add(service)
    db.session.commit()
    return service


def make_event(price="40.00", provider_discount="0", premium_only=False, title="Puppy Meetup"):
    event = Event(
        title=title,
        provider="City Dog Club",
        price=Decimal(price),
        provider_discount=Decimal(provider_discount),
        is_premium_only=premium_only,
    )
    db.session.add(event)
    db.session.commit()
    return event


def make_coupon(code="PETS20", discount="20", usage_limit=0, used_count=0, applicable_type="all",
                valid_from=None, valid_until=None):
    now = datetime.utcnow()
    coupon = Coupon(
        code=code,
        discount_percent=Decimal(discount),
        usage_limit=usage_limit,
        used_count=used_count,
        applicable_type=applicable_type,
        valid_from=valid_from or now - timedelta(days=1),
        valid_until=valid_until or now + timedelta(days=30),
    )
    db.session.add(coupon)
    db.session.commit()
    return coupon
