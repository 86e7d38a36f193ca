import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

CONFIG_DIR = Path(__file__).resolve().parents[3] / "config"

# Must be set before medirate_api.database creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("MEDIRATE_CONFIG_DIR", str(CONFIG_DIR))

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from medirate_api.auth.jwt import JWTHandler
from medirate_api.config.loader import (
    APIConfig,
    BlobConfig,
    BrevoConfig,
    Config,
    GlobalConfig,
    NotificationConfig,
    StripeConfig,
    get_config,
)
from medirate_api.database import get_db
from medirate_api.dependencies import get_blob_store, get_email_sender, get_stripe_client
from medirate_api.main import create_app
from medirate_api.models import AdminUser, Base, utcnow
from medirate_api.notifications.sender import EmailDeliveryError
from medirate_api.services.blob_store import BlobObject, BlobStoreError, normalize_pathname
from medirate_api.services.stripe_client import StripeError

JWT_SECRET = "test-secret"
WEBHOOK_SECRET = "whsec_test"


def to_timestamp(value: datetime) -> int:
    return int(value.replace(tzinfo=timezone.utc).timestamp())


class FakeStripeClient:
    """In-memory stand-in for StripeClient."""

    def __init__(self):
        self.customers: Dict[str, dict] = {}
        self.subscriptions: Dict[str, List[dict]] = {}
        self.invoices: Dict[str, dict] = {}
        self.prices: List[dict] = []
        self.refunds: List[dict] = []
        self.updates: List[Tuple[str, dict]] = []
        self.canceled: List[str] = []
        self.lookups = 0
        self.fail = False

    def _check(self):
        if self.fail:
            raise StripeError("Stripe is unavailable", status_code=503)

    def add_customer(self, email: str) -> dict:
        if email not in self.customers:
            customer_id = f"cus_{len(self.customers) + 1}"
            self.customers[email] = {"id": customer_id, "email": email}
            self.subscriptions[customer_id] = []
        return self.customers[email]

    def add_subscription(self, email: str, status: str = "active", price_id: str = "price_basic",
                         period_start: Optional[datetime] = None, period_end: Optional[datetime] = None,
                         **extra) -> dict:
        customer = self.add_customer(email)
        now = utcnow()
        period_start = period_start or now - timedelta(days=10)
        period_end = period_end or now + timedelta(days=20)
        subscription = {
            "id": f"sub_{sum(len(s) for s in self.subscriptions.values()) + 1}",
            "customer": customer["id"],
            "status": status,
            "current_period_start": to_timestamp(period_start),
            "current_period_end": to_timestamp(period_end),
            "cancel_at_period_end": False,
            "items": {"data": [{"id": "si_1", "price": {"id": price_id}}]},
            "metadata": {},
            **extra,
        }
        self.subscriptions[customer["id"]].append(subscription)
        return subscription

    def find_customer_by_email(self, email):
        self._check()
        self.lookups += 1
        return self.customers.get(email)

    def retrieve_customer(self, customer_id):
        self._check()
        for customer in self.customers.values():
            if customer["id"] == customer_id:
                return customer
        raise StripeError("No such customer", status_code=404)

    def list_subscriptions(self, customer_id, status="all", limit=100):
        self._check()
        return list(self.subscriptions.get(customer_id, []))

    def retrieve_subscription(self, subscription_id, expand=None):
        self._check()
        for subscriptions in self.subscriptions.values():
            for subscription in subscriptions:
                if subscription["id"] == subscription_id:
                    return dict(subscription)
        raise StripeError("No such subscription", status_code=404)

    def update_subscription(self, subscription_id, params):
        self._check()
        self.updates.append((subscription_id, params))
        subscription = self.retrieve_subscription(subscription_id)
        subscription.update({k: v for k, v in params.items() if k != "items"})
        return subscription

    def cancel_subscription(self, subscription_id):
        self._check()
        self.canceled.append(subscription_id)
        subscription = self.retrieve_subscription(subscription_id)
        subscription["status"] = "canceled"
        return subscription

    def list_prices(self):
        self._check()
        return list(self.prices)

    def retrieve_invoice(self, invoice_id):
        self._check()
        return self.invoices[invoice_id]

    def create_refund(self, amount, charge=None, payment_intent=None, reason="requested_by_customer"):
        self._check()
        refund = {"id": f"re_{len(self.refunds) + 1}", "amount": amount, "charge": charge,
                  "payment_intent": payment_intent}
        self.refunds.append(refund)
        return refund


class FakeBlobStore:
    """In-memory stand-in for BlobStore."""

    def __init__(self):
        self.blobs: Dict[str, Tuple[BlobObject, bytes]] = {}
        self.fail_paths = set()

    def add(self, pathname: str, data: bytes = b"data") -> BlobObject:
        return self.put(pathname, data)

    def list(self, prefix=None, cursor=None, limit=1000):
        matching = [blob for path, (blob, _) in sorted(self.blobs.items()) if not prefix or path.startswith(prefix)]
        return matching[:limit], None

    def list_all(self, prefix=None):
        return self.list(prefix=prefix, limit=len(self.blobs) + 1)[0]

    def put(self, pathname, data, content_type=None, overwrite=True):
        pathname = normalize_pathname(pathname)
        if pathname in self.fail_paths:
            raise BlobStoreError(f"Upload of {pathname} failed", status_code=500)
        url = f"https://blob.test/{pathname}"
        blob = BlobObject(pathname=pathname, url=url, size=len(data), uploaded_at=utcnow(),
                          download_url=f"{url}?download=1", content_type=content_type)
        self.blobs[pathname] = (blob, data)
        return blob

    def _by_url(self, url):
        for blob, data in self.blobs.values():
            if blob.url == url:
                return blob, data
        raise BlobStoreError(f"No blob at {url}", status_code=404)

    def delete(self, urls):
        for url in urls:
            blob, _ = self._by_url(url)
            del self.blobs[blob.pathname]

    def head(self, url):
        try:
            return self._by_url(url)[0]
        except BlobStoreError:
            return None

    def copy(self, from_url, to_pathname):
        _, data = self._by_url(from_url)
        return self.put(to_pathname, data)

    def download(self, url):
        return self._by_url(url)[1]


class FakeEmailSender:
    """Records emails instead of sending them."""

    def __init__(self):
        self.sent = []
        self.smtp_sent = []
        self.fail = False

    def send_transactional(self, notification):
        if self.fail:
            raise EmailDeliveryError("Brevo is unavailable")
        self.sent.append(notification)
        return "msg-1"

    def send_smtp(self, notification):
        if self.fail:
            raise EmailDeliveryError("SMTP is unavailable")
        self.smtp_sent.append(notification)

    def send_best_effort(self, notification):
        try:
            self.send_transactional(notification)
            return True
        except EmailDeliveryError:
            return False

    def categories(self):
        return [n.category for n in self.sent]


@pytest.fixture
def config() -> Config:
    return Config(
        global_config=GlobalConfig(environment="test", log_level="INFO", version="test"),
        api=APIConfig(
            host="127.0.0.1",
            port=8000,
            reload=False,
            workers=1,
            cors_origins=["http://localhost:3000"],
            jwt_secret=JWT_SECRET,
            jwt_algorithm="HS256",
        ),
        stripe=StripeConfig(secret_key="sk_test", webhook_secret=WEBHOOK_SECRET),
        brevo=BrevoConfig(api_key="brevo-key", sender_email="contact@medirate.net"),
        blob=BlobConfig(token="blob-token"),
        notification=NotificationConfig(
            smtp_host="localhost",
            smtp_port=25,
            smtp_username="",
            smtp_password="",
            smtp_from_email="contact@medirate.net",
            contact_recipient="support@medirate.net",
        ),
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def stripe_client():
    return FakeStripeClient()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def app(config, session_factory, stripe_client, blob_store, email_sender):
    application = create_app(config)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_config] = lambda: config
    application.dependency_overrides[get_stripe_client] = lambda: stripe_client
    application.dependency_overrides[get_blob_store] = lambda: blob_store
    application.dependency_overrides[get_email_sender] = lambda: email_sender
    return application


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    handler = JWTHandler(JWT_SECRET)

    def make(email: str, **claims) -> dict:
        return {"Authorization": f"Bearer {handler.create_access_token(email, **claims)}"}

    return make


@pytest.fixture
def admin_email(db):
    db.add(AdminUser(email="admin@medirate.net", is_active=True))
    db.commit()
    return "admin@medirate.net"
