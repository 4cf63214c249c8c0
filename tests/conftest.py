"""Shared fixtures: test settings, an in-memory entitlement store and signing helpers."""

import hashlib
import hmac
import os

# Settings are read at import time, so the environment must be set first.
os.environ["SERVICE_NAME"] = "unlockpay-tests"
os.environ["POSTGRES_DSN"] = "sqlite://"
os.environ["API_KEY"] = "test-api-key"
os.environ["GATEWAY_KEY_ID"] = "rzp_test_key"
os.environ["GATEWAY_KEY_SECRET"] = "test_key_secret"
os.environ["GATEWAY_WEBHOOK_SECRET"] = "test_webhook_secret"
os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"] = ""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from unlockpay.common.db import Base
from unlockpay.services.entitlements import service as entitlement_service
from unlockpay.services.entitlements.models import UserEntitlement
from unlockpay.services.entitlements.service import EntitlementGrantManager, ReconciliationQueue
from unlockpay.services.verification.service import VerificationService
from unlockpay.services.verification.verifier import ConfirmationVerifier, WebhookVerifier

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"
API_KEY = "test-api-key"


def sign_claim(order_id: str, payment_id: str, secret: str = KEY_SECRET) -> str:
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def sign_body(raw_body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def grants(session_factory):
    return EntitlementGrantManager(session_factory, service_name="unlockpay-tests")


@pytest.fixture
def reconciliation(session_factory, grants):
    return ReconciliationQueue(session_factory, grants)


@pytest.fixture
def verification(grants, reconciliation):
    return VerificationService(
        ConfirmationVerifier(KEY_SECRET),
        grants,
        reconciliation,
        webhook_verifier=WebhookVerifier(WEBHOOK_SECRET),
        service_name="unlockpay-tests",
    )


class StoreOutage:
    """Makes entitlement inserts fail until `recover()` is called."""

    def __init__(self, monkeypatch) -> None:
        self.active = True
        real_insert = entitlement_service.insert_ignore

        def flaky_insert(db, model, values, index_elements):
            if self.active and model is UserEntitlement:
                raise OperationalError("INSERT INTO user_entitlements", {}, Exception("database is locked"))
            return real_insert(db, model, values, index_elements)

        monkeypatch.setattr(entitlement_service, "insert_ignore", flaky_insert)

    def recover(self) -> None:
        self.active = False


@pytest.fixture
def store_outage(monkeypatch):
    return StoreOutage(monkeypatch)
