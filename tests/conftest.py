"""
Pytest configuration and fixtures.

The app runs against an in-memory mongomock database and a StripeClient
replaced by a MagicMock, so no network or MongoDB server is needed.
"""
from typing import Any, Callable, Dict, Generator
from unittest.mock import MagicMock

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import Store
from main import create_app
from payments import PaymentGateway
from security import PasswordHasher
from settings import Settings

ADMIN_PASSWORD = "1234"


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    # minimum bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def test_settings(hasher: PasswordHasher) -> Settings:
    return Settings(
        _env_file=None,
        database_url="mongodb://localhost:27017",
        database_name="farm_marketplace_test",
        stripe_secret_key="sk_test_fake_key_for_testing",
        admin_email="admin",
        admin_password_hash=hasher.hash(ADMIN_PASSWORD),
        bcrypt_rounds=4,
        log_level="WARNING",
    )


@pytest.fixture
def store() -> Store:
    store = Store(mongomock.MongoClient()["farm_marketplace_test"])
    store.ensure_indexes()
    return store


@pytest.fixture
def stripe_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def gateway(stripe_client: MagicMock) -> PaymentGateway:
    return PaymentGateway("sk_test_fake_key_for_testing", client=stripe_client)


@pytest.fixture
def client(
    test_settings: Settings, store: Store, gateway: PaymentGateway, hasher: PasswordHasher
) -> Generator[TestClient, Any, None]:
    app = create_app(settings=test_settings, store=store, gateway=gateway, hasher=hasher)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def farmer_data() -> Dict[str, Any]:
    return {
        "name": "Ravi Kumar",
        "email": "ravi@example.com",
        "phone": "9876543210",
        "password": "s3cret",
        "role": "farmer",
    }


@pytest.fixture
def product_data() -> Dict[str, Any]:
    return {
        "name": "Tomatoes",
        "category": "Vegetables",
        "quantity": 50,
        "price": 30.5,
        "farmerEmail": "ravi@example.com",
    }


@pytest.fixture
def make_intent() -> Callable[..., MagicMock]:
    """Build a Stripe PaymentIntent stand-in as returned by the StripeClient services."""
    def _make(intent_id: str, amount: int, status: str = "succeeded", currency: str = "inr") -> MagicMock:
        intent = MagicMock()
        intent.to_dict.return_value = {
            "id": intent_id,
            "object": "payment_intent",
            "amount": amount,
            "currency": currency,
            "status": status,
            "metadata": {"receipt": "receipt_1"},
        }
        return intent
    return _make
