"""
Pytest configuration and shared fixtures for backend tests.

WHAT: Centralized test configuration with markers and a throwaway database
WHY: Enable test organization, filtering, and shared test utilities
HOW: Point settings at a temp directory before the app is imported, then
     rebuild the schema for every test
"""

import os
import tempfile

# Must run before any `bargain` import reads settings
_TEST_ROOT = tempfile.mkdtemp(prefix="bargain-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_ROOT}/test.db"
os.environ["LOG_FILE"] = os.path.join(_TEST_ROOT, "app.log")
os.environ["LOGS_DIR"] = os.path.join(_TEST_ROOT, "transcripts")
os.environ["EXPIRY_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["JWT_SECRET"] = "test-secret"

import pytest
from datetime import timedelta

from bargain.core.database import get_db, init_db, drop_db
from bargain.core.models import CatalogProduct
from bargain.core.security import Principal, create_access_token


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (isolated component tests)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (multiple components)"
    )
    config.addinivalue_line(
        "markers", "realtime: WebSocket gateway tests"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take significant time to run"
    )


@pytest.fixture(autouse=True)
def fresh_db():
    """
    Create a fresh database for each test.

    WHAT: Setup and teardown test database
    WHY: Ensure test isolation
    HOW: Drop/create all tables before/after each test
    """
    drop_db()
    init_db()
    yield
    drop_db()


# Test data constants
BUYER_ID = "buyer-alice"
OTHER_BUYER_ID = "buyer-bob"
SELLER_ID = "seller-sam"
PRODUCT_ID = "prod-lamp"
PRODUCT_PRICE = 100.0
AUTO_PRODUCT_ID = "prod-auto-chair"


def add_product(
    product_id: str = PRODUCT_ID,
    price: float = PRODUCT_PRICE,
    seller_id: str = SELLER_ID,
    allow_bargaining: bool = True,
    auto_bargain: bool = False,
    title: str = "Desk Lamp"
):
    with get_db() as db:
        db.add(CatalogProduct(
            id=product_id,
            title=title,
            price=price,
            seller_id=seller_id,
            allow_bargaining=allow_bargaining,
            auto_bargain=auto_bargain,
        ))


@pytest.fixture
def product():
    """Catalog product at $100 (floor $95 with the default 5% discount)."""
    add_product()
    return PRODUCT_ID


@pytest.fixture
def auto_product():
    """Product answered by the scripted seller."""
    add_product(product_id=AUTO_PRODUCT_ID, title="Oak Chair", price=200.0, auto_bargain=True)
    return AUTO_PRODUCT_ID


@pytest.fixture
def buyer():
    return Principal(id=BUYER_ID, role="buyer")


@pytest.fixture
def other_buyer():
    return Principal(id=OTHER_BUYER_ID, role="buyer")


@pytest.fixture
def seller():
    return Principal(id=SELLER_ID, role="seller")


def token_for(principal_id: str, role: str, expires_delta: timedelta = None) -> str:
    return create_access_token(principal_id, role, expires_delta)


def auth_headers(principal_id: str, role: str) -> dict:
    return {"Authorization": f"Bearer {token_for(principal_id, role)}"}


@pytest.fixture
def buyer_headers():
    return auth_headers(BUYER_ID, "buyer")


@pytest.fixture
def other_buyer_headers():
    return auth_headers(OTHER_BUYER_ID, "buyer")


@pytest.fixture
def seller_headers():
    return auth_headers(SELLER_ID, "seller")
