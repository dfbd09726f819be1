"""
Pytest configuration and shared fixtures.

Test environment is fixed here, before any storefront_payments import,
so the settings singleton is built from it.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_payments.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
# decodes to b"fakesecretkey"
os.environ.setdefault("YOCO_WEBHOOK_SECRET", "whsec_ZmFrZXNlY3JldGtleQ==")
os.environ.setdefault("YOCO_SECRET_KEY", "sk_test_yoco")
os.environ.setdefault("YOCO_PUBLIC_KEY", "pk_test_yoco")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_stripe")
os.environ.setdefault("ADMIN_API_KEY", "admin-test-key")
os.environ.setdefault("BACKEND_URL", "http://backend.test")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

# Clear settings cache before any app imports to ensure test env vars are used
from storefront_payments.config import get_settings  # noqa: E402
get_settings.cache_clear()


@pytest.fixture(scope="function")
def client():
    """Test client with a fresh database for each test."""
    from storefront_payments.main import app
    from storefront_payments.storage import Base, engine

    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
