"""
tests/conftest.py -- Shared test fixtures for Shopfront integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for accounts + catalog
  - _patch_lifespan(): wires test stores and services into app.state
  - api_client: TestClient plus an admin Bearer token
  - signup_and_login(): drives sign-up -> login -> verifyOtp over HTTP

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any api/auth/core import:
  DEBUG=true                 get_settings() auto-generates SECRET_KEY
  ALLOWED_HOSTS              TestClient sends Host: testserver
  LOGIN_RATE_LIMIT=50/minute  every test request shares one client IP; the
                             limiter stays on so the real route wrappers run
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set these before any api/auth/core import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "50/minute")
os.environ.setdefault("RETURN_SECRETS_IN_RESPONSE", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import Account, Role
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import create_access_token, hash_password
from catalog.service import ProductService
from catalog.store import CatalogStore

ADMIN_EMAIL = "testadmin@example.com"
ADMIN_PASSWORD = "testpass123"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[AccountStore, CatalogStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'auth', 'products').
    """
    account_url = f"sqlite:///file:test_accounts_{db_suffix}?mode=memory&cache=shared&uri=true"
    catalog_url = f"sqlite:///file:test_catalog_{db_suffix}?mode=memory&cache=shared&uri=true"
    return AccountStore(db_url=account_url), CatalogStore(db_url=catalog_url)


def _patch_lifespan(account_store: AccountStore, catalog_store: CatalogStore):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = account_store
        app.state.catalog_store = catalog_store
        app.state.auth_service = AuthService(account_store)
        app.state.product_service = ProductService(catalog_store)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


def signup_and_login(client: TestClient, name: str, email: str, password: str, role: str) -> str:
    """Create an account through the API and return its Bearer token."""
    resp = client.post("/auth/sign-up", json={"name": name, "email": email, "password": password, "role": role})
    assert resp.status_code == 200, f"sign-up failed: {resp.status_code} {resp.text}"
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, f"login failed: {resp.status_code} {resp.text}"
    issued = resp.json()
    resp = client.post("/auth/verifyOtp", json={"otp": issued["otp"], "otpReference": issued["otpReference"]})
    assert resp.status_code == 200, f"verifyOtp failed: {resp.status_code} {resp.text}"
    return resp.json()["result"]["accessToken"]


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    store = AccountStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def auth_service(account_store: AccountStore) -> AuthService:
    return AuthService(account_store)


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. The
    database name is derived from the test module so modules stay isolated.
    The admin account is created directly in the store and its JWT minted
    without going through the OTP flow.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    account_store, catalog_store = _make_test_stores(suffix)

    admin, _credential = account_store.create_account(
        Account(name="Test Admin", email=ADMIN_EMAIL, role=Role.ADMIN),
        hash_password(ADMIN_PASSWORD),
    )
    token = create_access_token(admin.id, admin.email, Role.ADMIN, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(account_store, catalog_store)
    # Rate-limit counters are per client IP, and every module uses the same one.
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id

    account_store.close()
    catalog_store.close()
