"""Shared test fixtures for all test groups."""

import os
from datetime import UTC, datetime, timedelta

# Set before any storefront import so the cached Settings never sees production defaults
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("METRICS_ENABLED", "false")

import jwt as pyjwt
import pytest

from storefront.core.config import Settings
from storefront.db.base import build_engine, build_session_factory, create_tables
from storefront.services.purchase_ledger import SqlPurchaseLedger
from storefront_fakes import (
    BUYER_ID,
    JWT_SECRET,
    WEBHOOK_SECRET,
    FakeBlobStore,
    FakeCatalog,
    checkout_event,
    make_item,
    sign_payload,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        debug=True,
        ledger_backend="database",
        supabase_url="https://project.supabase.co",
        supabase_service_role_key="service-role-key",
        supabase_jwt_secret=JWT_SECRET,
        supabase_jwks_url="",
        supabase_storage_bucket="items",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_success_url="https://shop.example.com/success",
        stripe_cancel_url="https://shop.example.com/cancel",
        metrics_enabled=False,
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
async def engine(database_url):
    """File-backed SQLite engine with the purchases table created."""
    engine = build_engine(database_url)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def sql_ledger(session_factory) -> SqlPurchaseLedger:
    return SqlPurchaseLedger(session_factory)


# ---------------------------------------------------------------------------
# Catalog / storage doubles
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(
        [
            make_item(1, "9.99"),
            make_item(2, "15.00"),
            make_item(3, None),
            make_item(4, "4.999"),
            make_item(5, "3.50", blob_file_path=None),
            make_item(6, "2.00", blob_container_name=None, blob_file_name=None),
        ]
    )


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore(
        {
            ("avatars", "items/1/model.vrm"): b"VRM-BYTES-1",
            ("avatars", "items/2/model.vrm"): b"VRM-BYTES-2",
        }
    )


# ---------------------------------------------------------------------------
# Tokens and signatures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_token():
    """Factory for Supabase-style HS256 access tokens."""

    def _make(
        sub: str = BUYER_ID,
        *,
        admin: bool = False,
        expires_in: int = 3600,
        audience: str = "authenticated",
        secret: str = JWT_SECRET,
    ) -> str:
        now = datetime.now(UTC)
        claims = {
            "sub": sub,
            "aud": audience,
            "role": "authenticated",
            "iat": now,
            "exp": now + timedelta(seconds=expires_in),
        }
        if admin:
            claims["app_metadata"] = {"admin": True}
        return pyjwt.encode(claims, secret, algorithm="HS256")

    return _make


@pytest.fixture
def signed_event():
    """Returns (payload, signature_header) for a checkout event."""

    def _signed(*args, secret: str = WEBHOOK_SECRET, **kwargs) -> tuple[bytes, str]:
        payload = checkout_event(*args, **kwargs)
        return payload, sign_payload(payload, secret)

    return _signed
