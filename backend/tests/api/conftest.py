"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.testclient import TestClient

from storefront.api.dependencies import get_blob_store, get_catalog
from storefront.api.routes import api_router
from storefront.core.auth import SupabaseIdentityVerifier, get_identity_verifier
from storefront.core.config import get_settings
from storefront.main import register_exception_handlers
from storefront.middleware.correlation import setup_correlation_middleware


@pytest.fixture
def api_app(settings, database_url, catalog, blob_store) -> FastAPI:
    """App wired to a SQLite ledger and in-memory catalog / storage doubles.

    The database is initialized via init_db inside the TestClient's own
    event loop so route handlers can use get_session_factory().
    """
    from storefront.db import close_db, init_db

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - initialize DB in TestClient's event loop."""
        # Reset global so init_db creates a fresh engine in THIS loop
        import storefront.db.base as db_mod

        db_mod._engine = None
        db_mod._session_factory = None
        await init_db(database_url)
        app.state.shutting_down = False
        app.state.supabase_client = None
        yield
        await close_db()

    app = FastAPI(title=settings.app_name, description="Storefront - Test Client", lifespan=test_lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_correlation_middleware(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_identity_verifier] = lambda: SupabaseIdentityVerifier(settings)
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    return app


@pytest.fixture
def api_client(api_app):
    with TestClient(api_app, raise_server_exceptions=False) as client:
        yield client


@pytest.fixture
def auth_headers(make_token):
    def _headers(sub: str | None = None, **kwargs) -> dict[str, str]:
        token = make_token(sub, **kwargs) if sub else make_token(**kwargs)
        return {"Authorization": f"Bearer {token}"}

    return _headers
