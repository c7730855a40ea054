"""FastAPI dependency providers for the purchase pipeline.

Every collaborator is built per request from settings and the shared
Supabase client on ``app.state``. Tests replace any of them through
``app.dependency_overrides``.
"""

from fastapi import Depends, HTTPException, Request

from storefront.core.auth import IdentityVerifier, get_identity_verifier
from storefront.core.config import Settings, get_settings
from storefront.db.base import get_session_factory
from storefront.integrations.supabase import SupabaseClient
from storefront.services.blob_store import BlobStore, SupabaseBlobStore
from storefront.services.catalog import SupabaseCatalog
from storefront.services.checkout_service import CheckoutSessionFactory
from storefront.services.entitlement_gate import EntitlementGate
from storefront.services.purchase_ledger import PostgrestPurchaseLedger, PurchaseLedger, SqlPurchaseLedger
from storefront.services.webhook_authenticator import WebhookAuthenticator
from storefront.services.webhook_service import PurchaseWebhookService


def get_supabase_client(request: Request) -> SupabaseClient:
    client = getattr(request.app.state, "supabase_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Supabase is not configured")
    return client


def get_catalog(
    client: SupabaseClient = Depends(get_supabase_client),
    settings: Settings = Depends(get_settings),
) -> SupabaseCatalog:
    return SupabaseCatalog(client, table=settings.catalog_table)


def get_ledger(request: Request, settings: Settings = Depends(get_settings)) -> PurchaseLedger:
    if settings.ledger_backend == "supabase":
        return PostgrestPurchaseLedger(get_supabase_client(request), table=settings.purchases_table)
    return SqlPurchaseLedger(get_session_factory())


def get_blob_store(client: SupabaseClient = Depends(get_supabase_client)) -> BlobStore:
    return SupabaseBlobStore(client)


def get_checkout_factory(
    catalog: SupabaseCatalog = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> CheckoutSessionFactory:
    return CheckoutSessionFactory(catalog, settings)


def get_webhook_authenticator(settings: Settings = Depends(get_settings)) -> WebhookAuthenticator:
    return WebhookAuthenticator(
        settings.stripe_webhook_secret,
        tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
    )


def get_webhook_service(
    authenticator: WebhookAuthenticator = Depends(get_webhook_authenticator),
    ledger: PurchaseLedger = Depends(get_ledger),
) -> PurchaseWebhookService:
    return PurchaseWebhookService(authenticator, ledger)


def get_entitlement_gate(
    identity: IdentityVerifier = Depends(get_identity_verifier),
    ledger: PurchaseLedger = Depends(get_ledger),
    catalog: SupabaseCatalog = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> EntitlementGate:
    return EntitlementGate(
        identity,
        ledger,
        catalog,
        default_bucket=settings.supabase_storage_bucket,
        default_suffix=settings.download_default_suffix,
        fail_closed=settings.entitlement_fail_closed,
    )
