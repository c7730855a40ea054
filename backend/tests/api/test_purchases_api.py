"""API tests for /api/purchases: checkout, webhook, and status.

Stripe is patched at the SDK boundary; the ledger is a real SQLite file
initialized in the TestClient's event loop.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from storefront_fakes import BUYER_ID, OTHER_BUYER_ID, checkout_event, sign_payload

pytestmark = pytest.mark.integration

ADMIN_ID = "0b8e4c6a-2f1d-4e3b-9a7c-5d6e8f9a0b1c"


@pytest.fixture
def stripe_create():
    session = MagicMock()
    session.id = "cs_test_api"
    session.url = "https://checkout.stripe.com/c/pay/cs_test_api"
    with patch("stripe.checkout.Session.create_async", new_callable=AsyncMock, return_value=session) as mock:
        yield mock


def _grant(client: TestClient, auth_headers, buyer_id: str, item_id: int) -> None:
    response = client.post(
        "/api/admin/grants",
        json={"buyerId": buyer_id, "itemId": item_id},
        headers=auth_headers(ADMIN_ID, admin=True),
    )
    assert response.status_code == 200


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class TestCheckout:
    def test_creates_session(self, api_client, auth_headers, stripe_create):
        response = api_client.post("/api/purchases/checkout", json={"itemIds": [1]}, headers=auth_headers())

        assert response.status_code == 200
        assert response.json() == {"sessionUrl": "https://checkout.stripe.com/c/pay/cs_test_api"}
        kwargs = stripe_create.await_args.kwargs
        assert kwargs["metadata"] == {"buyer_id": BUYER_ID, "item_ids": "1"}
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 999

    def test_requires_authentication(self, api_client, stripe_create):
        response = api_client.post("/api/purchases/checkout", json={"itemIds": [1]})

        assert response.status_code == 401
        stripe_create.assert_not_awaited()

    def test_already_purchased_is_conflict(self, api_client, auth_headers, stripe_create):
        _grant(api_client, auth_headers, BUYER_ID, 1)

        response = api_client.post("/api/purchases/checkout", json={"itemIds": [1, 2]}, headers=auth_headers())

        assert response.status_code == 409
        assert "debug_id" in response.json()
        stripe_create.assert_not_awaited()

    def test_other_buyers_purchase_does_not_block(self, api_client, auth_headers, stripe_create):
        _grant(api_client, auth_headers, OTHER_BUYER_ID, 1)

        response = api_client.post("/api/purchases/checkout", json={"itemIds": [1]}, headers=auth_headers())

        assert response.status_code == 200

    @pytest.mark.parametrize(("item_ids", "status_code"), [([999], 400), ([3], 400), ([4], 400)])
    def test_item_errors(self, api_client, auth_headers, stripe_create, item_ids, status_code):
        response = api_client.post("/api/purchases/checkout", json={"itemIds": item_ids}, headers=auth_headers())

        assert response.status_code == status_code
        stripe_create.assert_not_awaited()

    @pytest.mark.parametrize("body", [{}, {"itemIds": []}, {"itemIds": "1"}, {"itemIds": [1, 1]}])
    def test_invalid_body(self, api_client, auth_headers, stripe_create, body):
        response = api_client.post("/api/purchases/checkout", json=body, headers=auth_headers())

        assert response.status_code == 422

    def test_provider_failure_is_bad_gateway(self, api_client, auth_headers):
        import stripe

        with patch(
            "stripe.checkout.Session.create_async",
            new_callable=AsyncMock,
            side_effect=stripe.APIConnectionError("network down"),
        ):
            response = api_client.post("/api/purchases/checkout", json={"itemIds": [1]}, headers=auth_headers())

        assert response.status_code == 502


# ---------------------------------------------------------------------------
# Webhook + status: the purchase flow end to end
# ---------------------------------------------------------------------------


def _post_webhook(client: TestClient, payload: bytes, header: str | None):
    headers = {"Content-Type": "application/json"}
    if header is not None:
        headers["Stripe-Signature"] = header
    return client.post("/api/purchases/webhook", content=payload, headers=headers)


class TestWebhook:
    def test_happy_path_grants_entitlement(self, api_client, auth_headers):
        status = api_client.get("/api/purchases/status", params={"itemId": 1}, headers=auth_headers())
        assert status.json() == {"purchased": False}

        payload = checkout_event(item_ids="1")
        response = _post_webhook(api_client, payload, sign_payload(payload))

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        status = api_client.get("/api/purchases/status", params={"itemId": 1}, headers=auth_headers())
        assert status.json() == {"purchased": True}

    def test_retried_delivery_is_ok(self, api_client):
        payload = checkout_event(item_ids="1", event_id="evt_retry")
        header = sign_payload(payload)

        assert _post_webhook(api_client, payload, header).status_code == 200
        assert _post_webhook(api_client, payload, header).status_code == 200

    def test_tampered_delivery_is_rejected(self, api_client, auth_headers):
        payload = checkout_event(item_ids="1")
        header = sign_payload(payload)
        tampered = payload.replace(b'"item_ids": "1"', b'"item_ids": "2"')

        response = _post_webhook(api_client, tampered, header)

        assert response.status_code == 400
        status = api_client.get("/api/purchases/status", params={"itemId": 2}, headers=auth_headers())
        assert status.json() == {"purchased": False}

    def test_missing_signature_is_rejected(self, api_client):
        assert _post_webhook(api_client, checkout_event(), None).status_code == 400

    def test_unconfigured_secret_is_server_error(self, api_client, api_app, settings):
        from storefront.core.config import get_settings

        unconfigured = settings.model_copy(update={"stripe_webhook_secret": ""})
        api_app.dependency_overrides[get_settings] = lambda: unconfigured
        payload = checkout_event()

        response = _post_webhook(api_client, payload, sign_payload(payload))

        assert response.status_code == 500
        assert "not configured" in response.json()["detail"].lower()

    def test_malformed_metadata_is_acknowledged(self, api_client):
        payload = checkout_event(metadata={"buyer_id": BUYER_ID})

        response = _post_webhook(api_client, payload, sign_payload(payload))

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_non_string_payment_status_is_acknowledged(self, api_client, auth_headers):
        payload = checkout_event(item_ids="2", payment_status=5)

        response = _post_webhook(api_client, payload, sign_payload(payload))
        status = api_client.get("/api/purchases/status", params={"itemId": 2}, headers=auth_headers())

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert status.json() == {"purchased": False}

    def test_unrelated_event_is_ignored(self, api_client):
        payload = checkout_event(event_type="checkout.session.expired")

        response = _post_webhook(api_client, payload, sign_payload(payload))

        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}

    def test_ledger_outage_asks_for_redelivery(self, api_client, api_app):
        from storefront.api.dependencies import get_ledger
        from storefront.schemas.purchases import BatchRecordResult

        ledger = AsyncMock()
        ledger.record_many_if_absent.return_value = BatchRecordResult(failed=[1])
        api_app.dependency_overrides[get_ledger] = lambda: ledger
        payload = checkout_event(item_ids="1")

        response = _post_webhook(api_client, payload, sign_payload(payload))

        assert response.status_code == 500


class TestStatus:
    def test_requires_authentication(self, api_client):
        assert api_client.get("/api/purchases/status", params={"itemId": 1}).status_code == 401

    def test_rejects_bad_item_id(self, api_client, auth_headers):
        response = api_client.get("/api/purchases/status", params={"itemId": "abc"}, headers=auth_headers())

        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Admin grants
# ---------------------------------------------------------------------------


class TestAdminGrants:
    def test_grant_is_idempotent(self, api_client, auth_headers):
        headers = auth_headers(ADMIN_ID, admin=True)
        body = {"buyerId": BUYER_ID, "itemId": 2}

        first = api_client.post("/api/admin/grants", json=body, headers=headers)
        second = api_client.post("/api/admin/grants", json=body, headers=headers)

        assert first.json() == {"outcome": "inserted"}
        assert second.json() == {"outcome": "already_exists"}

    def test_requires_admin(self, api_client, auth_headers):
        response = api_client.post(
            "/api/admin/grants", json={"buyerId": BUYER_ID, "itemId": 2}, headers=auth_headers()
        )

        assert response.status_code == 403

    def test_rejects_non_uuid_buyer(self, api_client, auth_headers):
        response = api_client.post(
            "/api/admin/grants",
            json={"buyerId": "someone", "itemId": 2},
            headers=auth_headers(ADMIN_ID, admin=True),
        )

        assert response.status_code == 422
