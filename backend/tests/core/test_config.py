"""Tests for Settings and startup validation."""

import pytest

from storefront.core.config import Settings, validate_settings

pytestmark = pytest.mark.unit


def _complete(**overrides) -> Settings:
    values = {
        "debug": False,
        "supabase_url": "https://project.supabase.co/",
        "supabase_service_role_key": "service-role-key",
        "supabase_jwt_secret": "jwt-secret",
        "stripe_secret_key": "sk_live_x",
        "stripe_webhook_secret": "whsec_x",
        "stripe_success_url": "https://shop.example.com/success",
        "stripe_cancel_url": "https://shop.example.com/cancel",
    }
    values.update(overrides)
    return Settings(**values)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.ledger_backend == "database"
    assert settings.entitlement_fail_closed is False
    assert settings.stripe_webhook_tolerance_seconds == 300
    assert settings.checkout_currency == "usd"
    assert settings.currency_minor_unit_digits == 2


def test_supabase_url_trailing_slash_is_stripped():
    assert _complete().supabase_url == "https://project.supabase.co"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("ENTITLEMENT_FAIL_CLOSED", "true")
    monkeypatch.setenv("LEDGER_BACKEND", "supabase")

    settings = Settings(_env_file=None)

    assert settings.entitlement_fail_closed is True
    assert settings.ledger_backend == "supabase"


def test_unknown_ledger_backend_rejected():
    with pytest.raises(ValueError):
        Settings(_env_file=None, ledger_backend="redis")


@pytest.mark.parametrize("tolerance", [0, -30])
def test_non_positive_webhook_tolerance_rejected(tolerance):
    with pytest.raises(ValueError):
        Settings(_env_file=None, stripe_webhook_tolerance_seconds=tolerance)


def test_complete_settings_validate():
    validate_settings(_complete())


@pytest.mark.parametrize("missing", ["stripe_webhook_secret", "supabase_service_role_key", "stripe_success_url"])
def test_missing_required_setting_fails_fast(missing):
    with pytest.raises(RuntimeError, match=missing):
        validate_settings(_complete(**{missing: "  "}))


def test_jwt_secret_or_jwks_required():
    with pytest.raises(RuntimeError, match="supabase_jwt_secret"):
        validate_settings(_complete(supabase_jwt_secret=""))

    validate_settings(_complete(supabase_jwt_secret="", supabase_jwks_url="https://project.supabase.co/auth/v1/jwks"))


def test_debug_mode_skips_validation():
    validate_settings(_complete(debug=True, stripe_webhook_secret=""))
