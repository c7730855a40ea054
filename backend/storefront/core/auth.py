"""Supabase Auth JWT verification for FastAPI."""

import uuid
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Protocol, runtime_checkable

import jwt as pyjwt
import structlog
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from storefront.core.config import Settings, get_settings

logger = structlog.get_logger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Subject:
    """Authenticated caller extracted from a Supabase access token."""

    user_id: str
    claims: dict = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        # app_metadata is writable only with the service role key
        app_metadata = self.claims.get("app_metadata") or {}
        return app_metadata.get("admin") is True


@dataclass(frozen=True)
class Found:
    subject: Subject


@dataclass(frozen=True)
class NotFound:
    reason: str


IdentityResult = Found | NotFound


@runtime_checkable
class IdentityVerifier(Protocol):
    def verify(self, credential: str | None) -> IdentityResult: ...


@lru_cache
def get_jwks_client(jwks_url: str) -> PyJWKClient:
    """Create a cached JWKS client for asymmetric Supabase signing keys."""
    return PyJWKClient(jwks_url, cache_keys=True, lifespan=300)


class SupabaseIdentityVerifier:
    """Verifies Supabase access tokens and resolves them to a Subject.

    HS256 with the project JWT secret by default. When a JWKS URL is
    configured the signing key is fetched from it instead (RS256/ES256).
    """

    def __init__(self, settings: Settings):
        self.jwt_secret = settings.supabase_jwt_secret.strip()
        self.jwks_url = settings.supabase_jwks_url.strip()
        self.audience = settings.supabase_jwt_audience or None

    def verify(self, credential: str | None) -> IdentityResult:
        if not credential or not credential.strip():
            return NotFound("missing_token")
        token = credential.strip()

        try:
            if self.jwks_url:
                signing_key = get_jwks_client(self.jwks_url).get_signing_key_from_jwt(token).key
                algorithms = ["RS256", "ES256"]
            elif self.jwt_secret:
                signing_key = self.jwt_secret
                algorithms = ["HS256"]
            else:
                logger.warning("supabase_jwt_not_configured")
                return NotFound("not_configured")

            payload = pyjwt.decode(
                token,
                signing_key,
                algorithms=algorithms,
                audience=self.audience,
                options={"require": ["sub", "exp"]},
            )
        except pyjwt.ExpiredSignatureError:
            logger.debug("jwt_expired")
            return NotFound("expired")
        except pyjwt.PyJWTError as exc:
            logger.debug("jwt_invalid", error=str(exc))
            return NotFound("invalid_token")

        sub = payload.get("sub")
        try:
            user_id = str(uuid.UUID(str(sub)))
        except ValueError:
            logger.debug("jwt_invalid_sub_claim", sub=sub)
            return NotFound("invalid_subject")

        return Found(Subject(user_id=user_id, claims=payload))


def get_identity_verifier() -> SupabaseIdentityVerifier:
    return SupabaseIdentityVerifier(get_settings())


def bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str | None:
    """Raw bearer token from the Authorization header, or None."""
    return credentials.credentials if credentials else None


async def require_subject(
    token: str | None = Depends(bearer_token),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> Subject:
    """FastAPI dependency that resolves the caller or answers 401.

    Usage::

        @router.get("/protected")
        async def protected(subject: Subject = Depends(require_subject)):
            ...
    """
    result = verifier.verify(token)
    if isinstance(result, NotFound):
        raise HTTPException(status_code=401, detail="Authentication required.")
    return result.subject


async def require_admin(subject: Subject = Depends(require_subject)) -> Subject:
    """FastAPI dependency that requires app_metadata.admin on the token."""
    if not subject.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return subject
