"""Supabase service-role client.

Single outbound capability for everything this service reads or writes in
Supabase (catalog table, purchases table, storage objects). Service-role
authentication is applied here and nowhere else.
"""

import httpx
import structlog

from storefront.core.config import Settings

logger = structlog.get_logger(__name__)


class SupabaseClient:
    """Authenticated HTTP client for the Supabase REST and Storage APIs."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Project URL, e.g. https://abc.supabase.co
            service_role_key: Service role key (bypasses row level security)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)

        Raises:
            ValueError: If the URL or key is blank
        """
        base_url = (base_url or "").strip().rstrip("/")
        service_role_key = (service_role_key or "").strip()
        if not base_url:
            raise ValueError("Supabase URL is not configured. Set SUPABASE_URL.")
        if not service_role_key:
            raise ValueError("Supabase service role key is not configured. Set SUPABASE_SERVICE_ROLE_KEY.")

        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": service_role_key,
                "Authorization": f"Bearer {service_role_key}",
            },
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseClient":
        return cls(
            settings.supabase_url,
            settings.supabase_service_role_key,
            timeout=settings.http_timeout_seconds,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: object | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Send an authenticated request. Transport errors propagate as httpx.HTTPError."""
        response = await self._client.request(method, path, params=params, json=json, headers=headers)
        logger.debug(
            "supabase_request",
            method=method,
            path=path,
            status_code=response.status_code,
        )
        return response

    async def select(self, table: str, params: dict) -> list[dict]:
        """GET rows from a PostgREST table. Raises httpx.HTTPStatusError on non-2xx."""
        response = await self.request("GET", f"/rest/v1/{table}", params=params)
        response.raise_for_status()
        if not response.content.strip():
            return []
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()
