"""Read-only item catalog backed by a Supabase table."""

from typing import Protocol, runtime_checkable

import httpx
import structlog
from pydantic import TypeAdapter

from storefront.core.exceptions import CatalogUnavailableError
from storefront.integrations.supabase import SupabaseClient
from storefront.schemas.purchases import Item

logger = structlog.get_logger(__name__)

_items_adapter = TypeAdapter(list[Item])


@runtime_checkable
class CatalogLookup(Protocol):
    """Read access to catalog items. Absence is None, never an exception."""

    async def get_item(self, item_id: int) -> Item | None: ...


class SupabaseCatalog:
    def __init__(self, client: SupabaseClient, table: str = "avatars"):
        self.client = client
        self.table = table

    async def _select(self, params: dict) -> list[Item]:
        try:
            rows = await self.client.select(self.table, params)
        except httpx.HTTPError as exc:
            logger.error("catalog_query_failed", table=self.table, params=params, error=str(exc))
            raise CatalogUnavailableError(f"Failed to query catalog: {exc}") from exc
        return _items_adapter.validate_python(rows)

    async def list_items(self) -> list[Item]:
        return await self._select({"order": "created_at.desc"})

    async def get_item(self, item_id: int) -> Item | None:
        items = await self._select({"id": f"eq.{item_id}", "limit": "1"})
        return items[0] if items else None

    async def get_item_by_slug(self, slug: str) -> Item | None:
        # httpx encodes the query value
        items = await self._select({"slug": f"eq.{slug}", "limit": "1"})
        return items[0] if items else None
