"""Catalog routes: public, read-only item listing."""

from fastapi import APIRouter, Depends, HTTPException

from storefront.api.dependencies import get_catalog
from storefront.schemas.purchases import Item
from storefront.services.catalog import SupabaseCatalog

router = APIRouter(prefix="/items", tags=["items"])


@router.get("", response_model=list[Item])
async def list_items(catalog: SupabaseCatalog = Depends(get_catalog)):
    """List catalog items, newest first."""
    return await catalog.list_items()


@router.get("/slug/{slug}", response_model=Item)
async def get_item_by_slug(slug: str, catalog: SupabaseCatalog = Depends(get_catalog)):
    item = await catalog.get_item_by_slug(slug)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


@router.get("/{item_id}", response_model=Item)
async def get_item(item_id: int, catalog: SupabaseCatalog = Depends(get_catalog)):
    item = await catalog.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item
