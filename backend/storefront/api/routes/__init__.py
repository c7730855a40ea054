from fastapi import APIRouter

from storefront.api.routes import admin, health, items, purchases, storage

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(items.router)
api_router.include_router(purchases.router)
api_router.include_router(storage.router)
api_router.include_router(admin.router)
