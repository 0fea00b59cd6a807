"""Marketplace service routers package."""

from services.marketplace_service.routers.admin import router as admin_router
from services.marketplace_service.routers.cart import router as cart_router
from services.marketplace_service.routers.catalog import router as catalog_router
from services.marketplace_service.routers.messages import router as messages_router
from services.marketplace_service.routers.notifications import (
    router as notifications_router,
)
from services.marketplace_service.routers.offers import router as offers_router
from services.marketplace_service.routers.orders import router as orders_router
from services.marketplace_service.routers.settings import router as settings_router
from services.marketplace_service.routers.support import router as support_router

__all__ = [
    "admin_router",
    "cart_router",
    "catalog_router",
    "messages_router",
    "notifications_router",
    "offers_router",
    "orders_router",
    "settings_router",
    "support_router",
]
