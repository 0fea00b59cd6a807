"""FastAPI application for the Marketplace Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.marketplace_service.routers import (
    admin_router,
    cart_router,
    catalog_router,
    messages_router,
    notifications_router,
    offers_router,
    orders_router,
    settings_router,
    support_router,
)


def create_app() -> FastAPI:
    """Create and configure the Marketplace Service FastAPI app."""
    app = FastAPI(
        title="Closeouts Marketplace Service",
        version="0.1.0",
        description=(
            "Wholesale liquidation marketplace - listings, offers, cart, "
            "checkout, orders, messaging, support and admin billing."
        ),
    )

    # Structured logging, request IDs, 409 on concurrent writes
    add_observability_middleware(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "marketplace"}

    # Buyer/seller routes
    app.include_router(catalog_router, prefix="/api")
    app.include_router(cart_router, prefix="/api")
    app.include_router(offers_router, prefix="/api")
    app.include_router(orders_router, prefix="/api")
    app.include_router(notifications_router, prefix="/api")
    app.include_router(settings_router, prefix="/api")
    app.include_router(messages_router, prefix="/api")
    app.include_router(support_router, prefix="/api")

    # Admin routes (settings, billing, wire payments, payouts)
    app.include_router(admin_router, prefix="/api/admin")

    return app


app = create_app()
