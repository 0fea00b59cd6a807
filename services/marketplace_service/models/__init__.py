"""Marketplace service models package."""

from services.marketplace_service.models.catalog import Product
from services.marketplace_service.models.commerce import CartSession, Order, OrderItem
from services.marketplace_service.models.enums import (
    NotificationType,
    OfferParty,
    OfferStatus,
    OrderStatus,
    ShippingChoice,
    TicketStatus,
)
from services.marketplace_service.models.messaging import (
    Message,
    SupportTicket,
    SupportTicketMessage,
)
from services.marketplace_service.models.offers import Offer
from services.marketplace_service.models.settings import Notification, SiteSetting

__all__ = [
    "CartSession",
    "Message",
    "Notification",
    "NotificationType",
    "Offer",
    "OfferParty",
    "OfferStatus",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Product",
    "ShippingChoice",
    "SiteSetting",
    "SupportTicket",
    "SupportTicketMessage",
    "TicketStatus",
]
