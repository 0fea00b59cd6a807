"""Enum definitions for marketplace service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class OfferStatus(str, enum.Enum):
    PENDING = "pending"
    COUNTERED = "countered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class OfferParty(str, enum.Enum):
    BUYER = "buyer"
    SELLER = "seller"


class OrderStatus(str, enum.Enum):
    AWAITING_WIRE = "awaiting_wire"
    ORDERED = "ordered"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ShippingChoice(str, enum.Enum):
    BUYER = "buyer"
    SELLER_FREE = "seller_free"


class NotificationType(str, enum.Enum):
    OFFER = "offer"
    ORDER = "order"
    MESSAGE = "message"
    SUPPORT = "support"
    SYSTEM = "system"


class TicketStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
