"""Marketplace commerce models: cart sessions, orders and order items."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.marketplace_service.models.enums import (
    OrderStatus,
    ShippingChoice,
    enum_values,
)
from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# CART SESSION
# ============================================================================


class CartSession(Base):
    """Server-held cart for a user (``user:<id>``) or guest (``session:<token>``).

    ``role`` is the role the stored line prices were computed for; a different
    acting role triggers one reprice on the next read.
    """

    __tablename__ = "marketplace_cart_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    items: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<CartSession {self.owner_key} v{self.version}>"


# ============================================================================
# ORDERS
# ============================================================================


class Order(Base):
    """One seller's share of a checkout.

    ``total_amount`` is fee-inclusive and includes shipping.
    """

    __tablename__ = "marketplace_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[Optional[str]] = mapped_column(String(20), unique=True, index=True)
    buyer_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    seller_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="marketplace_order_status_enum",
        ),
        default=OrderStatus.ORDERED,
        server_default="ordered",
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0.00"), server_default="0"
    )

    payment_method: Mapped[Optional[str]] = mapped_column(String(20))
    payment_details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Shipping
    shipping_choice: Mapped[ShippingChoice] = mapped_column(
        SAEnum(
            ShippingChoice,
            values_callable=enum_values,
            name="marketplace_shipping_choice_enum",
        ),
        default=ShippingChoice.BUYER,
        server_default="buyer",
    )
    shipping_details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    shipping_package: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    shipping_label: Mapped[Optional[str]] = mapped_column(String(500))
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100))

    # Billing flags
    buyer_charged: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    seller_paid: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    wire_reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )

    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_marketplace_orders_seller_status", "seller_id", "status"),
    )

    # Relationships
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def __repr__(self):
        return f"<Order {self.code or self.id} status={self.status}>"


class OrderItem(Base):
    """Order line; prices are fee-inclusive snapshots taken at checkout."""

    __tablename__ = "marketplace_order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("marketplace_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("marketplace_products.id"), nullable=False
    )
    offer_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("marketplace_offers.id", ondelete="SET NULL")
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    variation_key: Mapped[str] = mapped_column(String(500), default="{}")
    selected_variations: Mapped[Optional[dict]] = mapped_column(JSONType)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (CheckConstraint("quantity > 0", name="order_item_positive_quantity"),)

    # Relationships
    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem {self.title} x{self.quantity}>"
