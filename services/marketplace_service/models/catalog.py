"""Marketplace catalog models: seller product listings."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column


class Product(Base):
    """A closeout lot listed by a seller.

    ``price`` is the seller's fee-exclusive unit price. ``variation_stocks`` and
    ``variation_prices`` are keyed by the stable variation key
    (``{"color":"red","size":"M"}``) and override product-level stock/price.
    """

    __tablename__ = "marketplace_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seller_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    condition: Mapped[Optional[str]] = mapped_column(String(50))
    brand: Mapped[Optional[str]] = mapped_column(String(100))
    retail_comparison_url: Mapped[Optional[str]] = mapped_column(String(500))

    # Pricing and stock
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_units: Mapped[int] = mapped_column(Integer, nullable=False)
    available_units: Mapped[int] = mapped_column(Integer, nullable=False)
    min_order_quantity: Mapped[int] = mapped_column(
        Integer, default=1, server_default="1"
    )
    order_multiple: Mapped[int] = mapped_column(Integer, default=1, server_default="1")

    # Variations, e.g. {"size": ["S", "M"]}
    variations: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    variation_stocks: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    variation_prices: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    images: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True, default=list)

    # Shipping
    fob_location: Mapped[Optional[str]] = mapped_column(String(255))
    ships_free: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    # Charged per ordered line when the seller ships a lot that is not free
    shipping_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("available_units >= 0", name="product_available_non_negative"),
        CheckConstraint("min_order_quantity >= 1", name="product_moq_positive"),
        CheckConstraint("order_multiple >= 1", name="product_multiple_positive"),
    )

    def __repr__(self):
        return f"<Product {self.id} {self.title}>"
