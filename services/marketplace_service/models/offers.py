"""Marketplace negotiation models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.marketplace_service.models.enums import (
    OfferParty,
    OfferStatus,
    enum_values,
)
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship


class Offer(Base):
    """A buyer's price/quantity proposal on a product.

    ``price`` is always fee-exclusive. ``countered_by`` records who made the
    latest counter so the other party knows it is their turn.
    """

    __tablename__ = "marketplace_offers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    buyer_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    seller_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("marketplace_products.id", ondelete="CASCADE"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    selected_variations: Mapped[Optional[dict]] = mapped_column(
        JSONType, nullable=True
    )

    status: Mapped[OfferStatus] = mapped_column(
        SAEnum(
            OfferStatus,
            values_callable=enum_values,
            name="marketplace_offer_status_enum",
        ),
        default=OfferStatus.PENDING,
        server_default="pending",
    )
    countered_by: Mapped[Optional[OfferParty]] = mapped_column(
        SAEnum(
            OfferParty,
            values_callable=enum_values,
            name="marketplace_offer_party_enum",
        ),
        nullable=True,
    )
    counter_rounds: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0"
    )

    # Redemption window, set on acceptance
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_marketplace_offers_buyer_status", "buyer_id", "status"),
        Index("ix_marketplace_offers_seller_status", "seller_id", "status"),
    )

    # Relationships
    product = relationship("Product")

    def __repr__(self):
        return f"<Offer {self.id} status={self.status}>"
