"""Offer negotiation state machine.

An offer moves ``pending -> {accepted, rejected, countered}``. While
countered, the party who did *not* make the last counter may accept, reject
or counter back. Accepted offers open a redemption window during which the
buyer can add the fixed price/quantity to the cart; once it lapses (or the
product sells out) the offer expires. Rejected and expired are terminal.

The transition functions mutate the offer in place and raise
``OfferTransitionError`` on an illegal move. Persistence, ownership checks
and notifications stay with the caller.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.marketplace_service.cart import Cart, ProductListing, variation_key
from services.marketplace_service.models.enums import OfferParty, OfferStatus
from services.marketplace_service.pricing import Number, to_decimal
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

TERMINAL_STATES = frozenset({OfferStatus.REJECTED, OfferStatus.EXPIRED})


class OfferTransitionError(ValueError):
    """Raised when an offer operation is not allowed from its current state."""


def _status(offer) -> OfferStatus:
    return OfferStatus(offer.status)


def _awaiting(offer) -> Optional[OfferParty]:
    """Which party must respond next, or None when nobody can."""
    status = _status(offer)
    if status == OfferStatus.PENDING:
        return OfferParty.SELLER
    if status == OfferStatus.COUNTERED:
        if offer.countered_by == OfferParty.BUYER:
            return OfferParty.SELLER
        return OfferParty.BUYER
    return None


def _require_turn(offer, party: OfferParty, action: str) -> None:
    status = _status(offer)
    if status in TERMINAL_STATES:
        raise OfferTransitionError(f"Cannot {action}: offer is {status.value}")
    if status == OfferStatus.ACCEPTED:
        raise OfferTransitionError(f"Cannot {action}: offer already accepted")
    if _awaiting(offer) != party:
        raise OfferTransitionError(
            f"Cannot {action}: waiting on the {_awaiting(offer).value}"
        )


def validate_terms(
    price: Number, quantity: int, available_units: int
) -> tuple[Decimal, int]:
    price = to_decimal(price)
    if price <= 0 or quantity <= 0:
        raise OfferTransitionError("Invalid counter offer data")
    if quantity > available_units:
        raise OfferTransitionError("Quantity exceeds available stock")
    return price, quantity


def validate_new_offer(quantity: int, price: Number, product, selected: Optional[dict]) -> int:
    """Check a buyer's opening offer against live stock.

    Returns the stock figure the quantity was checked against.
    """
    if to_decimal(price) <= 0 or quantity <= 0:
        raise OfferTransitionError("Offer price and quantity must be positive")
    listing = ProductListing.from_product(product)
    available = listing.stock_for(variation_key(selected))
    if quantity > available:
        raise OfferTransitionError(
            f"Only {available} units available for the selected options"
        )
    return available


def offer_stock(offer, product) -> int:
    """Live stock for the variation an offer is for (product stock if none)."""
    if product is None:
        return 0
    listing = ProductListing.from_product(product)
    return listing.stock_for(variation_key(offer.selected_variations))


def _accept(offer, now: datetime, redemption_hours: int) -> None:
    offer.status = OfferStatus.ACCEPTED
    offer.expires_at = now + timedelta(hours=redemption_hours)


def _counter(
    offer,
    party: OfferParty,
    price: Number,
    quantity: int,
    available_units: int,
    max_rounds: Optional[int],
) -> None:
    price, quantity = validate_terms(price, quantity, available_units)
    rounds = offer.counter_rounds or 0
    if max_rounds is not None and rounds >= max_rounds:
        raise OfferTransitionError(
            f"Negotiation limit of {max_rounds} counter offers reached"
        )
    offer.price = price
    offer.quantity = quantity
    offer.status = OfferStatus.COUNTERED
    offer.countered_by = party
    offer.counter_rounds = rounds + 1


# ---------------------------------------------------------------------------
# Seller side
# ---------------------------------------------------------------------------


def accept_offer(offer, *, now: Optional[datetime] = None, redemption_hours: int = 24):
    _require_turn(offer, OfferParty.SELLER, "accept")
    _accept(offer, now or utc_now(), redemption_hours)
    logger.info("Offer %s accepted by seller", offer.id)
    return offer


def reject_offer(offer):
    _require_turn(offer, OfferParty.SELLER, "reject")
    offer.status = OfferStatus.REJECTED
    logger.info("Offer %s rejected by seller", offer.id)
    return offer


def counter_offer(
    offer,
    *,
    price: Number,
    quantity: int,
    available_units: int,
    max_rounds: Optional[int] = None,
):
    _require_turn(offer, OfferParty.SELLER, "counter")
    _counter(offer, OfferParty.SELLER, price, quantity, available_units, max_rounds)
    logger.info(
        "Offer %s countered by seller (round %s)", offer.id, offer.counter_rounds
    )
    return offer


# ---------------------------------------------------------------------------
# Buyer side
# ---------------------------------------------------------------------------


def accept_counter(
    offer, *, now: Optional[datetime] = None, redemption_hours: int = 24
):
    _require_turn(offer, OfferParty.BUYER, "accept counter")
    _accept(offer, now or utc_now(), redemption_hours)
    logger.info("Counter on offer %s accepted by buyer", offer.id)
    return offer


def reject_counter(offer):
    _require_turn(offer, OfferParty.BUYER, "reject counter")
    offer.status = OfferStatus.REJECTED
    logger.info("Counter on offer %s rejected by buyer", offer.id)
    return offer


def counter_buyer(
    offer,
    *,
    price: Number,
    quantity: int,
    available_units: int,
    max_rounds: Optional[int] = None,
):
    _require_turn(offer, OfferParty.BUYER, "counter")
    _counter(offer, OfferParty.BUYER, price, quantity, available_units, max_rounds)
    logger.info(
        "Offer %s countered by buyer (round %s)", offer.id, offer.counter_rounds
    )
    return offer


# ---------------------------------------------------------------------------
# Expiry and redemption
# ---------------------------------------------------------------------------


def expire_if_due(
    offer, now: Optional[datetime] = None, available_units: Optional[int] = None
) -> bool:
    """Lazily expire an accepted offer whose window lapsed or stock ran out.

    Returns True when the offer was moved to expired by this call.
    """
    if _status(offer) != OfferStatus.ACCEPTED:
        return False
    now = now or utc_now()
    lapsed = offer.expires_at is not None and ensure_utc(offer.expires_at) < now
    sold_out = available_units is not None and available_units <= 0
    if not (lapsed or sold_out):
        return False
    offer.status = OfferStatus.EXPIRED
    logger.info(
        "Offer %s expired (%s)", offer.id, "window lapsed" if lapsed else "sold out"
    )
    return True


def is_redeemable(offer, now: Optional[datetime] = None) -> bool:
    if _status(offer) != OfferStatus.ACCEPTED or offer.expires_at is None:
        return False
    return ensure_utc(offer.expires_at) >= (now or utc_now())


def time_remaining(offer, now: Optional[datetime] = None) -> Optional[timedelta]:
    if not is_redeemable(offer, now):
        return None
    return ensure_utc(offer.expires_at) - (now or utc_now())


async def add_offer_to_cart(
    db: AsyncSession,
    cart: Cart,
    offer_id: int,
    *,
    buyer_id: int,
    now: Optional[datetime] = None,
) -> bool:
    """Put an accepted offer's fixed terms into the cart.

    Lookup failures (missing offer or product, not the caller's offer) leave
    the cart untouched and produce no notice; they are only logged. An offer
    that exists but is no longer redeemable is reported to the user.
    """
    from services.marketplace_service.models import Offer, Product

    try:
        offer = await db.get(Offer, offer_id)
        if offer is None or offer.buyer_id != buyer_id:
            raise LookupError(f"offer {offer_id} not found for buyer {buyer_id}")
        product = await db.get(Product, offer.product_id)
        if product is None:
            raise LookupError(f"product {offer.product_id} not found")
    except LookupError as exc:
        logger.warning("Skipping add-offer-to-cart: %s", exc)
        return False

    if not is_redeemable(offer, now):
        cart.reject(
            "Offer unavailable",
            "This offer is no longer available to add to your cart.",
        )
        return False

    return cart.add_to_cart(
        ProductListing.from_product(product),
        offer.quantity,
        offer.selected_variations or None,
        price_override=offer.price,
        offer_quantity=offer.quantity,
        offer_id=offer.id,
    )
