"""Marketplace offers router: buyer offers and seller/buyer negotiation."""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.marketplace_service import offer_flow
from services.marketplace_service.models import Offer, OfferStatus, Product
from services.marketplace_service.offer_flow import OfferTransitionError
from services.marketplace_service.pricing import add_service_fee, remove_service_fee
from services.marketplace_service.routers._helpers import (
    forbid_unless,
    get_or_404,
    get_service_fee_rate,
    notify,
    transition_error,
)
from services.marketplace_service.schemas import (
    OfferCounter,
    OfferCreate,
    OfferResponse,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

router = APIRouter(tags=["offers"])
logger = get_logger(__name__)

BUYER_OFFERS_LINK = "/buyer/offers"
SELLER_OFFERS_LINK = "/seller/offers"


def _to_response(offer: Offer, user: AuthUser, rate: Decimal) -> dict:
    resp = OfferResponse.model_validate(offer)
    if user.role == "buyer":
        resp.display_price = add_service_fee(offer.price, rate)
    else:
        resp.display_price = resp.price
    return resp.model_dump()


async def _offer_for_seller(db: AsyncSession, offer_id: int, user: AuthUser) -> Offer:
    offer = await get_or_404(db, Offer, offer_id, "Offer")
    forbid_unless(user.role == "seller" and offer.seller_id == user.user_id)
    return offer


async def _offer_for_buyer(db: AsyncSession, offer_id: int, user: AuthUser) -> Offer:
    offer = await get_or_404(db, Offer, offer_id, "Offer")
    forbid_unless(user.role == "buyer" and offer.buyer_id == user.user_id)
    return offer


async def _commit(db: AsyncSession, offer: Offer) -> Offer:
    await db.commit()
    await db.refresh(offer)
    return offer


# ============================================================================
# OFFER LISTING AND CREATION
# ============================================================================


@router.get("/offers", response_model=list[OfferResponse])
async def list_offers(
    status: Optional[OfferStatus] = None,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """List the caller's offers, expiring lapsed or sold-out accepted ones."""
    query = select(Offer).options(selectinload(Offer.product))
    if current_user.role == "buyer":
        query = query.where(Offer.buyer_id == current_user.user_id)
    elif current_user.role == "seller":
        query = query.where(Offer.seller_id == current_user.user_id)
    if status:
        query = query.where(Offer.status == status)
    query = query.order_by(Offer.created_at.desc(), Offer.id.desc())

    offers = (await db.execute(query)).scalars().all()
    expired = [
        offer
        for offer in offers
        if offer_flow.expire_if_due(
            offer,
            available_units=offer_flow.offer_stock(offer, offer.product),
        )
    ]
    if expired:
        await db.commit()
    if status:
        offers = [offer for offer in offers if offer.status == status]
    return [_to_response(offer, current_user, rate) for offer in offers]


@router.post("/offers", response_model=OfferResponse, status_code=201)
async def create_offer(
    payload: OfferCreate,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """Make an offer. The submitted price is what the buyer would pay per unit."""
    forbid_unless(current_user.role == "buyer", "Only buyers can make offers")
    product = await get_or_404(db, Product, payload.product_id, "Product")
    if not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found")

    try:
        offer_flow.validate_new_offer(
            payload.quantity, payload.price, product, payload.selected_variations
        )
    except OfferTransitionError as exc:
        raise transition_error(exc)

    offer = Offer(
        buyer_id=current_user.user_id,
        seller_id=product.seller_id,
        product_id=product.id,
        quantity=payload.quantity,
        price=remove_service_fee(payload.price, rate),
        selected_variations=payload.selected_variations,
        status=OfferStatus.PENDING,
    )
    db.add(offer)
    notify(
        db,
        product.seller_id,
        f"New offer for {payload.quantity} units of {product.title}",
        SELLER_OFFERS_LINK,
    )
    await _commit(db, offer)
    logger.info("Buyer %s made offer %s", current_user.user_id, offer.id)
    return _to_response(offer, current_user, rate)


@router.get("/offers/{offer_id}", response_model=OfferResponse)
async def get_offer(
    offer_id: int,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    offer = await get_or_404(db, Offer, offer_id, "Offer")
    forbid_unless(
        current_user.is_admin
        or current_user.user_id in (offer.buyer_id, offer.seller_id)
    )
    return _to_response(offer, current_user, rate)


# ============================================================================
# SELLER RESPONSES
# ============================================================================


@router.post("/offers/{offer_id}/accept", response_model=OfferResponse)
async def accept_offer(
    offer_id: int,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    offer = await _offer_for_seller(db, offer_id, current_user)
    try:
        offer_flow.accept_offer(
            offer, redemption_hours=get_settings().OFFER_REDEMPTION_HOURS
        )
    except OfferTransitionError as exc:
        raise transition_error(exc)
    notify(
        db,
        offer.buyer_id,
        f"Your offer for {offer.quantity} units was accepted",
        BUYER_OFFERS_LINK,
    )
    return _to_response(await _commit(db, offer), current_user, rate)


@router.post("/offers/{offer_id}/reject", response_model=OfferResponse)
async def reject_offer(
    offer_id: int,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    offer = await _offer_for_seller(db, offer_id, current_user)
    try:
        offer_flow.reject_offer(offer)
    except OfferTransitionError as exc:
        raise transition_error(exc)
    notify(
        db,
        offer.buyer_id,
        f"Your offer for {offer.quantity} units was rejected",
        BUYER_OFFERS_LINK,
    )
    return _to_response(await _commit(db, offer), current_user, rate)


@router.post("/offers/{offer_id}/counter", response_model=OfferResponse)
async def counter_offer(
    offer_id: int,
    payload: OfferCounter,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """Seller counter. ``price`` is the seller's fee-exclusive unit price."""
    offer = await _offer_for_seller(db, offer_id, current_user)
    product = await get_or_404(db, Product, offer.product_id, "Product")
    try:
        offer_flow.counter_offer(
            offer,
            price=payload.price,
            quantity=payload.quantity,
            available_units=offer_flow.offer_stock(offer, product),
            max_rounds=get_settings().OFFER_MAX_COUNTER_ROUNDS,
        )
    except OfferTransitionError as exc:
        raise transition_error(exc)
    notify(db, offer.buyer_id, f"Counter offer for {product.title}", BUYER_OFFERS_LINK)
    return _to_response(await _commit(db, offer), current_user, rate)


# ============================================================================
# BUYER RESPONSES
# ============================================================================


@router.post("/offers/{offer_id}/accept-counter", response_model=OfferResponse)
async def accept_counter(
    offer_id: int,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    offer = await _offer_for_buyer(db, offer_id, current_user)
    try:
        offer_flow.accept_counter(
            offer, redemption_hours=get_settings().OFFER_REDEMPTION_HOURS
        )
    except OfferTransitionError as exc:
        raise transition_error(exc)
    notify(db, offer.seller_id, "Counter offer accepted by buyer", SELLER_OFFERS_LINK)
    return _to_response(await _commit(db, offer), current_user, rate)


@router.post("/offers/{offer_id}/reject-counter", response_model=OfferResponse)
async def reject_counter(
    offer_id: int,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    offer = await _offer_for_buyer(db, offer_id, current_user)
    try:
        offer_flow.reject_counter(offer)
    except OfferTransitionError as exc:
        raise transition_error(exc)
    notify(db, offer.seller_id, "Counter offer rejected by buyer", SELLER_OFFERS_LINK)
    return _to_response(await _commit(db, offer), current_user, rate)


@router.post("/offers/{offer_id}/counter-buyer", response_model=OfferResponse)
async def counter_buyer(
    offer_id: int,
    payload: OfferCounter,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """Buyer counter-back. ``price`` is fee-inclusive, as the buyer sees it."""
    offer = await _offer_for_buyer(db, offer_id, current_user)
    product = await get_or_404(db, Product, offer.product_id, "Product")
    try:
        offer_flow.counter_buyer(
            offer,
            price=remove_service_fee(payload.price, rate),
            quantity=payload.quantity,
            available_units=offer_flow.offer_stock(offer, product),
            max_rounds=get_settings().OFFER_MAX_COUNTER_ROUNDS,
        )
    except OfferTransitionError as exc:
        raise transition_error(exc)
    notify(
        db,
        offer.seller_id,
        f"Counter offer from buyer for {product.title}",
        SELLER_OFFERS_LINK,
    )
    return _to_response(await _commit(db, offer), current_user, rate)
