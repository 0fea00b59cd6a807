"""Marketplace cart router: server-held cart sessions.

Signed-in users own ``user:<id>`` carts; guests send an ``X-Cart-Session``
token and own ``session:<token>`` carts. Each mutation is persisted
immediately and bumps the cart version, which is returned as the ``ETag``.
Clients that send ``If-Match`` get a 412 when another tab changed the cart
first.
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from libs.auth.dependencies import get_current_user, get_optional_user
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.marketplace_service.cart import Cart, ProductListing
from services.marketplace_service.models import CartSession, Product
from services.marketplace_service.offer_flow import add_offer_to_cart
from services.marketplace_service.routers._helpers import get_service_fee_rate
from services.marketplace_service.schemas import (
    CartItemCreate,
    CartItemUpdate,
    CartResponse,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["cart"])
logger = get_logger(__name__)


# ============================================================================
# CART HELPERS
# ============================================================================


def owner_key(user: Optional[AuthUser], cart_token: Optional[str]) -> str:
    if user:
        return f"user:{user.user_id}"
    if cart_token:
        return f"session:{cart_token}"
    raise HTTPException(status_code=400, detail="Session ID required for guest cart")


async def _get_session(db: AsyncSession, key: str) -> Optional[CartSession]:
    result = await db.execute(select(CartSession).where(CartSession.owner_key == key))
    return result.scalar_one_or_none()


async def _merge_guest_cart(
    db: AsyncSession, cart: Cart, cart_token: str, rate: Decimal
) -> bool:
    """Fold a guest cart into the signed-in user's cart after login."""
    guest = await _get_session(db, f"session:{cart_token}")
    if guest is None:
        return False
    guest_cart = Cart.from_payload(guest.items, role=guest.role, fee_rate=rate)
    guest_cart.reprice_for_role(cart.role)
    for line in guest_cart.lines:
        product = await db.get(Product, line.product_id)
        if product is None or not product.is_active:
            cart.reject("Item unavailable", f"{line.title} is no longer available.")
            continue
        listing = ProductListing.from_product(product)
        cart.merge_line(line, listing.stock_for(line.variation_key))
    await db.delete(guest)
    logger.info(
        "Merged %d guest cart lines into %s", len(guest_cart.lines), cart.role
    )
    return True


async def load_cart(
    db: AsyncSession,
    user: Optional[AuthUser],
    cart_token: Optional[str],
    rate: Decimal,
) -> tuple[CartSession, Cart]:
    """Fetch (or start) the caller's cart, priced for the caller's role."""
    role = user.role if user else None
    session = await _get_session(db, owner_key(user, cart_token))
    if session is None:
        session = CartSession(owner_key=owner_key(user, cart_token), role=role, items=[])
        db.add(session)
        await db.flush()

    cart = Cart.from_payload(session.items, role=session.role, fee_rate=rate)
    changed = False
    if session.role != role:
        cart.reprice_for_role(role)
        changed = True
    if user and cart_token:
        changed = await _merge_guest_cart(db, cart, cart_token, rate) or changed
    if changed:
        await save_cart(db, session, cart)
    return session, cart


async def save_cart(db: AsyncSession, session: CartSession, cart: Cart) -> None:
    session.items = cart.to_payload()
    session.role = cart.role
    await db.commit()
    await db.refresh(session)


def check_if_match(if_match: Optional[str], session: CartSession) -> None:
    if if_match is None or if_match.strip() == "*":
        return
    expected = if_match.strip().removeprefix("W/").strip('"')
    if expected != str(session.version):
        raise HTTPException(
            status_code=412,
            detail="Cart was changed elsewhere. Reload and try again.",
        )


def cart_response(
    response: Response, session: CartSession, cart: Cart, ok: bool = True
) -> CartResponse:
    response.headers["ETag"] = f'"{session.version}"'
    items = []
    for line in cart.lines:
        item = line.to_dict()
        item["price"] = line.price
        item["line_total"] = line.line_total
        items.append(item)
    return CartResponse(
        items=items,
        total=cart.cart_total,
        item_count=cart.item_count,
        version=session.version,
        ok=ok,
        notices=[
            {"title": n.title, "description": n.description, "destructive": n.destructive}
            for n in cart.notices
        ],
    )


async def _mutable_cart(
    db: AsyncSession,
    user: Optional[AuthUser],
    cart_token: Optional[str],
    if_match: Optional[str],
    rate: Decimal,
) -> tuple[CartSession, Cart]:
    session, cart = await load_cart(db, user, cart_token, rate)
    check_if_match(if_match, session)
    return session, cart


# ============================================================================
# CART ENDPOINTS
# ============================================================================


@router.get("/cart", response_model=CartResponse)
async def get_cart(
    response: Response,
    x_cart_session: Optional[str] = Header(None),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    session, cart = await load_cart(db, current_user, x_cart_session, rate)
    await db.commit()
    return cart_response(response, session, cart)


@router.post("/cart/items", response_model=CartResponse)
async def add_cart_item(
    payload: CartItemCreate,
    response: Response,
    x_cart_session: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """Add a product to the cart.

    Quantity problems are not errors: the response carries ``ok=false`` and a
    notice explaining why nothing changed.
    """
    session, cart = await _mutable_cart(
        db, current_user, x_cart_session, if_match, rate
    )
    product = await db.get(Product, payload.product_id)
    if product is None or not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found")

    ok = cart.add_to_cart(
        ProductListing.from_product(product),
        payload.quantity,
        payload.selected_variations,
    )
    if ok:
        await save_cart(db, session, cart)
    return cart_response(response, session, cart, ok)


@router.patch("/cart/items", response_model=CartResponse)
async def update_cart_item(
    payload: CartItemUpdate,
    response: Response,
    x_cart_session: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    session, cart = await _mutable_cart(
        db, current_user, x_cart_session, if_match, rate
    )
    ok = cart.update_quantity(
        payload.product_id, payload.variation_key, payload.quantity, payload.offer_id
    )
    if ok:
        await save_cart(db, session, cart)
    return cart_response(response, session, cart, ok)


@router.delete("/cart/items", response_model=CartResponse)
async def remove_cart_item(
    response: Response,
    product_id: int = Query(...),
    variation_key: Optional[str] = Query(None),
    offer_id: Optional[int] = Query(None),
    x_cart_session: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """Remove a line. Omitted ``variation_key``/``offer_id`` match any value."""
    session, cart = await _mutable_cart(
        db, current_user, x_cart_session, if_match, rate
    )
    ok = cart.remove_from_cart(product_id, variation_key, offer_id)
    if ok:
        await save_cart(db, session, cart)
    return cart_response(response, session, cart, ok)


@router.post("/cart/offers/{offer_id}", response_model=CartResponse)
async def add_offer_item(
    offer_id: int,
    response: Response,
    if_match: Optional[str] = Header(None),
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """Add an accepted offer's fixed quantity and price to the cart."""
    session, cart = await _mutable_cart(db, current_user, None, if_match, rate)
    ok = await add_offer_to_cart(db, cart, offer_id, buyer_id=current_user.user_id)
    if ok:
        await save_cart(db, session, cart)
    return cart_response(response, session, cart, ok)


@router.delete("/cart", response_model=CartResponse)
async def clear_cart(
    response: Response,
    x_cart_session: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    session, cart = await _mutable_cart(
        db, current_user, x_cart_session, if_match, rate
    )
    cart.clear()
    await save_cart(db, session, cart)
    return cart_response(response, session, cart)
