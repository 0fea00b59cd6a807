"""Marketplace orders router: checkout, order tracking, invoices and sales reports."""

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from libs.auth.dependencies import get_current_user, require_seller
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from libs.common.pdf import generate_invoice_pdf, generate_sales_report_pdf
from libs.db.session import get_async_db
from services.marketplace_service import order_flow
from services.marketplace_service.models import (
    NotificationType,
    Offer,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ShippingChoice,
)
from services.marketplace_service.offer_flow import is_redeemable
from services.marketplace_service.order_flow import OrderTransitionError
from services.marketplace_service.pricing import (
    ZERO,
    add_service_fee,
    calculate_seller_payout,
    round_to_cent,
    subtract_service_fee,
    sum_amounts,
)
from services.marketplace_service.routers._helpers import (
    can_view_order,
    forbid_unless,
    get_service_fee_rate,
    get_site_title,
    load_order,
    notify,
    transition_error,
)
from services.marketplace_service.routers.cart import load_cart, save_cart
from services.marketplace_service.schemas import (
    CheckoutRequest,
    OrderDetailResponse,
    OrderResponse,
    OrderStatusUpdate,
    SalesSummaryRow,
    ShippingLabelUpdate,
)
from services.marketplace_service.tracking_client import fetch_tracking_status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

router = APIRouter(tags=["orders"])
logger = get_logger(__name__)


# ============================================================================
# ORDER HELPERS
# ============================================================================


def seller_sees_address(user: AuthUser, order: Order) -> bool:
    """Sellers only need the ship-to address when they ship the order."""
    if user.is_admin or user.user_id == order.buyer_id:
        return True
    return order.shipping_choice == ShippingChoice.SELLER_FREE


def order_view(order: Order, user: AuthUser, detail: bool = False) -> dict:
    schema = OrderDetailResponse if detail else OrderResponse
    data = schema.model_validate(order).model_dump()
    if not seller_sees_address(user, order):
        data["shipping_details"] = None
    if detail:
        settings = get_settings()
        data["milestones"] = [
            vars(m) for m in order_flow.progress_milestones(order.status, order.created_at)
        ]
        data["progress"] = order_flow.progress_fraction(order.status)
        if order.status == OrderStatus.AWAITING_WIRE:
            data["wire_deadline"] = order_flow.wire_deadline(
                order.created_at, settings.WIRE_PAYMENT_WINDOW_HOURS
            )
            data["wire_countdown"] = order_flow.format_countdown(
                order_flow.wire_time_remaining(
                    order.created_at, window_hours=settings.WIRE_PAYMENT_WINDOW_HOURS
                )
            )
    return data


async def restore_order_stock(db: AsyncSession, order: Order) -> None:
    """Put a cancelled order's units back on its products."""
    for item in order.items:
        product = await db.get(Product, item.product_id)
        if product is None:
            logger.warning(
                "Product %s for order %s no longer exists; stock not restored",
                item.product_id,
                order.id,
            )
            continue
        order_flow.adjust_stock(product, item.variation_key, item.quantity)


async def cancel_and_restock(db: AsyncSession, order: Order) -> None:
    try:
        order_flow.cancel_order(order)
    except OrderTransitionError as exc:
        raise transition_error(exc)
    await restore_order_stock(db, order)
    content = f"Order #{order.code} was cancelled"
    notify(db, order.buyer_id, content, f"/buyer/orders/{order.id}", NotificationType.ORDER)
    notify(db, order.seller_id, content, "/seller/orders", NotificationType.ORDER)


def invoice_lines(order: Order, seller_copy: bool, rate: Decimal) -> tuple[list, Decimal]:
    """Invoice rows and total; the seller copy shows amounts net of the fee."""
    items = []
    for item in order.items:
        unit_price, total_price = item.unit_price, item.total_price
        if seller_copy:
            unit_price = subtract_service_fee(unit_price, rate)
            total_price = subtract_service_fee(total_price, rate)
        items.append(
            {
                "title": item.title,
                "quantity": item.quantity,
                "unit_price": unit_price,
                "total_price": total_price,
                "selected_variations": item.selected_variations,
            }
        )
    total = order.total_amount
    if seller_copy:
        total = calculate_seller_payout(
            order_flow.order_items_total(order), order.total_amount, rate
        )
    return items, total


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post("/checkout", response_model=list[OrderResponse], status_code=201)
async def checkout(
    payload: CheckoutRequest,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """Turn the caller's cart into one order per seller.

    Item prices are recorded fee-inclusive. Stock is reserved for every line
    or the whole checkout fails; nothing is partially ordered.
    """
    forbid_unless(
        current_user.role in ("buyer", "seller"),
        "Only buyers or sellers can place orders",
    )
    session, cart = await load_cart(db, current_user, None, rate)
    if not cart.lines:
        raise HTTPException(status_code=400, detail="Cart is empty")

    lines_by_seller = defaultdict(list)
    for line in cart.lines:
        lines_by_seller[line.seller_id].append(line)

    method = payload.payment_method
    if payload.payment_details and payload.payment_details.get("method"):
        method = payload.payment_details["method"]

    orders = []
    for seller_id, lines in lines_by_seller.items():
        items = []
        products = []
        for line in lines:
            product = await db.get(Product, line.product_id)
            if product is None or not product.is_active:
                raise HTTPException(
                    status_code=400, detail=f"{line.title} is no longer available"
                )
            products.append(product)
            if line.offer_id is not None:
                offer = await db.get(Offer, line.offer_id)
                if offer is None or not is_redeemable(offer):
                    raise HTTPException(
                        status_code=400,
                        detail=f"The offer for {line.title} has expired",
                    )
            try:
                order_flow.adjust_stock(product, line.variation_key, -line.quantity)
            except OrderTransitionError as exc:
                raise transition_error(exc)

            unit_price = (
                line.price
                if line.price_includes_fee
                else add_service_fee(line.price, rate)
            )
            items.append(
                OrderItem(
                    product_id=line.product_id,
                    offer_id=line.offer_id,
                    title=line.title,
                    variation_key=line.variation_key,
                    selected_variations=line.selected_variations or None,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    total_price=round_to_cent(unit_price * line.quantity),
                )
            )

        shipping = order_flow.shipping_charge(products, payload.shipping_choice)
        order = Order(
            buyer_id=current_user.user_id,
            seller_id=seller_id,
            status=order_flow.initial_status(method),
            total_amount=sum_amounts(i.total_price for i in items) + shipping,
            shipping_cost=shipping,
            payment_method=method,
            payment_details=payload.payment_details,
            shipping_choice=payload.shipping_choice,
            shipping_details=payload.shipping_details,
            items=items,
        )
        db.add(order)
        await db.flush()
        order.code = order_flow.generate_order_code(order.id)

        notify(
            db,
            current_user.user_id,
            f"Order #{order.code} placed",
            f"/buyer/orders/{order.id}",
            NotificationType.ORDER,
        )
        if order.status == OrderStatus.ORDERED:
            # Wire orders are announced to the seller once the wire clears
            notify(
                db,
                seller_id,
                f"New order #{order.code}",
                "/seller/orders",
                NotificationType.ORDER,
            )
        orders.append(order)

    cart.clear()
    await save_cart(db, session, cart)
    logger.info(
        "Checkout by user %s created orders %s",
        current_user.user_id,
        [o.code for o in orders],
    )
    return [order_view(order, current_user) for order in orders]


# ============================================================================
# ORDER READS
# ============================================================================


@router.get("/orders", response_model=list[OrderResponse])
async def list_orders(
    status: Optional[OrderStatus] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Orders the caller bought or sold; admins see all orders."""
    query = select(Order).options(selectinload(Order.items))
    if not current_user.is_admin:
        query = query.where(
            or_(
                Order.buyer_id == current_user.user_id,
                Order.seller_id == current_user.user_id,
            )
        )
    if status:
        query = query.where(Order.status == status)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    result = await db.execute(query)
    return [order_view(order, current_user) for order in result.scalars().all()]


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: int,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order = await load_order(db, order_id)
    forbid_unless(can_view_order(current_user, order))
    return order_view(order, current_user, detail=True)


@router.get("/orders/{order_id}/invoice.pdf")
async def download_invoice(
    order_id: int,
    current_user: AuthUser = Depends(get_current_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    order = await load_order(db, order_id)
    forbid_unless(can_view_order(current_user, order))

    seller_copy = (
        current_user.user_id == order.seller_id
        and current_user.user_id != order.buyer_id
        and not current_user.is_admin
    )
    items, total = invoice_lines(order, seller_copy, rate)
    ship_to = order.shipping_details if seller_sees_address(current_user, order) else None
    pdf = generate_invoice_pdf(
        order_code=order.code or str(order.id),
        order_date=ensure_utc(order.created_at),
        items=items,
        total_amount=total,
        ship_to=ship_to,
        site_title=await get_site_title(db),
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"attachment; filename=invoice-{order.code}.pdf"
        },
    )


# ============================================================================
# ORDER UPDATES
# ============================================================================


@router.patch("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Buyer, seller or admin cancellation before the order ships."""
    order = await load_order(db, order_id)
    forbid_unless(can_view_order(current_user, order))
    await cancel_and_restock(db, order)
    await db.commit()
    return order_view(order, current_user)


@router.post("/orders/{order_id}/shipping-label", response_model=OrderResponse)
async def upload_shipping_label(
    order_id: int,
    payload: ShippingLabelUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Buyer records the label they bought for a buyer-shipped order."""
    order = await load_order(db, order_id)
    forbid_unless(current_user.is_admin or order.buyer_id == current_user.user_id)

    order.shipping_label = payload.shipping_label
    if payload.shipping_package is not None:
        order.shipping_package = payload.shipping_package
    notify(
        db,
        order.seller_id,
        f"Shipping label uploaded for order #{order.code}",
        f"/seller/orders/{order.id}",
        NotificationType.ORDER,
    )
    await db.commit()
    return order_view(order, current_user)


@router.put("/orders/{order_id}", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Seller marks shipped (tracking implies shipped); admin may set any forward status."""
    order = await load_order(db, order_id)
    forbid_unless(current_user.is_admin or order.seller_id == current_user.user_id)
    if payload.status == OrderStatus.CANCELLED:
        raise HTTPException(
            status_code=400, detail="Use the cancel endpoint to cancel an order"
        )

    carrier_status = None
    if current_user.is_admin and payload.tracking_number:
        carrier_status = await fetch_tracking_status(payload.tracking_number)

    try:
        changed = order_flow.seller_status_update(
            order,
            is_admin=current_user.is_admin,
            status=payload.status,
            tracking_number=payload.tracking_number,
            carrier_status=carrier_status,
        )
    except OrderTransitionError as exc:
        raise transition_error(exc)

    if changed:
        content = f"Order #{order.code} status updated to {order.status.value}"
        notify(db, order.buyer_id, content, f"/buyer/orders/{order.id}", NotificationType.ORDER)
        notify(db, order.seller_id, content, "/seller/orders", NotificationType.ORDER)
    await db.commit()
    return order_view(order, current_user)


# ============================================================================
# SELLER SALES REPORTS
# ============================================================================


def _report_window(start: Optional[date], end: Optional[date]) -> tuple[date, date]:
    end = end or utc_now().date()
    start = start or end - timedelta(days=30)
    if start > end:
        raise HTTPException(status_code=400, detail="start must be before end")
    return start, end


async def sales_summary(
    db: AsyncSession, seller_id: int, start: date, end: date, rate: Decimal
) -> list[dict]:
    """Daily seller revenue (net of the service fee) for non-cancelled orders."""
    window_start = datetime.combine(start, time.min, tzinfo=timezone.utc)
    window_end = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    query = (
        select(Order)
        .where(
            Order.seller_id == seller_id,
            Order.status != OrderStatus.CANCELLED,
            Order.created_at >= window_start,
            Order.created_at < window_end,
        )
        .options(selectinload(Order.items))
    )
    result = await db.execute(query)
    revenue_by_day: dict[date, Decimal] = defaultdict(lambda: ZERO)
    for order in result.scalars().all():
        day = ensure_utc(order.created_at).date()
        revenue_by_day[day] += calculate_seller_payout(
            order_flow.order_items_total(order), order.total_amount, rate
        )
    return [
        {"day": day, "revenue": revenue_by_day[day]} for day in sorted(revenue_by_day)
    ]


@router.get("/seller/sales", response_model=list[SalesSummaryRow])
async def get_sales_summary(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    current_user: AuthUser = Depends(require_seller),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    start, end = _report_window(start, end)
    return await sales_summary(db, current_user.user_id, start, end, rate)


@router.get("/seller/sales.pdf")
async def download_sales_report(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    current_user: AuthUser = Depends(require_seller),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    start, end = _report_window(start, end)
    summary = await sales_summary(db, current_user.user_id, start, end, rate)
    pdf = generate_sales_report_pdf(
        seller_name=current_user.email or f"Seller #{current_user.user_id}",
        summary=[{"date": row["day"], "revenue": row["revenue"]} for row in summary],
        start=start,
        end=end,
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": (
                f"attachment; filename=sales-{start.isoformat()}-{end.isoformat()}.pdf"
            )
        },
    )
