"""Marketplace admin router: site settings, billing, wire payments and payouts."""

from decimal import Decimal

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.marketplace_service import order_flow
from services.marketplace_service.models import NotificationType, Order, OrderStatus
from services.marketplace_service.order_flow import OrderTransitionError
from services.marketplace_service.pricing import (
    calculate_order_commission,
    calculate_seller_payout,
)
from services.marketplace_service.routers._helpers import (
    COMMISSION_RATE_KEY,
    SITE_TITLE_KEY,
    get_service_fee_rate,
    get_site_title,
    load_order,
    notify,
    resolve_service_fee_rate,
    set_setting,
    transition_error,
)
from services.marketplace_service.routers.orders import cancel_and_restock
from services.marketplace_service.schemas import (
    BillingOrderResponse,
    BulkActionFailure,
    BulkActionResult,
    BulkOrderAction,
    OrderResponse,
    PayoutGroupResponse,
    SiteSettingsResponse,
    SiteSettingsUpdate,
    WireOrderResponse,
)
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

router = APIRouter(tags=["admin"])
logger = get_logger(__name__)


# ============================================================================
# SETTINGS
# ============================================================================


@router.get("/settings", response_model=SiteSettingsResponse)
async def get_admin_settings(
    _admin: AuthUser = Depends(require_admin),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    return {"commission_rate": rate, "site_title": await get_site_title(db)}


@router.put("/settings", response_model=SiteSettingsResponse)
async def update_admin_settings(
    payload: SiteSettingsUpdate,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Change the commission rate or site title.

    A new rate applies to prices computed from now on; cart lines and orders
    already priced keep theirs.
    """
    if payload.commission_rate is not None:
        await set_setting(db, COMMISSION_RATE_KEY, str(payload.commission_rate))
        logger.info(
            "Admin %s set commission rate to %s", admin.user_id, payload.commission_rate
        )
    if payload.site_title is not None:
        await set_setting(db, SITE_TITLE_KEY, payload.site_title)
    await db.commit()
    return {
        "commission_rate": await resolve_service_fee_rate(db),
        "site_title": await get_site_title(db),
    }


# ============================================================================
# BILLING AND PAYOUTS
# ============================================================================


@router.get("/billing", response_model=list[BillingOrderResponse])
async def list_billing(
    _admin: AuthUser = Depends(require_admin),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """Card orders whose buyer has not been charged yet."""
    query = (
        select(Order)
        .where(
            Order.buyer_charged.is_(False),
            Order.status.not_in([OrderStatus.CANCELLED, OrderStatus.AWAITING_WIRE]),
        )
        .options(selectinload(Order.items))
        .order_by(Order.created_at, Order.id)
    )
    orders = (await db.execute(query)).scalars().all()
    rows = []
    for order in orders:
        items_total = order_flow.order_items_total(order)
        row = OrderResponse.model_validate(order).model_dump()
        row["items_total"] = items_total
        row["commission"] = calculate_order_commission(items_total, rate)
        row["seller_payout"] = calculate_seller_payout(
            items_total, order.total_amount, rate
        )
        rows.append(row)
    return rows


@router.get("/wire-orders", response_model=list[WireOrderResponse])
async def list_wire_orders(
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Orders awaiting a wire, with the time left on each payment window."""
    window = get_settings().WIRE_PAYMENT_WINDOW_HOURS
    query = (
        select(Order)
        .where(Order.status == OrderStatus.AWAITING_WIRE)
        .options(selectinload(Order.items))
        .order_by(Order.created_at, Order.id)
    )
    orders = (await db.execute(query)).scalars().all()
    now = utc_now()
    rows = []
    for order in orders:
        remaining = order_flow.wire_time_remaining(order.created_at, now, window)
        row = OrderResponse.model_validate(order).model_dump()
        row["wire_deadline"] = order_flow.wire_deadline(order.created_at, window)
        row["wire_countdown"] = order_flow.format_countdown(remaining)
        row["wire_overdue"] = not remaining
        rows.append(row)
    return rows


@router.get("/payouts", response_model=list[PayoutGroupResponse])
async def list_payouts(
    _admin: AuthUser = Depends(require_admin),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """Delivered, unpaid orders grouped by seller and payout date."""
    query = (
        select(Order)
        .where(
            Order.status == OrderStatus.DELIVERED,
            Order.seller_paid.is_(False),
        )
        .options(selectinload(Order.items))
        .order_by(Order.seller_id, Order.delivered_at, Order.id)
    )
    orders = (await db.execute(query)).scalars().all()
    return [
        vars(group)
        for group in order_flow.group_payouts(
            orders, rate, get_settings().SELLER_PAYOUT_DELAY_DAYS
        )
    ]


# ============================================================================
# ORDER ACTIONS
# ============================================================================


@router.post("/orders/mark-charged", response_model=BulkActionResult)
async def bulk_mark_charged(
    payload: BulkOrderAction,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Mark several orders charged, one at a time.

    Each order is committed on its own; a failure on one does not undo the
    others. The result lists which ids succeeded and which failed.
    """
    result = BulkActionResult()
    for order_id in payload.order_ids:
        try:
            order = await db.get(Order, order_id)
            if order is None:
                result.failed.append(
                    BulkActionFailure(order_id=order_id, detail="Order not found")
                )
                continue
            order.buyer_charged = True
            await db.commit()
            result.succeeded.append(order_id)
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning("Bulk mark-charged failed for order %s: %s", order_id, exc)
            result.failed.append(
                BulkActionFailure(order_id=order_id, detail="Update failed")
            )
    logger.info(
        "Admin %s bulk mark-charged: %d succeeded, %d failed",
        admin.user_id,
        len(result.succeeded),
        len(result.failed),
    )
    return result


@router.post("/orders/{order_id}/mark-charged", response_model=OrderResponse)
async def mark_charged(
    order_id: int,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    order = await load_order(db, order_id)
    order.buyer_charged = True
    await db.commit()
    return order


@router.post("/orders/{order_id}/mark-paid", response_model=OrderResponse)
async def mark_paid(
    order_id: int,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Record that the seller's payout for this order was sent."""
    order = await load_order(db, order_id)
    order.seller_paid = True
    await db.commit()
    return order


@router.post("/orders/{order_id}/mark-delivered", response_model=OrderResponse)
async def mark_delivered(
    order_id: int,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    order = await load_order(db, order_id)
    try:
        order_flow.advance_status(order, OrderStatus.DELIVERED)
    except OrderTransitionError as exc:
        raise transition_error(exc)
    notify(
        db,
        order.buyer_id,
        f"Order #{order.code} was delivered",
        f"/buyer/orders/{order.id}",
        NotificationType.ORDER,
    )
    await db.commit()
    return order


@router.post("/orders/{order_id}/mark-wire-paid", response_model=OrderResponse)
async def mark_wire_paid(
    order_id: int,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Confirm a received wire; the order proceeds and the seller hears of it."""
    order = await load_order(db, order_id)
    try:
        order_flow.mark_wire_paid(order)
    except OrderTransitionError as exc:
        raise transition_error(exc)
    notify(
        db,
        order.buyer_id,
        f"Wire payment received for order #{order.code}",
        f"/buyer/orders/{order.id}",
        NotificationType.ORDER,
    )
    notify(
        db,
        order.seller_id,
        f"New order #{order.code}",
        "/seller/orders",
        NotificationType.ORDER,
    )
    await db.commit()
    return order


@router.post("/orders/{order_id}/send-wire-reminder", status_code=204)
async def send_wire_reminder(
    order_id: int,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    order = await load_order(db, order_id)
    if order.status != OrderStatus.AWAITING_WIRE:
        raise transition_error(OrderTransitionError("Order is not awaiting a wire payment"))
    remaining = order_flow.wire_time_remaining(
        order.created_at, window_hours=get_settings().WIRE_PAYMENT_WINDOW_HOURS
    )
    notify(
        db,
        order.buyer_id,
        f"Reminder: wire payment for order #{order.code} is due in "
        f"{order_flow.format_countdown(remaining)}",
        f"/buyer/orders/{order.id}",
        NotificationType.ORDER,
    )
    order.wire_reminder_sent_at = utc_now()
    await db.commit()


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def admin_cancel_order(
    order_id: int,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Cancel an unpaid wire order (or any order that has not shipped)."""
    order = await load_order(db, order_id)
    await cancel_and_restock(db, order)
    await db.commit()
    return order
