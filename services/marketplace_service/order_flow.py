"""Order status progression, wire-payment deadlines and payout timing.

Status is linear::

    awaiting_wire -> ordered -> shipped -> out_for_delivery -> delivered

with ``cancelled`` reachable only before shipping. Milestone dates and the
wire countdown are display estimates derived from ``created_at``; nothing here
moves an order automatically.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.marketplace_service.models.enums import OrderStatus, ShippingChoice
from services.marketplace_service.pricing import (
    ZERO,
    Number,
    calculate_seller_payout,
    round_to_cent,
    sum_amounts,
)

logger = get_logger(__name__)

PROGRESSION = (
    OrderStatus.AWAITING_WIRE,
    OrderStatus.ORDERED,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)
CANCELLABLE = frozenset({OrderStatus.AWAITING_WIRE, OrderStatus.ORDERED})

# Days after creation shown against each reached step.
MILESTONE_OFFSETS = {
    OrderStatus.SHIPPED: 1,
    OrderStatus.OUT_FOR_DELIVERY: 3,
    OrderStatus.DELIVERED: 5,
}
MILESTONE_LABELS = {
    OrderStatus.AWAITING_WIRE: "Awaiting Wire",
    OrderStatus.ORDERED: "Ordered",
    OrderStatus.SHIPPED: "Shipped",
    OrderStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    OrderStatus.DELIVERED: "Delivered",
}


class OrderTransitionError(ValueError):
    """Raised when an order cannot move to the requested status."""


def _rank(status: OrderStatus) -> int:
    return PROGRESSION.index(OrderStatus(status))


def initial_status(payment_method: Optional[str]) -> OrderStatus:
    if payment_method == "wire":
        return OrderStatus.AWAITING_WIRE
    return OrderStatus.ORDERED


def generate_order_code(order_id: int) -> str:
    """Short public order code, e.g. ``OH7Y`` for id 1."""
    value = order_id * 9973 + 12345
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    encoded = ""
    while True:
        value, remainder = divmod(value, 36)
        encoded = digits[remainder] + encoded
        if value == 0:
            break
    return "O" + encoded


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------


def adjust_stock(product, key: str, delta: int) -> None:
    """Apply a stock change to a product and, when tracked, to its variation.

    Negative ``delta`` reserves units for an order; positive returns them.
    """
    units = product.available_units + delta
    stocks = dict(product.variation_stocks or {})
    if key in stocks:
        remaining = int(stocks[key]) + delta
        if remaining < 0:
            raise OrderTransitionError(f"Not enough stock for {product.title}")
        stocks[key] = remaining
        product.variation_stocks = stocks
    if units < 0:
        raise OrderTransitionError(f"Not enough stock for {product.title}")
    product.available_units = units


def shipping_charge(products: Iterable, shipping_choice) -> Decimal:
    """Shipping added to an order, taken from the listings themselves.

    Buyers who arrange their own freight pay nothing here. When the seller
    ships, every line whose listing does not ship free adds its listing's
    ``shipping_fee``.
    """
    if ShippingChoice(shipping_choice) != ShippingChoice.SELLER_FREE:
        return ZERO
    return round_to_cent(
        sum_amounts(
            p.shipping_fee for p in products if not p.ships_free and p.shipping_fee
        )
    )


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def advance_status(order, new_status, now: Optional[datetime] = None):
    """Move an order forward along the progression.

    Skipping steps is allowed; going backwards, staying put, or touching a
    cancelled order is not.
    """
    current = OrderStatus(order.status)
    target = OrderStatus(new_status)
    if current == OrderStatus.CANCELLED:
        raise OrderTransitionError("Order has been cancelled")
    if target == OrderStatus.CANCELLED:
        return cancel_order(order, now)
    if _rank(target) <= _rank(current):
        raise OrderTransitionError(
            f"Cannot move order from {current.value} to {target.value}"
        )
    order.status = target
    if target == OrderStatus.DELIVERED:
        order.delivered_at = now or utc_now()
    logger.info("Order %s moved %s -> %s", order.id, current.value, target.value)
    return order


def cancel_order(order, now: Optional[datetime] = None):
    current = OrderStatus(order.status)
    if current not in CANCELLABLE:
        raise OrderTransitionError(f"Cannot cancel an order that is {current.value}")
    order.status = OrderStatus.CANCELLED
    order.cancelled_at = now or utc_now()
    logger.info("Order %s cancelled from %s", order.id, current.value)
    return order


def mark_wire_paid(order):
    if OrderStatus(order.status) != OrderStatus.AWAITING_WIRE:
        raise OrderTransitionError("Order is not awaiting a wire payment")
    return advance_status(order, OrderStatus.ORDERED)


def status_from_tracking(carrier_status: str) -> OrderStatus:
    """Map free-text carrier status onto our progression."""
    text = carrier_status.lower()
    if "delivered" in text:
        return OrderStatus.DELIVERED
    if "out" in text:
        return OrderStatus.OUT_FOR_DELIVERY
    return OrderStatus.SHIPPED


def seller_status_update(
    order,
    *,
    is_admin: bool,
    status: Optional[str] = None,
    tracking_number: Optional[str] = None,
    carrier_status: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Apply a seller/admin status or tracking update.

    Sellers can only mark an order shipped, and supplying a tracking number
    implies it. Admins may set any forward status; with a tracking number and
    a carrier status, the carrier's view decides. Returns True when the status
    changed.
    """
    if tracking_number:
        order.tracking_number = tracking_number

    target: Optional[OrderStatus] = OrderStatus(status) if status else None
    if not is_admin:
        if target is not None and target != OrderStatus.SHIPPED:
            raise OrderTransitionError("Sellers can only mark orders as shipped")
        if tracking_number:
            target = OrderStatus.SHIPPED
        current = OrderStatus(order.status)
        if (
            target == OrderStatus.SHIPPED
            and current != OrderStatus.CANCELLED
            and _rank(current) >= _rank(OrderStatus.SHIPPED)
        ):
            return False
    elif tracking_number and carrier_status:
        target = status_from_tracking(carrier_status)

    if target is None or target == OrderStatus(order.status):
        return False
    advance_status(order, target, now)
    return True


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


@dataclass
class Milestone:
    status: OrderStatus
    label: str
    reached: bool
    estimated_at: Optional[datetime] = None


def progress_milestones(status, created_at: datetime) -> list[Milestone]:
    """Progress-bar steps with estimated dates for the steps reached so far."""
    created_at = ensure_utc(created_at)
    current = OrderStatus(status)
    reached_rank = -1 if current == OrderStatus.CANCELLED else _rank(current)
    milestones = []
    for step in PROGRESSION:
        reached = _rank(step) <= reached_rank
        estimated = None
        if reached:
            offset = MILESTONE_OFFSETS.get(step, 0)
            estimated = created_at + timedelta(days=offset)
        milestones.append(Milestone(step, MILESTONE_LABELS[step], reached, estimated))
    return milestones


def progress_fraction(status) -> float:
    current = OrderStatus(status)
    if current == OrderStatus.CANCELLED:
        return 0.0
    return _rank(current) / (len(PROGRESSION) - 1)


def wire_deadline(created_at: datetime, window_hours: int = 48) -> datetime:
    return ensure_utc(created_at) + timedelta(hours=window_hours)


def wire_time_remaining(
    created_at: datetime, now: Optional[datetime] = None, window_hours: int = 48
) -> timedelta:
    """Time left to receive the wire; zero once the deadline has passed."""
    remaining = wire_deadline(created_at, window_hours) - (now or utc_now())
    return max(remaining, timedelta(0))


def format_countdown(remaining: timedelta) -> str:
    total_minutes = max(int(remaining.total_seconds()) // 60, 0)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def payout_date(delivered_at: Optional[datetime], delay_days: int = 7) -> datetime:
    base = ensure_utc(delivered_at) if delivered_at else utc_now()
    return base + timedelta(days=delay_days)


# ---------------------------------------------------------------------------
# Payout grouping
# ---------------------------------------------------------------------------


@dataclass
class PayoutGroup:
    seller_id: int
    payout_date: datetime
    orders: list[dict] = field(default_factory=list)
    total: Decimal = ZERO


def order_items_total(order) -> Decimal:
    return sum_amounts(item.total_price for item in order.items)


def group_payouts(
    orders: Iterable, rate: Number, delay_days: int = 7
) -> list[PayoutGroup]:
    """Group delivered, unpaid orders by seller and payout day.

    Each order contributes its items less the service fee, plus shipping.
    ``orders`` must have their items loaded.
    """
    groups: "OrderedDict[tuple[int, str], PayoutGroup]" = OrderedDict()
    for order in orders:
        paid_on = payout_date(order.delivered_at, delay_days)
        key = (order.seller_id, paid_on.date().isoformat())
        group = groups.get(key)
        if group is None:
            group = groups[key] = PayoutGroup(order.seller_id, paid_on)
        amount = calculate_seller_payout(
            order_items_total(order), order.total_amount, rate
        )
        group.orders.append({"id": order.id, "code": order.code, "amount": amount})
        group.total += amount
    return list(groups.values())
