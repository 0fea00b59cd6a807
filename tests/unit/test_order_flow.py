"""Unit tests for order status progression, stock and payout helpers."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from services.marketplace_service import order_flow
from services.marketplace_service.models import Order, OrderItem, OrderStatus, Product
from services.marketplace_service.order_flow import OrderTransitionError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
RATE = Decimal("0.035")


def _order(status=OrderStatus.ORDERED, **overrides) -> Order:
    defaults = {"id": 1, "buyer_id": 10, "seller_id": 20, "status": status}
    defaults.update(overrides)
    return Order(**defaults)


def _product(**overrides) -> Product:
    defaults = {
        "id": 1,
        "seller_id": 20,
        "title": "Lot",
        "price": Decimal("10.00"),
        "available_units": 10,
    }
    defaults.update(overrides)
    return Product(**defaults)


# ---------------------------------------------------------------------------
# Codes and initial status
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_generate_order_code_is_stable_and_unique():
    assert order_flow.generate_order_code(1) == "OH7Y"
    codes = {order_flow.generate_order_code(i) for i in range(1, 500)}
    assert len(codes) == 499
    assert all(code.startswith("O") for code in codes)


@pytest.mark.unit
def test_wire_orders_start_awaiting_payment():
    assert order_flow.initial_status("wire") == OrderStatus.AWAITING_WIRE
    assert order_flow.initial_status("card") == OrderStatus.ORDERED
    assert order_flow.initial_status(None) == OrderStatus.ORDERED


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_advance_status_moves_forward_and_stamps_delivery():
    order = _order()
    order_flow.advance_status(order, OrderStatus.SHIPPED)
    assert order.status == OrderStatus.SHIPPED

    order_flow.advance_status(order, OrderStatus.DELIVERED, now=NOW)
    assert order.status == OrderStatus.DELIVERED
    assert order.delivered_at == NOW


@pytest.mark.unit
@pytest.mark.parametrize(
    "current,target",
    [
        (OrderStatus.SHIPPED, OrderStatus.ORDERED),
        (OrderStatus.SHIPPED, OrderStatus.SHIPPED),
        (OrderStatus.DELIVERED, OrderStatus.OUT_FOR_DELIVERY),
        (OrderStatus.CANCELLED, OrderStatus.SHIPPED),
    ],
)
def test_advance_status_refuses_backward_moves(current, target):
    order = _order(current)
    with pytest.raises(OrderTransitionError):
        order_flow.advance_status(order, target)
    assert order.status == current


@pytest.mark.unit
def test_cancel_only_before_shipping():
    for status in (OrderStatus.AWAITING_WIRE, OrderStatus.ORDERED):
        order = order_flow.cancel_order(_order(status), now=NOW)
        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_at == NOW

    with pytest.raises(OrderTransitionError):
        order_flow.cancel_order(_order(OrderStatus.SHIPPED))


@pytest.mark.unit
def test_advance_to_cancelled_delegates_to_cancel():
    order = order_flow.advance_status(_order(), OrderStatus.CANCELLED, now=NOW)
    assert order.status == OrderStatus.CANCELLED


@pytest.mark.unit
def test_mark_wire_paid():
    order = order_flow.mark_wire_paid(_order(OrderStatus.AWAITING_WIRE))
    assert order.status == OrderStatus.ORDERED

    with pytest.raises(OrderTransitionError):
        order_flow.mark_wire_paid(order)


@pytest.mark.unit
@pytest.mark.parametrize(
    "text,expected",
    [
        ("Delivered", OrderStatus.DELIVERED),
        ("Out for delivery", OrderStatus.OUT_FOR_DELIVERY),
        ("In transit", OrderStatus.SHIPPED),
    ],
)
def test_status_from_tracking(text, expected):
    assert order_flow.status_from_tracking(text) == expected


@pytest.mark.unit
def test_seller_tracking_number_implies_shipped():
    order = _order()
    changed = order_flow.seller_status_update(
        order, is_admin=False, tracking_number="1Z999"
    )
    assert changed
    assert order.status == OrderStatus.SHIPPED
    assert order.tracking_number == "1Z999"


@pytest.mark.unit
def test_seller_cannot_set_other_statuses():
    with pytest.raises(OrderTransitionError):
        order_flow.seller_status_update(
            _order(), is_admin=False, status=OrderStatus.DELIVERED
        )


@pytest.mark.unit
def test_seller_tracking_update_after_shipping_keeps_status():
    order = _order(OrderStatus.OUT_FOR_DELIVERY)
    changed = order_flow.seller_status_update(
        order, is_admin=False, tracking_number="1Z000"
    )
    assert changed is False
    assert order.status == OrderStatus.OUT_FOR_DELIVERY
    assert order.tracking_number == "1Z000"


@pytest.mark.unit
def test_admin_tracking_uses_carrier_status():
    order = _order()
    changed = order_flow.seller_status_update(
        order,
        is_admin=True,
        tracking_number="1Z999",
        carrier_status="Out For Delivery",
    )
    assert changed
    assert order.status == OrderStatus.OUT_FOR_DELIVERY


@pytest.mark.unit
def test_admin_explicit_status_without_carrier():
    order = _order()
    changed = order_flow.seller_status_update(
        order, is_admin=True, status=OrderStatus.DELIVERED.value, now=NOW
    )
    assert changed
    assert order.delivered_at == NOW


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_adjust_stock_reserves_and_restores_variation_units():
    key = '{"size":"M"}'
    product = _product(variation_stocks={key: 4, '{"size":"L"}': 6})

    order_flow.adjust_stock(product, key, -3)
    assert product.available_units == 7
    assert product.variation_stocks[key] == 1

    order_flow.adjust_stock(product, key, 3)
    assert product.available_units == 10
    assert product.variation_stocks[key] == 4


@pytest.mark.unit
def test_adjust_stock_refuses_oversell():
    product = _product(variation_stocks={'{"size":"M"}': 2})
    with pytest.raises(OrderTransitionError):
        order_flow.adjust_stock(product, '{"size":"M"}', -3)
    with pytest.raises(OrderTransitionError):
        order_flow.adjust_stock(product, "{}", -11)
    assert product.available_units == 10


@pytest.mark.unit
def test_shipping_charge_comes_from_listings():
    lots = [
        _product(shipping_fee=Decimal("12.50")),
        _product(shipping_fee=Decimal("7.50")),
        _product(ships_free=True, shipping_fee=Decimal("30.00")),
        _product(),
    ]
    assert order_flow.shipping_charge(lots, "seller_free") == Decimal("20.00")
    assert order_flow.shipping_charge(lots, "buyer") == Decimal("0")


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_progress_milestones_estimate_reached_steps():
    milestones = order_flow.progress_milestones(OrderStatus.SHIPPED, NOW)
    by_status = {m.status: m for m in milestones}

    assert by_status[OrderStatus.ORDERED].reached
    assert by_status[OrderStatus.SHIPPED].estimated_at == NOW + timedelta(days=1)
    assert not by_status[OrderStatus.DELIVERED].reached
    assert by_status[OrderStatus.DELIVERED].estimated_at is None


@pytest.mark.unit
def test_progress_fraction():
    assert order_flow.progress_fraction(OrderStatus.AWAITING_WIRE) == 0.0
    assert order_flow.progress_fraction(OrderStatus.DELIVERED) == 1.0
    assert order_flow.progress_fraction(OrderStatus.CANCELLED) == 0.0


@pytest.mark.unit
def test_wire_countdown():
    remaining = order_flow.wire_time_remaining(
        NOW, now=NOW + timedelta(hours=10, minutes=15), window_hours=48
    )
    assert order_flow.format_countdown(remaining) == "37h 45m"

    overdue = order_flow.wire_time_remaining(NOW, now=NOW + timedelta(days=3))
    assert overdue == timedelta(0)
    assert order_flow.format_countdown(overdue) == "0h 0m"


@pytest.mark.unit
def test_group_payouts_by_seller_and_day():
    def delivered(order_id, seller_id, items_total, shipping, delivered_at):
        order = _order(
            OrderStatus.DELIVERED,
            id=order_id,
            seller_id=seller_id,
            code=f"C{order_id}",
            total_amount=items_total + shipping,
            delivered_at=delivered_at,
        )
        order.items = [
            OrderItem(title="Lot", quantity=1, unit_price=items_total, total_price=items_total)
        ]
        return order

    orders = [
        delivered(1, 20, Decimal("103.50"), Decimal("10.00"), NOW),
        delivered(2, 20, Decimal("103.50"), Decimal("0.00"), NOW + timedelta(hours=1)),
        delivered(3, 21, Decimal("103.50"), Decimal("0.00"), NOW),
    ]

    groups = order_flow.group_payouts(orders, RATE, delay_days=7)

    assert [(g.seller_id, len(g.orders)) for g in groups] == [(20, 2), (21, 1)]
    assert groups[0].payout_date == NOW + timedelta(days=7)
    assert groups[0].orders[0] == {"id": 1, "code": "C1", "amount": Decimal("109.88")}
    assert groups[0].total == Decimal("209.76")
