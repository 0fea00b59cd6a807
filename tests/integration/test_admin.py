"""Integration tests for admin billing, wire payments and payouts."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from services.marketplace_service.models import OrderStatus, Product
from tests.factories import (
    OrderFactory,
    ProductFactory,
    admin_headers,
    buyer_headers,
    seller_headers,
)


async def _seed_order(db, **overrides):
    product = ProductFactory.create()
    db.add(product)
    await db.flush()
    order = OrderFactory.create(
        product, quantity=10, unit_price=Decimal("10.35"), **overrides
    )
    db.add(order)
    await db.commit()
    return order


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_billing_lists_uncharged_card_orders(client, db_session):
    order = await _seed_order(db_session, shipping_cost=Decimal("10.00"))
    await _seed_order(db_session, status=OrderStatus.AWAITING_WIRE)
    await _seed_order(db_session, status=OrderStatus.CANCELLED)
    await _seed_order(db_session, buyer_charged=True)

    response = await client.get("/api/admin/billing", headers=admin_headers())

    assert response.status_code == 200
    rows = response.json()
    assert [r["id"] for r in rows] == [order.id]
    assert Decimal(rows[0]["items_total"]) == Decimal("103.50")
    assert Decimal(rows[0]["commission"]) == Decimal("3.62")
    assert Decimal(rows[0]["seller_payout"]) == Decimal("109.88")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_billing_requires_admin(client):
    response = await client.get("/api/admin/billing", headers=seller_headers())
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_bulk_mark_charged_reports_each_order(client, db_session):
    first = await _seed_order(db_session)
    second = await _seed_order(db_session)

    response = await client.post(
        "/api/admin/orders/mark-charged",
        headers=admin_headers(),
        json={"order_ids": [first.id, 9999, second.id]},
    )

    data = response.json()
    assert data["succeeded"] == [first.id, second.id]
    assert data["failed"] == [{"order_id": 9999, "detail": "Order not found"}]

    rows = (await client.get("/api/admin/billing", headers=admin_headers())).json()
    assert rows == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_mark_single_order_charged_and_paid(client, db_session):
    order = await _seed_order(db_session)

    charged = await client.post(
        f"/api/admin/orders/{order.id}/mark-charged", headers=admin_headers()
    )
    paid = await client.post(
        f"/api/admin/orders/{order.id}/mark-paid", headers=admin_headers()
    )

    assert charged.json()["buyer_charged"] is True
    assert paid.json()["seller_paid"] is True


# ---------------------------------------------------------------------------
# Wire payments
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_wire_orders_show_countdown_and_overdue(client, db_session):
    fresh = await _seed_order(db_session, status=OrderStatus.AWAITING_WIRE)
    stale = await _seed_order(
        db_session,
        status=OrderStatus.AWAITING_WIRE,
        created_at=datetime.now(timezone.utc) - timedelta(days=3),
    )

    response = await client.get("/api/admin/wire-orders", headers=admin_headers())

    rows = {r["id"]: r for r in response.json()}
    assert rows[fresh.id]["wire_overdue"] is False
    assert rows[stale.id]["wire_overdue"] is True
    assert rows[stale.id]["wire_countdown"] == "0h 0m"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_mark_wire_paid_releases_order(client, db_session):
    order = await _seed_order(db_session, status=OrderStatus.AWAITING_WIRE)

    response = await client.post(
        f"/api/admin/orders/{order.id}/mark-wire-paid", headers=admin_headers()
    )

    assert response.status_code == 200
    assert response.json()["status"] == "ordered"
    count = await client.get("/api/notifications/unread-count", headers=seller_headers())
    assert count.json() == {"count": 1}

    response = await client.post(
        f"/api/admin/orders/{order.id}/mark-wire-paid", headers=admin_headers()
    )
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_wire_reminder_notifies_buyer(client, db_session):
    order = await _seed_order(db_session, status=OrderStatus.AWAITING_WIRE)

    response = await client.post(
        f"/api/admin/orders/{order.id}/send-wire-reminder", headers=admin_headers()
    )

    assert response.status_code == 204
    notifications = (
        await client.get("/api/notifications", headers=buyer_headers())
    ).json()
    assert notifications[0]["content"].startswith("Reminder: wire payment")
    await db_session.refresh(order)
    assert order.wire_reminder_sent_at is not None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_cancels_unpaid_wire_order(client, db_session):
    order = await _seed_order(db_session, status=OrderStatus.AWAITING_WIRE)
    product_id = order.items[0].product_id
    before = (await db_session.get(Product, product_id)).available_units

    response = await client.post(
        f"/api/admin/orders/{order.id}/cancel", headers=admin_headers()
    )

    assert response.json()["status"] == "cancelled"
    after = (await db_session.get(Product, product_id)).available_units
    assert after == before + 10


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_delivered_orders_grouped_for_payout(client, db_session):
    order = await _seed_order(db_session, status=OrderStatus.SHIPPED)

    response = await client.post(
        f"/api/admin/orders/{order.id}/mark-delivered", headers=admin_headers()
    )
    assert response.json()["status"] == "delivered"

    response = await client.get("/api/admin/payouts", headers=admin_headers())

    groups = response.json()
    assert len(groups) == 1
    assert groups[0]["orders"][0]["id"] == order.id
    assert Decimal(groups[0]["total"]) == Decimal("99.88")

    await client.post(f"/api/admin/orders/{order.id}/mark-paid", headers=admin_headers())
    response = await client.get("/api/admin/payouts", headers=admin_headers())
    assert response.json() == []
