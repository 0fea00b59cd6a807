"""Integration tests for server-held carts."""

from decimal import Decimal

import pytest
from services.marketplace_service.models import CartSession
from sqlalchemy import select
from tests.factories import (
    BUYER_ID,
    OfferFactory,
    ProductFactory,
    buyer_headers,
    seller_headers,
)

GUEST = {"X-Cart-Session": "guest-token-1"}


async def _seed_product(db, **overrides):
    product = ProductFactory.create(**overrides)
    db.add(product)
    await db.commit()
    return product


# ---------------------------------------------------------------------------
# Basic cart operations
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_guest_needs_session_token(client):
    response = await client.get("/api/cart")
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_guest_cart_add_and_total(client, db_session):
    product = await _seed_product(db_session, price=Decimal("10.00"))

    response = await client.post(
        "/api/cart/items",
        headers=GUEST,
        json={"product_id": product.id, "quantity": 10},
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["ok"] is True
    assert data["item_count"] == 10
    assert Decimal(data["total"]) == Decimal("103.50")
    assert Decimal(data["items"][0]["price"]) == Decimal("10.35")
    assert data["notices"][0]["title"] == "Added to cart"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_quantity_problems_return_notice_not_error(client, db_session):
    product = await _seed_product(db_session, min_order_quantity=12)

    response = await client.post(
        "/api/cart/items",
        headers=buyer_headers(),
        json={"product_id": product.id, "quantity": 5},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is False
    assert data["items"] == []
    assert data["notices"] == [
        {
            "title": "Minimum order not met",
            "description": "This product requires a minimum order of 12 units.",
            "destructive": True,
        }
    ]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_product_is_404(client):
    response = await client.post(
        "/api/cart/items",
        headers=buyer_headers(),
        json={"product_id": 9999, "quantity": 1},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_update_and_remove_line(client, db_session):
    product = await _seed_product(db_session)
    headers = buyer_headers()
    await client.post(
        "/api/cart/items", headers=headers, json={"product_id": product.id, "quantity": 2}
    )

    response = await client.patch(
        "/api/cart/items",
        headers=headers,
        json={"product_id": product.id, "variation_key": "{}", "quantity": 7},
    )
    assert response.json()["item_count"] == 7

    response = await client.delete(
        "/api/cart/items", headers=headers, params={"product_id": product.id}
    )
    data = response.json()
    assert data["ok"] is True
    assert data["items"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_clear_cart(client, db_session):
    product = await _seed_product(db_session)
    headers = buyer_headers()
    await client.post(
        "/api/cart/items", headers=headers, json={"product_id": product.id, "quantity": 2}
    )

    response = await client.delete("/api/cart", headers=headers)
    assert response.json()["items"] == []


# ---------------------------------------------------------------------------
# Versioning
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_etag_advances_and_stale_if_match_is_rejected(client, db_session):
    product = await _seed_product(db_session)
    headers = buyer_headers()

    first = await client.get("/api/cart", headers=headers)
    etag = first.headers["ETag"]

    response = await client.post(
        "/api/cart/items",
        headers={**headers, "If-Match": etag},
        json={"product_id": product.id, "quantity": 1},
    )
    assert response.status_code == 200
    assert response.headers["ETag"] != etag

    # A second tab still holding the old version
    response = await client.post(
        "/api/cart/items",
        headers={**headers, "If-Match": etag},
        json={"product_id": product.id, "quantity": 1},
    )
    assert response.status_code == 412

    response = await client.get("/api/cart", headers=headers)
    assert response.json()["item_count"] == 1


# ---------------------------------------------------------------------------
# Role changes and guest merge
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_guest_cart_merges_into_user_cart_on_login(client, db_session):
    product = await _seed_product(db_session, price=Decimal("10.00"))
    await client.post(
        "/api/cart/items", headers=GUEST, json={"product_id": product.id, "quantity": 3}
    )
    await client.post(
        "/api/cart/items",
        headers=buyer_headers(),
        json={"product_id": product.id, "quantity": 2},
    )

    response = await client.get("/api/cart", headers={**buyer_headers(), **GUEST})

    data = response.json()
    assert data["item_count"] == 5
    assert len(data["items"]) == 1

    guest = await db_session.execute(
        select(CartSession).where(CartSession.owner_key == "session:guest-token-1")
    )
    assert guest.scalar_one_or_none() is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_guest_cart_merge_respects_live_stock(client, db_session):
    product = await _seed_product(db_session, available_units=10)
    await client.post(
        "/api/cart/items", headers=GUEST, json={"product_id": product.id, "quantity": 8}
    )
    await client.post(
        "/api/cart/items",
        headers=buyer_headers(),
        json={"product_id": product.id, "quantity": 8},
    )

    response = await client.get("/api/cart", headers={**buyer_headers(), **GUEST})

    data = response.json()
    assert data["item_count"] == 8
    assert any(n["title"] == "Not enough inventory" for n in data["notices"])


@pytest.mark.asyncio
@pytest.mark.integration
async def test_guest_cart_merge_uses_current_stock_not_snapshot(client, db_session):
    product = await _seed_product(db_session, available_units=10)
    await client.post(
        "/api/cart/items", headers=GUEST, json={"product_id": product.id, "quantity": 6}
    )
    product.available_units = 4
    await db_session.commit()

    response = await client.get("/api/cart", headers={**buyer_headers(), **GUEST})

    assert response.json()["items"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_reprices_when_role_changes(client, db_session):
    product = await _seed_product(db_session, price=Decimal("10.01"))
    await client.post(
        "/api/cart/items",
        headers=buyer_headers(BUYER_ID),
        json={"product_id": product.id, "quantity": 1},
    )

    # Same account now acting as a seller: prices drop to the base amount
    response = await client.get("/api/cart", headers=seller_headers(BUYER_ID))
    item = response.json()["items"][0]
    assert Decimal(item["price"]) == Decimal("10.01")
    assert item["price_includes_fee"] is False

    response = await client.get("/api/cart", headers=buyer_headers(BUYER_ID))
    assert Decimal(response.json()["items"][0]["price"]) == Decimal("10.37")


# ---------------------------------------------------------------------------
# Offers in the cart
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_accepted_offer_added_with_fixed_terms(client, db_session):
    product = await _seed_product(db_session)
    offer = OfferFactory.accepted(product, quantity=20, price=Decimal("8.00"))
    db_session.add(offer)
    await db_session.commit()

    response = await client.post(f"/api/cart/offers/{offer.id}", headers=buyer_headers())

    data = response.json()
    assert data["ok"] is True
    line = data["items"][0]
    assert line["offer_id"] == offer.id
    assert line["quantity"] == 20
    assert Decimal(line["price"]) == Decimal("8.28")

    response = await client.patch(
        "/api/cart/items",
        headers=buyer_headers(),
        json={
            "product_id": product.id,
            "variation_key": "{}",
            "quantity": 5,
            "offer_id": offer.id,
        },
    )
    data = response.json()
    assert data["ok"] is False
    assert data["notices"][-1]["title"] == "Offer quantity is fixed"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_expired_offer_cannot_be_added(client, db_session):
    product = await _seed_product(db_session)
    offer = OfferFactory.accepted(product, hours_left=-1)
    db_session.add(offer)
    await db_session.commit()

    response = await client.post(f"/api/cart/offers/{offer.id}", headers=buyer_headers())

    data = response.json()
    assert data["ok"] is False
    assert data["notices"][0]["title"] == "Offer unavailable"
