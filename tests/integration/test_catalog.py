"""Integration tests for product listings and public settings."""

from decimal import Decimal

import pytest
from tests.factories import (
    OTHER_SELLER_ID,
    ProductFactory,
    admin_headers,
    buyer_headers,
    seller_headers,
)


async def _seed_product(db, **overrides):
    product = ProductFactory.create(**overrides)
    db.add(product)
    await db.commit()
    return product


# ---------------------------------------------------------------------------
# Public listings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
@pytest.mark.integration
async def test_listing_price_depends_on_role(client, db_session):
    product = await _seed_product(db_session, price=Decimal("10.00"))

    anonymous = await client.get(f"/api/products/{product.id}")
    buyer = await client.get(f"/api/products/{product.id}", headers=buyer_headers())
    seller = await client.get(f"/api/products/{product.id}", headers=seller_headers())

    assert Decimal(anonymous.json()["display_price"]) == Decimal("10.35")
    assert Decimal(buyer.json()["display_price"]) == Decimal("10.35")
    assert Decimal(seller.json()["display_price"]) == Decimal("10.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_products_filters_and_hides_inactive(client, db_session):
    await _seed_product(db_session, category="Apparel", title="Hoodies")
    await _seed_product(db_session, category="Electronics", title="Cables")
    await _seed_product(db_session, category="Apparel", is_active=False)

    response = await client.get("/api/products", params={"category": "Apparel"})
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["title"] == "Hoodies"

    response = await client.get("/api/products", params={"search": "cab"})
    assert [p["title"] for p in response.json()["items"]] == ["Cables"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_inactive_product_is_not_found(client, db_session):
    product = await _seed_product(db_session, is_active=False)
    response = await client.get(f"/api/products/{product.id}")
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Seller listings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_seller_creates_product_with_variations(client):
    response = await client.post(
        "/api/seller/products",
        headers=seller_headers(),
        json={
            "title": "Assorted Jackets",
            "price": "25.00",
            "total_units": 40,
            "available_units": 40,
            "min_order_quantity": 10,
            "order_multiple": 5,
            "variations": {"size": ["M", "L"]},
            "variation_stocks": {'{"size": "M"}': 15, '{"size": "L"}': 25},
            "variation_prices": {'{"size": "L"}': "27.50"},
        },
    )

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["variation_stocks"] == {'{"size":"M"}': 15, '{"size":"L"}': 25}
    assert Decimal(data["variation_prices"]['{"size":"L"}']) == Decimal("27.50")
    assert Decimal(data["display_price"]) == Decimal("25.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_buyer_cannot_create_product(client):
    response = await client.post(
        "/api/seller/products",
        headers=buyer_headers(),
        json={"title": "Nope", "price": "1.00", "total_units": 1, "available_units": 1},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_available_units_cannot_exceed_total(client):
    response = await client.post(
        "/api/seller/products",
        headers=seller_headers(),
        json={"title": "Lot", "price": "1.00", "total_units": 5, "available_units": 6},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_seller_updates_only_own_product(client, db_session):
    product = await _seed_product(db_session)

    response = await client.patch(
        f"/api/seller/products/{product.id}",
        headers=seller_headers(OTHER_SELLER_ID),
        json={"price": "9.00"},
    )
    assert response.status_code == 403

    response = await client.patch(
        f"/api/seller/products/{product.id}",
        headers=seller_headers(),
        json={"price": "9.00", "available_units": 5},
    )
    assert response.status_code == 200
    assert Decimal(response.json()["price"]) == Decimal("9.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_low_stock_listing(client, db_session):
    await _seed_product(db_session, title="Almost gone", available_units=3)
    await _seed_product(db_session, title="Plenty", available_units=80)

    response = await client.get(
        "/api/seller/products/low-stock", headers=seller_headers()
    )
    assert [p["title"] for p in response.json()] == ["Almost gone"]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_commission_rate_changes_display_prices(client, db_session):
    product = await _seed_product(db_session, price=Decimal("10.00"))

    response = await client.put(
        "/api/admin/settings",
        headers=admin_headers(),
        json={"commission_rate": "0.05", "site_title": "Closeouts Test"},
    )
    assert response.status_code == 200, response.text

    public = (await client.get("/api/settings")).json()
    assert Decimal(public["commission_rate"]) == Decimal("0.05")
    assert public["site_title"] == "Closeouts Test"

    response = await client.get(f"/api/products/{product.id}", headers=buyer_headers())
    assert Decimal(response.json()["display_price"]) == Decimal("10.50")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_settings_update_requires_admin(client):
    response = await client.put(
        "/api/admin/settings",
        headers=seller_headers(),
        json={"commission_rate": "0.01"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_commission_rate_must_be_below_one(client):
    response = await client.put(
        "/api/admin/settings",
        headers=admin_headers(),
        json={"commission_rate": "1.5"},
    )
    assert response.status_code == 422
