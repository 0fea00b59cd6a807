"""Unit tests for the cart aggregate.

The cart never raises on bad quantities; each rejection leaves the cart
unchanged and records a notice.
"""

import json
from decimal import Decimal

import pytest
from services.marketplace_service.cart import (
    Cart,
    CartLine,
    ProductListing,
    normalize_variation_map,
    variation_key,
)

RATE = Decimal("0.035")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _listing(**overrides) -> ProductListing:
    defaults = {
        "id": 1,
        "seller_id": 9,
        "title": "Pallet of Sneakers",
        "price": Decimal("10.00"),
        "available_units": 100,
        "min_order_quantity": 1,
        "order_multiple": 1,
        "images": ["https://img.test/1.jpg"],
    }
    defaults.update(overrides)
    return ProductListing(**defaults)


def _titles(cart: Cart) -> list[str]:
    return [notice.title for notice in cart.notices]


# ---------------------------------------------------------------------------
# Variation keys
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_variation_key_is_order_independent():
    assert variation_key({"size": "M", "color": "red"}) == variation_key(
        {"color": "red", "size": "M"}
    )
    assert variation_key(None) == variation_key({}) == "{}"


@pytest.mark.unit
def test_normalize_variation_map_rekeys_and_rejects_garbage():
    raw = {json.dumps({"size": "M", "color": "red"}): 5}
    assert normalize_variation_map(raw) == {'{"color":"red","size":"M"}': 5}

    with pytest.raises(ValueError):
        normalize_variation_map({"not json": 1})
    with pytest.raises(ValueError):
        normalize_variation_map({"[1, 2]": 1})


# ---------------------------------------------------------------------------
# add_to_cart
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_buyer_sees_fee_inclusive_price():
    cart = Cart(role="buyer", fee_rate=RATE)
    assert cart.add_to_cart(_listing(), 10)

    line = cart.lines[0]
    assert line.price == Decimal("10.35")
    assert line.price_includes_fee is True
    assert cart.cart_total == Decimal("103.50")
    assert cart.item_count == 10
    assert _titles(cart) == ["Added to cart"]


@pytest.mark.unit
def test_seller_sees_base_price():
    cart = Cart(role="seller", fee_rate=RATE)
    cart.add_to_cart(_listing(), 10)
    assert cart.lines[0].price == Decimal("10.00")
    assert cart.lines[0].price_includes_fee is False


@pytest.mark.unit
def test_anonymous_visitor_sees_fee_inclusive_price():
    cart = Cart(fee_rate=RATE)
    cart.add_to_cart(_listing(), 1)
    assert cart.lines[0].price == Decimal("10.35")


@pytest.mark.unit
def test_variation_price_and_stock_are_used():
    key = variation_key({"size": "L"})
    listing = _listing(
        variation_prices={key: Decimal("12.00")}, variation_stocks={key: 4}
    )
    cart = Cart(role="seller", fee_rate=RATE)

    assert not cart.add_to_cart(listing, 5, {"size": "L"})
    assert _titles(cart) == ["Not enough inventory"]

    assert cart.add_to_cart(listing, 4, {"size": "L"})
    assert cart.lines[0].price == Decimal("12.00")
    assert cart.lines[0].available_units == 4
    assert cart.lines[0].selected_variations == {"size": "L"}


@pytest.mark.unit
@pytest.mark.parametrize(
    "quantity,listing_kwargs,expected",
    [
        (0, {}, "Invalid quantity"),
        (-2, {}, "Invalid quantity"),
        (5, {"min_order_quantity": 10}, "Minimum order not met"),
        (15, {"min_order_quantity": 10, "order_multiple": 10}, "Invalid quantity"),
        (101, {}, "Not enough inventory"),
    ],
)
def test_add_rejections_leave_cart_unchanged(quantity, listing_kwargs, expected):
    cart = Cart(role="buyer", fee_rate=RATE)
    assert cart.add_to_cart(_listing(**listing_kwargs), quantity) is False
    assert cart.lines == []
    assert _titles(cart) == [expected]
    assert cart.notices[0].destructive is True


@pytest.mark.unit
def test_adding_same_product_merges_lines():
    cart = Cart(role="buyer", fee_rate=RATE)
    listing = _listing()
    cart.add_to_cart(listing, 10)
    cart.add_to_cart(listing, 5)

    assert len(cart) == 1
    assert cart.lines[0].quantity == 15


@pytest.mark.unit
def test_merge_rechecks_stock():
    cart = Cart(role="buyer", fee_rate=RATE)
    listing = _listing(available_units=12)
    cart.add_to_cart(listing, 10)

    assert cart.add_to_cart(listing, 5) is False
    assert cart.lines[0].quantity == 10
    assert _titles(cart)[-1] == "Not enough inventory"


@pytest.mark.unit
def test_different_variations_are_separate_lines():
    cart = Cart(role="buyer", fee_rate=RATE)
    listing = _listing()
    cart.add_to_cart(listing, 1, {"size": "S"})
    cart.add_to_cart(listing, 1, {"size": "M"})
    assert len(cart) == 2


@pytest.mark.unit
def test_offer_line_is_separate_from_regular_line():
    cart = Cart(role="buyer", fee_rate=RATE)
    listing = _listing()
    cart.add_to_cart(listing, 10)
    cart.add_to_cart(
        listing,
        20,
        price_override=Decimal("8.00"),
        offer_quantity=20,
        offer_id=77,
    )

    assert len(cart) == 2
    offer_line = cart.find_line(1, "{}", 77)
    assert offer_line.price == Decimal("8.28")
    assert offer_line.offer_quantity == 20


@pytest.mark.unit
def test_offer_quantity_clamps_before_validation():
    cart = Cart(role="buyer", fee_rate=RATE)
    ok = cart.add_to_cart(
        _listing(), 30, price_override="8.00", offer_quantity=20, offer_id=5
    )

    assert ok
    assert cart.lines[0].quantity == 20
    assert _titles(cart) == ["Quantity adjusted", "Added to cart"]
    assert cart.notices[0].destructive is False


@pytest.mark.unit
def test_offer_merge_is_capped_at_offer_quantity():
    cart = Cart(role="buyer", fee_rate=RATE)
    listing = _listing()
    cart.add_to_cart(listing, 20, price_override="8.00", offer_quantity=20, offer_id=5)
    cart.add_to_cart(listing, 20, price_override="8.00", offer_quantity=20, offer_id=5)
    assert cart.lines[0].quantity == 20


@pytest.mark.unit
def test_moq_and_multiple_scenario():
    cart = Cart(role="buyer", fee_rate=RATE)
    listing = _listing(min_order_quantity=50, order_multiple=25, available_units=100)

    assert cart.add_to_cart(listing, 60) is False
    assert cart.lines == []
    assert _titles(cart) == ["Invalid quantity"]

    assert cart.add_to_cart(listing, 75) is True
    assert cart.lines[0].quantity == 75


@pytest.mark.unit
def test_merge_line_sums_against_live_stock():
    cart = Cart(role="buyer", fee_rate=RATE)
    cart.add_to_cart(_listing(), 8)
    other = Cart(role="buyer", fee_rate=RATE)
    other.add_to_cart(_listing(), 2)

    assert cart.merge_line(other.lines[0], available_units=10) is True
    assert cart.lines[0].quantity == 10
    assert cart.lines[0].available_units == 10


@pytest.mark.unit
def test_merge_line_over_stock_is_rejected():
    cart = Cart(role="buyer", fee_rate=RATE)
    cart.add_to_cart(_listing(), 8)
    other = Cart(role="buyer", fee_rate=RATE)
    other.add_to_cart(_listing(), 8)

    assert cart.merge_line(other.lines[0], available_units=10) is False
    assert cart.lines[0].quantity == 8
    assert _titles(cart)[-1] == "Not enough inventory"


@pytest.mark.unit
def test_merge_line_clamps_to_offer_quantity():
    cart = Cart(role="buyer", fee_rate=RATE)
    cart.add_to_cart(_listing(), 15, price_override="8.00", offer_quantity=20, offer_id=5)
    other = Cart(role="buyer", fee_rate=RATE)
    other.add_to_cart(_listing(), 15, price_override="8.00", offer_quantity=20, offer_id=5)

    assert cart.merge_line(other.lines[0], available_units=100) is True
    assert cart.lines[0].quantity == 20


@pytest.mark.unit
def test_notify_callback_receives_notices():
    received = []
    cart = Cart(role="buyer", fee_rate=RATE, notify=received.append)
    cart.add_to_cart(_listing(), 0)
    assert [n.title for n in received] == ["Invalid quantity"]


# ---------------------------------------------------------------------------
# update_quantity / remove_from_cart
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_update_quantity_validates_against_line_limits():
    cart = Cart(role="buyer", fee_rate=RATE)
    cart.add_to_cart(_listing(min_order_quantity=10, order_multiple=5), 10)

    assert cart.update_quantity(1, "{}", 25)
    assert cart.lines[0].quantity == 25

    assert cart.update_quantity(1, "{}", 12) is False
    assert cart.lines[0].quantity == 25
    assert _titles(cart)[-1] == "Invalid quantity"

    assert cart.update_quantity(1, "{}", 5) is False
    assert _titles(cart)[-1] == "Minimum order not met"


@pytest.mark.unit
def test_update_to_zero_removes_line():
    cart = Cart(role="buyer", fee_rate=RATE)
    cart.add_to_cart(_listing(), 3)
    assert cart.update_quantity(1, "{}", 0)
    assert cart.lines == []
    assert _titles(cart)[-1] == "Removed from cart"


@pytest.mark.unit
def test_update_missing_line_reports_not_found():
    cart = Cart(role="buyer", fee_rate=RATE)
    assert cart.update_quantity(1, "{}", 3) is False
    assert _titles(cart) == ["Item not found"]


@pytest.mark.unit
def test_offer_bound_line_cannot_be_resized():
    cart = Cart(role="buyer", fee_rate=RATE)
    cart.add_to_cart(_listing(), 20, price_override="8.00", offer_quantity=20, offer_id=5)

    assert cart.update_quantity(1, "{}", 10, offer_id=5) is False
    assert cart.lines[0].quantity == 20
    assert _titles(cart)[-1] == "Offer quantity is fixed"


@pytest.mark.unit
def test_remove_with_wildcards():
    cart = Cart(role="buyer", fee_rate=RATE)
    cart.add_to_cart(_listing(), 3, {"size": "S"})
    assert cart.remove_from_cart(1)
    assert cart.lines == []


@pytest.mark.unit
def test_ambiguous_remove_is_refused():
    cart = Cart(role="buyer", fee_rate=RATE)
    listing = _listing()
    cart.add_to_cart(listing, 3, {"size": "S"})
    cart.add_to_cart(listing, 3, {"size": "M"})

    assert cart.remove_from_cart(1) is False
    assert len(cart) == 2
    assert _titles(cart)[-1] == "Choose an item"

    assert cart.remove_from_cart(1, variation_key({"size": "M"}))
    assert len(cart) == 1


@pytest.mark.unit
def test_remove_unknown_product():
    cart = Cart(role="buyer", fee_rate=RATE)
    assert cart.remove_from_cart(42) is False
    assert _titles(cart) == ["Item not found"]


# ---------------------------------------------------------------------------
# Role repricing and serialization
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_reprice_for_role_round_trip():
    cart = Cart(role="buyer", fee_rate=RATE)
    cart.add_to_cart(_listing(price=Decimal("10.01")), 1)
    assert cart.lines[0].price == Decimal("10.37")

    assert cart.reprice_for_role("seller") == 1
    assert cart.lines[0].price == Decimal("10.01")
    assert cart.lines[0].price_includes_fee is False

    # Same display mode: nothing to do
    assert cart.reprice_for_role("admin") == 0

    assert cart.reprice_for_role("buyer") == 1
    assert cart.lines[0].price == Decimal("10.37")
    assert cart.role == "buyer"


@pytest.mark.unit
def test_payload_round_trip_keeps_decimal_prices():
    cart = Cart(role="buyer", fee_rate=RATE)
    cart.add_to_cart(_listing(), 2, {"size": "S"})

    payload = cart.to_payload()
    assert payload[0]["price"] == "10.35"

    restored = Cart.from_payload(payload, role="buyer", fee_rate=RATE)
    assert restored.lines == cart.lines
    assert restored.notices == []


@pytest.mark.unit
def test_cart_line_from_dict_fills_defaults():
    line = CartLine.from_dict(
        {
            "product_id": 1,
            "seller_id": 2,
            "variation_key": "{}",
            "title": "Lot",
            "price": "5.00",
            "price_includes_fee": False,
            "quantity": 1,
            "min_order_quantity": 1,
            "available_units": 9,
        }
    )
    assert line.order_multiple == 1
    assert line.selected_variations == {}
    assert line.line_total == Decimal("5.00")
