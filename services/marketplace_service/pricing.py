"""Service-fee math shared by cart pricing, offers, invoices and payouts.

Prices are held as ``Decimal`` dollars. The platform's service fee is an
explicit ``rate`` argument on every function; callers resolve it per request
(see ``routers._helpers.get_service_fee_rate``).

``add_service_fee`` rounds up and ``remove_service_fee`` rounds down. The
pair is deliberately asymmetric: removing the fee from a fee-inclusive price
never yields more than the original base, and re-adding the fee to a
recovered base never yields more than the fee-inclusive price it came from.
"""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Iterable, Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Number) -> Decimal:
    """Convert API/DB numbers to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_up_to_cent(amount: Number) -> Decimal:
    return to_decimal(amount).quantize(CENT, rounding=ROUND_CEILING)


def round_to_cent(amount: Number) -> Decimal:
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def add_service_fee(base_price: Number, rate: Number) -> Decimal:
    """Buyer-facing price: base plus fee, rounded up to the next cent."""
    return round_up_to_cent(to_decimal(base_price) * (1 + to_decimal(rate)))


def remove_service_fee(price_with_fee: Number, rate: Number) -> Decimal:
    """Recover a fee-exclusive unit price, rounded down to the cent."""
    base = to_decimal(price_with_fee) / (1 + to_decimal(rate))
    return base.quantize(CENT, rounding=ROUND_FLOOR)


def subtract_service_fee(amount: Number, rate: Number) -> Decimal:
    """Seller's share of a fee-inclusive aggregate (ordinary rounding).

    Used for payouts and seller invoices. Not interchangeable with
    ``remove_service_fee``: this takes ``rate`` off the amount rather than
    dividing it back out.
    """
    return round_to_cent(to_decimal(amount) * (1 - to_decimal(rate)))


def calculate_shipping_total(items_total: Number, total_amount: Number) -> Decimal:
    """Shipping is whatever the order total carries beyond its items."""
    shipping = to_decimal(total_amount) - to_decimal(items_total)
    return max(round_to_cent(shipping), ZERO)


def calculate_order_commission(items_total: Number, rate: Number) -> Decimal:
    """Platform's cut of an order's fee-inclusive item total."""
    items_total = to_decimal(items_total)
    return round_to_cent(items_total - subtract_service_fee(items_total, rate))


def calculate_seller_payout(
    items_total: Number, total_amount: Number, rate: Number
) -> Decimal:
    """Amount owed to the seller: items less the fee, plus any shipping."""
    items_total = to_decimal(items_total)
    shipping = to_decimal(total_amount) - items_total
    return round_to_cent(subtract_service_fee(items_total, rate) + shipping)


def sum_amounts(amounts: Iterable[Number]) -> Decimal:
    return sum((to_decimal(a) for a in amounts), ZERO)


def format_currency(amount: Number) -> str:
    """Format dollars for display, e.g. ``$1,234.50``."""
    value = round_to_cent(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"
