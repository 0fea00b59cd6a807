"""Cart aggregate: line items keyed by (product, variation, offer).

The cart is a plain in-memory object. Persisting it after each mutation is
the caller's job (the cart router stores it on a versioned ``CartSession``
row). Validation failures never raise; they are reported as ``CartNotice``
entries and the cart is left unchanged, except for the offer-quantity cap,
which clamps instead of rejecting.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from libs.common.logging import get_logger
from services.marketplace_service.pricing import (
    ZERO,
    Number,
    add_service_fee,
    remove_service_fee,
    to_decimal,
)

logger = get_logger(__name__)

ANONYMOUS = None

# Roles that are shown fee-inclusive prices. ``None`` is an anonymous visitor.
FEE_DISPLAY_ROLES = frozenset({"buyer", ANONYMOUS})


def role_sees_fee(role: Optional[str]) -> bool:
    return role in FEE_DISPLAY_ROLES


def variation_key(selected: Optional[dict]) -> str:
    """Stable serialization of selected variation options.

    ``{"size": "M", "color": "red"}`` and ``{"color": "red", "size": "M"}``
    produce the same key.
    """
    return json.dumps(selected or {}, sort_keys=True, separators=(",", ":"))


def normalize_variation_map(mapping: Optional[dict]) -> dict:
    """Re-key a variation_stocks / variation_prices map with stable keys."""
    normalized = {}
    for raw_key, value in (mapping or {}).items():
        try:
            parsed = json.loads(raw_key)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid variation key: {raw_key!r}")
        if not isinstance(parsed, dict):
            raise ValueError(f"Variation key must encode an object: {raw_key!r}")
        normalized[variation_key(parsed)] = value
    return normalized


@dataclass(slots=True)
class ProductListing:
    """The slice of a product the cart needs to price and validate a line."""

    id: int
    seller_id: int
    title: str
    price: Decimal
    available_units: int
    min_order_quantity: int = 1
    order_multiple: int = 1
    variation_stocks: dict[str, int] = field(default_factory=dict)
    variation_prices: dict[str, Decimal] = field(default_factory=dict)
    images: list[str] = field(default_factory=list)

    @classmethod
    def from_product(cls, product: Any) -> "ProductListing":
        """Build from an ORM ``Product`` (or anything shaped like one)."""
        return cls(
            id=product.id,
            seller_id=product.seller_id,
            title=product.title,
            price=to_decimal(product.price),
            available_units=product.available_units,
            min_order_quantity=product.min_order_quantity or 1,
            order_multiple=product.order_multiple or 1,
            variation_stocks=dict(product.variation_stocks or {}),
            variation_prices={
                k: to_decimal(v) for k, v in (product.variation_prices or {}).items()
            },
            images=list(product.images or []),
        )

    def stock_for(self, key: str) -> int:
        if key in self.variation_stocks:
            return int(self.variation_stocks[key])
        return self.available_units

    def price_for(self, key: str) -> Decimal:
        if key in self.variation_prices:
            return to_decimal(self.variation_prices[key])
        return to_decimal(self.price)


@dataclass(slots=True)
class CartLine:
    product_id: int
    seller_id: int
    variation_key: str
    title: str
    price: Decimal
    price_includes_fee: bool
    quantity: int
    min_order_quantity: int
    order_multiple: int
    available_units: int
    selected_variations: dict[str, str] = field(default_factory=dict)
    image: Optional[str] = None
    offer_id: Optional[int] = None
    offer_quantity: Optional[int] = None

    @property
    def key(self) -> tuple[int, str, Optional[int]]:
        return (self.product_id, self.variation_key, self.offer_id)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        data = asdict(self)
        data["price"] = str(self.price)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        data = dict(data)
        data["price"] = to_decimal(data["price"])
        data.setdefault("order_multiple", 1)
        data.setdefault("selected_variations", {})
        return cls(**data)


@dataclass(frozen=True, slots=True)
class CartNotice:
    """A user-facing message produced by a cart operation (toast)."""

    title: str
    description: str
    destructive: bool = False


class Cart:
    """Ordered collection of cart lines priced for one acting role."""

    def __init__(
        self,
        lines: Optional[Iterable[CartLine]] = None,
        *,
        role: Optional[str] = ANONYMOUS,
        fee_rate: Number,
        notify: Optional[Callable[[CartNotice], None]] = None,
    ) -> None:
        self.lines: list[CartLine] = list(lines or [])
        self.role = role
        self.fee_rate = to_decimal(fee_rate)
        self.notices: list[CartNotice] = []
        self._notify = notify

    # ------------------------------------------------------------------
    # Notices
    # ------------------------------------------------------------------

    def _emit(self, title: str, description: str, destructive: bool = False) -> None:
        notice = CartNotice(title, description, destructive)
        self.notices.append(notice)
        if self._notify:
            self._notify(notice)

    def reject(self, title: str, description: str) -> bool:
        self._emit(title, description, destructive=True)
        return False

    def _validate(
        self,
        quantity: int,
        *,
        min_order_quantity: int,
        order_multiple: int,
        available_units: int,
    ) -> bool:
        if quantity <= 0:
            return self.reject("Invalid quantity", "Quantity must be at least 1.")
        if quantity < min_order_quantity:
            return self.reject(
                "Minimum order not met",
                f"This product requires a minimum order of {min_order_quantity} units.",
            )
        if quantity % order_multiple != 0:
            return self.reject(
                "Invalid quantity",
                f"This product must be ordered in multiples of {order_multiple} units.",
            )
        if quantity > available_units:
            return self.reject(
                "Not enough inventory",
                f"Only {available_units} units are available.",
            )
        return True

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_line(
        self, product_id: int, key: str, offer_id: Optional[int] = None
    ) -> Optional[CartLine]:
        for line in self.lines:
            if line.key == (product_id, key, offer_id):
                return line
        return None

    def _matching(
        self,
        product_id: int,
        key: Optional[str],
        offer_id: Optional[int],
    ) -> list[CartLine]:
        return [
            line
            for line in self.lines
            if line.product_id == product_id
            and (key is None or line.variation_key == key)
            and (offer_id is None or line.offer_id == offer_id)
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_to_cart(
        self,
        product: ProductListing,
        quantity: int,
        variations: Optional[dict] = None,
        price_override: Optional[Number] = None,
        offer_quantity: Optional[int] = None,
        offer_id: Optional[int] = None,
    ) -> bool:
        key = variation_key(variations)
        available = product.stock_for(key)

        if offer_quantity is not None and quantity > offer_quantity:
            self._emit(
                "Quantity adjusted",
                f"Offer quantity is limited to {offer_quantity} units.",
            )
            quantity = offer_quantity

        if not self._validate(
            quantity,
            min_order_quantity=product.min_order_quantity,
            order_multiple=product.order_multiple,
            available_units=available,
        ):
            return False

        existing = self.find_line(product.id, key, offer_id)
        if existing:
            new_quantity = existing.quantity + quantity
            cap = offer_quantity if offer_quantity is not None else existing.offer_quantity
            if cap is not None and new_quantity > cap:
                new_quantity = cap
            if new_quantity > available:
                return self.reject(
                    "Not enough inventory",
                    f"Only {available} units are available.",
                )
            existing.quantity = new_quantity
            existing.available_units = available
        else:
            base = (
                to_decimal(price_override)
                if price_override is not None
                else product.price_for(key)
            )
            includes_fee = role_sees_fee(self.role)
            price = add_service_fee(base, self.fee_rate) if includes_fee else base
            self.lines.append(
                CartLine(
                    product_id=product.id,
                    seller_id=product.seller_id,
                    variation_key=key,
                    selected_variations=dict(variations or {}),
                    title=product.title,
                    image=product.images[0] if product.images else None,
                    price=price,
                    price_includes_fee=includes_fee,
                    quantity=quantity,
                    min_order_quantity=product.min_order_quantity,
                    order_multiple=product.order_multiple,
                    available_units=available,
                    offer_id=offer_id,
                    offer_quantity=offer_quantity,
                )
            )

        unit_word = "unit" if quantity == 1 else "units"
        self._emit(
            "Added to cart",
            f"{quantity} {unit_word} of {product.title} added to cart.",
        )
        return True

    def update_quantity(
        self,
        product_id: int,
        key: str,
        quantity: int,
        offer_id: Optional[int] = None,
    ) -> bool:
        line = self.find_line(product_id, key, offer_id)
        if line is None:
            return self.reject("Item not found", "That item is no longer in your cart.")

        if line.offer_id is not None:
            return self.reject(
                "Offer quantity is fixed",
                "Items added from an accepted offer can only be removed, not resized.",
            )

        if quantity <= 0:
            return self.remove_from_cart(product_id, key, offer_id)

        if line.offer_quantity is not None and quantity > line.offer_quantity:
            self._emit(
                "Quantity adjusted",
                f"Offer quantity is limited to {line.offer_quantity} units.",
            )
            quantity = line.offer_quantity

        if not self._validate(
            quantity,
            min_order_quantity=line.min_order_quantity,
            order_multiple=line.order_multiple,
            available_units=line.available_units,
        ):
            return False

        line.quantity = quantity
        return True

    def remove_from_cart(
        self,
        product_id: int,
        key: Optional[str] = None,
        offer_id: Optional[int] = None,
    ) -> bool:
        """Remove the line matching the given parts; omitted parts match any.

        A wildcard that matches several lines is refused rather than guessed.
        """
        matches = self._matching(product_id, key, offer_id)
        if not matches:
            return self.reject("Item not found", "That item is no longer in your cart.")
        if len(matches) > 1:
            return self.reject(
                "Choose an item",
                "Several cart items match; specify the variation and offer to remove.",
            )
        self.lines.remove(matches[0])
        self._emit("Removed from cart", "Item removed from cart.")
        return True

    def merge_line(self, line: CartLine, available_units: int) -> bool:
        """Fold a line from another cart into this one against live stock.

        Quantities for the same key are summed and clamped to the offer cap.
        A result above ``available_units`` is rejected and leaves this cart
        as it was.
        """
        existing = self.find_line(*line.key)
        quantity = line.quantity + (existing.quantity if existing else 0)
        cap = line.offer_quantity
        if cap is None and existing is not None:
            cap = existing.offer_quantity
        if cap is not None and quantity > cap:
            quantity = cap
        if quantity > available_units:
            return self.reject(
                "Not enough inventory",
                f"Only {available_units} units of {line.title} are available; "
                "your saved items were not added.",
            )
        if existing is None:
            line.quantity = quantity
            line.available_units = available_units
            self.lines.append(line)
        else:
            existing.quantity = quantity
            existing.available_units = available_units
        return True

    def clear(self) -> None:
        self.lines.clear()

    def reprice_for_role(self, role: Optional[str]) -> int:
        """Bring every stored line in line with the new role's price display.

        Runs once per role transition; returns the number of lines repriced.
        """
        wants_fee = role_sees_fee(role)
        changed = 0
        for line in self.lines:
            if wants_fee and not line.price_includes_fee:
                line.price = add_service_fee(line.price, self.fee_rate)
                line.price_includes_fee = True
                changed += 1
            elif not wants_fee and line.price_includes_fee:
                line.price = remove_service_fee(line.price, self.fee_rate)
                line.price_includes_fee = False
                changed += 1
        if changed:
            logger.info(
                "Repriced %d cart lines for role change %s -> %s",
                changed,
                self.role,
                role,
            )
        self.role = role
        return changed

    # ------------------------------------------------------------------
    # Reductions
    # ------------------------------------------------------------------

    @property
    def cart_total(self) -> Decimal:
        return sum((line.line_total for line in self.lines), ZERO)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_payload(self) -> list[dict]:
        return [line.to_dict() for line in self.lines]

    @classmethod
    def from_payload(
        cls,
        payload: Optional[list[dict]],
        *,
        role: Optional[str],
        fee_rate: Number,
    ) -> "Cart":
        lines = [CartLine.from_dict(item) for item in payload or []]
        return cls(lines, role=role, fee_rate=fee_rate)
