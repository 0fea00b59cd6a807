"""Pydantic schemas for marketplace service."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from services.marketplace_service.cart import normalize_variation_map
from services.marketplace_service.models import (
    NotificationType,
    OfferParty,
    OfferStatus,
    OrderStatus,
    ShippingChoice,
    TicketStatus,
)

# ============================================================================
# PRODUCT SCHEMAS
# ============================================================================


def _normalize_variation_keys(v: Optional[dict]) -> Optional[dict]:
    if v is None:
        return v
    return normalize_variation_map(v)


VariationStocks = Annotated[
    Optional[dict[str, int]], AfterValidator(_normalize_variation_keys)
]
VariationPrices = Annotated[
    Optional[dict[str, Decimal]], AfterValidator(_normalize_variation_keys)
]


class ProductBase(BaseModel):
    title: str = Field(..., max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    condition: Optional[str] = Field(None, max_length=50)
    brand: Optional[str] = Field(None, max_length=100)
    retail_comparison_url: Optional[str] = Field(None, max_length=500)
    price: Decimal = Field(..., gt=0, decimal_places=2)
    total_units: int = Field(..., ge=0)
    available_units: int = Field(..., ge=0)
    min_order_quantity: int = Field(1, ge=1)
    order_multiple: int = Field(1, ge=1)
    variations: Optional[dict[str, list[str]]] = None
    variation_stocks: VariationStocks = None
    variation_prices: VariationPrices = None
    images: list[str] = Field(default_factory=list)
    fob_location: Optional[str] = Field(None, max_length=255)
    ships_free: bool = False
    shipping_fee: Optional[Decimal] = Field(None, ge=0, decimal_places=2)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    condition: Optional[str] = Field(None, max_length=50)
    brand: Optional[str] = Field(None, max_length=100)
    price: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    total_units: Optional[int] = Field(None, ge=0)
    available_units: Optional[int] = Field(None, ge=0)
    min_order_quantity: Optional[int] = Field(None, ge=1)
    order_multiple: Optional[int] = Field(None, ge=1)
    variations: Optional[dict[str, list[str]]] = None
    variation_stocks: VariationStocks = None
    variation_prices: VariationPrices = None
    images: Optional[list[str]] = None
    fob_location: Optional[str] = Field(None, max_length=255)
    ships_free: Optional[bool] = None
    shipping_fee: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    is_active: Optional[bool] = None


class ProductResponse(ProductBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    seller_id: int
    is_active: bool
    # Unit price as the caller should see it (fee-inclusive for buyers)
    display_price: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    items: list[ProductResponse]
    total: int
    page: int
    page_size: int


# ============================================================================
# CART SCHEMAS
# ============================================================================


class CartItemCreate(BaseModel):
    product_id: int
    quantity: int
    selected_variations: Optional[dict[str, str]] = None


class CartItemUpdate(BaseModel):
    product_id: int
    variation_key: str = "{}"
    quantity: int
    offer_id: Optional[int] = None


class CartLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    seller_id: int
    variation_key: str
    selected_variations: dict[str, str] = Field(default_factory=dict)
    title: str
    image: Optional[str] = None
    price: Decimal
    price_includes_fee: bool
    quantity: int
    line_total: Decimal
    min_order_quantity: int
    order_multiple: int
    available_units: int
    offer_id: Optional[int] = None
    offer_quantity: Optional[int] = None


class CartNoticeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    title: str
    description: str
    destructive: bool = False


class CartResponse(BaseModel):
    items: list[CartLineResponse]
    total: Decimal
    item_count: int
    version: int
    ok: bool = True
    notices: list[CartNoticeResponse] = Field(default_factory=list)


# ============================================================================
# OFFER SCHEMAS
# ============================================================================


class OfferCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    # Buyer's fee-inclusive unit price
    price: Decimal = Field(..., gt=0)
    selected_variations: Optional[dict[str, str]] = None


class OfferCounter(BaseModel):
    price: Decimal = Field(..., gt=0)
    quantity: int = Field(..., gt=0)


class OfferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    buyer_id: int
    seller_id: int
    product_id: int
    quantity: int
    price: Decimal
    display_price: Optional[Decimal] = None
    selected_variations: Optional[dict[str, str]] = None
    status: OfferStatus
    countered_by: Optional[OfferParty] = None
    counter_rounds: int
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class CheckoutRequest(BaseModel):
    payment_method: Literal["card", "wire"] = "card"
    payment_details: Optional[dict] = None
    shipping_choice: ShippingChoice = ShippingChoice.BUYER
    shipping_details: Optional[dict] = None


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    offer_id: Optional[int] = None
    title: str
    selected_variations: Optional[dict[str, str]] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class MilestoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: OrderStatus
    label: str
    reached: bool
    estimated_at: Optional[datetime] = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: Optional[str] = None
    buyer_id: int
    seller_id: int
    status: OrderStatus
    total_amount: Decimal
    shipping_cost: Decimal
    payment_method: Optional[str] = None
    shipping_choice: ShippingChoice
    shipping_details: Optional[dict] = None
    shipping_package: Optional[dict] = None
    shipping_label: Optional[str] = None
    tracking_number: Optional[str] = None
    buyer_charged: bool
    seller_paid: bool
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    items: list[OrderItemResponse] = Field(default_factory=list)


class OrderDetailResponse(OrderResponse):
    milestones: list[MilestoneResponse] = Field(default_factory=list)
    progress: float = 0.0
    wire_deadline: Optional[datetime] = None
    wire_countdown: Optional[str] = None


class ShippingLabelUpdate(BaseModel):
    shipping_label: str = Field(..., max_length=500)
    shipping_package: Optional[dict] = None


class OrderStatusUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    tracking_number: Optional[str] = Field(None, max_length=100)


class SalesSummaryRow(BaseModel):
    day: date
    revenue: Decimal


# ============================================================================
# ADMIN SCHEMAS
# ============================================================================


class SiteSettingsResponse(BaseModel):
    commission_rate: Decimal
    site_title: str


class SiteSettingsUpdate(BaseModel):
    commission_rate: Optional[Decimal] = Field(None, ge=0, lt=1)
    site_title: Optional[str] = Field(None, max_length=255)


class BillingOrderResponse(OrderResponse):
    items_total: Decimal
    commission: Decimal
    seller_payout: Decimal


class WireOrderResponse(OrderResponse):
    wire_deadline: datetime
    wire_countdown: str
    wire_overdue: bool


class PayoutOrderResponse(BaseModel):
    id: int
    code: Optional[str] = None
    amount: Decimal


class PayoutGroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    seller_id: int
    payout_date: datetime
    orders: list[PayoutOrderResponse]
    total: Decimal


class BulkOrderAction(BaseModel):
    order_ids: list[int] = Field(..., min_length=1)


class BulkActionFailure(BaseModel):
    order_id: int
    detail: str


class BulkActionResult(BaseModel):
    succeeded: list[int] = Field(default_factory=list)
    failed: list[BulkActionFailure] = Field(default_factory=list)


# ============================================================================
# NOTIFICATION SCHEMAS
# ============================================================================


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: NotificationType
    content: str
    link: Optional[str] = None
    is_read: bool
    created_at: datetime


class UnreadCountResponse(BaseModel):
    count: int


# ============================================================================
# MESSAGING SCHEMAS
# ============================================================================


class MessageCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    sender_id: int
    receiver_id: int
    content: str
    is_read: bool
    created_at: datetime


class ConversationPreviewResponse(BaseModel):
    user_id: int
    last_message: str
    last_message_at: datetime
    unread_count: int


# ============================================================================
# SUPPORT TICKET SCHEMAS
# ============================================================================


class SupportTicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=5000)


class SupportTicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    subject: str
    message: str
    status: TicketStatus
    response: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class SupportTicketMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    sender_id: int
    message: str
    created_at: datetime


class SupportTicketRespond(BaseModel):
    response: str = Field(..., min_length=1, max_length=5000)


class SupportTicketStatusUpdate(BaseModel):
    status: TicketStatus
