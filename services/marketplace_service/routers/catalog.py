"""Marketplace catalog router: public listings and seller product management."""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from libs.auth.dependencies import get_optional_user, require_seller
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.marketplace_service.cart import role_sees_fee
from services.marketplace_service.models import Product
from services.marketplace_service.pricing import add_service_fee
from services.marketplace_service.routers._helpers import (
    forbid_unless,
    get_or_404,
    get_service_fee_rate,
)
from services.marketplace_service.schemas import (
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["catalog"])
logger = get_logger(__name__)


def _to_response(product: Product, role: Optional[str], rate: Decimal) -> dict:
    resp = ProductResponse.model_validate(product)
    if role_sees_fee(role):
        resp.display_price = add_service_fee(product.price, rate)
    else:
        resp.display_price = resp.price
    return resp.model_dump()


def _json_prices(prices: Optional[dict]) -> Optional[dict]:
    """Decimals are not JSON serializable; store prices as strings."""
    if prices is None:
        return None
    return {key: str(value) for key, value in prices.items()}


# ============================================================================
# PUBLIC LISTINGS
# ============================================================================


@router.get("/products", response_model=ProductListResponse)
async def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    seller_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """List active products. Prices are shown the way the caller's role sees them."""
    query = select(Product).where(Product.is_active.is_(True))
    if category:
        query = query.where(Product.category == category)
    if seller_id:
        query = query.where(Product.seller_id == seller_id)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(Product.title.ilike(pattern), Product.description.ilike(pattern))
        )

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar_one()

    query = (
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(query)
    role = current_user.role if current_user else None
    items = [_to_response(p, role, rate) for p in result.scalars().all()]
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    product = await get_or_404(db, Product, product_id, "Product")
    if not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found")
    return _to_response(product, current_user.role if current_user else None, rate)


# ============================================================================
# SELLER LISTINGS
# ============================================================================


@router.get("/seller/products", response_model=list[ProductResponse])
async def list_my_products(
    current_user: AuthUser = Depends(require_seller),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    query = (
        select(Product)
        .where(Product.seller_id == current_user.user_id)
        .order_by(Product.created_at.desc(), Product.id.desc())
    )
    result = await db.execute(query)
    return [_to_response(p, current_user.role, rate) for p in result.scalars().all()]


@router.get("/seller/products/low-stock", response_model=list[ProductResponse])
async def list_low_stock(
    threshold: Optional[int] = Query(None, ge=0),
    current_user: AuthUser = Depends(require_seller),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    """Active listings at or below the low-stock threshold."""
    limit = threshold if threshold is not None else get_settings().LOW_STOCK_THRESHOLD
    query = (
        select(Product)
        .where(
            Product.seller_id == current_user.user_id,
            Product.is_active.is_(True),
            Product.available_units <= limit,
        )
        .order_by(Product.available_units, Product.id)
    )
    result = await db.execute(query)
    return [_to_response(p, current_user.role, rate) for p in result.scalars().all()]


@router.post("/seller/products", response_model=ProductResponse, status_code=201)
async def create_product(
    payload: ProductCreate,
    current_user: AuthUser = Depends(require_seller),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    if payload.available_units > payload.total_units:
        raise HTTPException(
            status_code=400, detail="Available units cannot exceed total units"
        )
    data = payload.model_dump()
    data["variation_prices"] = _json_prices(data.get("variation_prices"))
    product = Product(seller_id=current_user.user_id, **data)
    db.add(product)
    await db.commit()
    await db.refresh(product)
    logger.info("Seller %s listed product %s", current_user.user_id, product.id)
    return _to_response(product, current_user.role, rate)


@router.patch("/seller/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    current_user: AuthUser = Depends(require_seller),
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    product = await get_or_404(db, Product, product_id, "Product")
    forbid_unless(current_user.is_admin or product.seller_id == current_user.user_id)

    update_data = payload.model_dump(exclude_unset=True)
    if "variation_prices" in update_data:
        update_data["variation_prices"] = _json_prices(update_data["variation_prices"])
    for field, value in update_data.items():
        setattr(product, field, value)

    if product.available_units > product.total_units:
        raise HTTPException(
            status_code=400, detail="Available units cannot exceed total units"
        )

    await db.commit()
    await db.refresh(product)
    return _to_response(product, current_user.role, rate)
