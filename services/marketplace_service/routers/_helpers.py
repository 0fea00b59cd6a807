"""Shared helpers and dependencies for marketplace routers."""

from decimal import Decimal, InvalidOperation
from typing import Optional, Type, TypeVar

from fastapi import Depends, HTTPException
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.base import Base
from libs.db.session import get_async_db
from services.marketplace_service.models import (
    Notification,
    NotificationType,
    Order,
    SiteSetting,
)
from services.marketplace_service.order_flow import OrderTransitionError
from services.marketplace_service.offer_flow import OfferTransitionError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

COMMISSION_RATE_KEY = "commission_rate"
SITE_TITLE_KEY = "site_title"


# ============================================================================
# SETTINGS
# ============================================================================


async def get_setting(db: AsyncSession, key: str) -> Optional[str]:
    result = await db.execute(select(SiteSetting.value).where(SiteSetting.key == key))
    return result.scalar_one_or_none()


async def set_setting(db: AsyncSession, key: str, value: str) -> None:
    setting = await db.get(SiteSetting, key)
    if setting is None:
        db.add(SiteSetting(key=key, value=value))
    else:
        setting.value = value


async def resolve_service_fee_rate(db: AsyncSession) -> Decimal:
    """Saved commission rate if an admin has set one, else the configured default."""
    stored = await get_setting(db, COMMISSION_RATE_KEY)
    if stored:
        try:
            rate = Decimal(stored)
        except InvalidOperation:
            logger.warning("Ignoring malformed commission_rate setting %r", stored)
        else:
            if 0 <= rate < 1:
                return rate
            logger.warning("Ignoring out-of-range commission_rate setting %s", rate)
    return get_settings().SERVICE_FEE_RATE


async def get_service_fee_rate(db: AsyncSession = Depends(get_async_db)) -> Decimal:
    """FastAPI dependency: the service-fee rate for this request."""
    return await resolve_service_fee_rate(db)


async def get_site_title(db: AsyncSession) -> str:
    return await get_setting(db, SITE_TITLE_KEY) or get_settings().SITE_TITLE


# ============================================================================
# LOOKUPS
# ============================================================================


async def get_or_404(
    db: AsyncSession, model: Type[ModelT], obj_id: int, label: str
) -> ModelT:
    obj = await db.get(model, obj_id)
    if obj is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


async def load_order(db: AsyncSession, order_id: int) -> Order:
    """Order with items loaded, or 404."""
    query = select(Order).where(Order.id == order_id).options(selectinload(Order.items))
    result = await db.execute(query)
    order = result.scalar_one_or_none()
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def transition_error(
    exc: OfferTransitionError | OrderTransitionError,
) -> HTTPException:
    """Translate a domain transition failure into a 400."""
    return HTTPException(status_code=400, detail=str(exc))


def forbid_unless(allowed: bool, detail: str = "Forbidden") -> None:
    if not allowed:
        raise HTTPException(status_code=403, detail=detail)


def can_view_order(user: AuthUser, order: Order) -> bool:
    return user.is_admin or user.user_id in (order.buyer_id, order.seller_id)


# ============================================================================
# NOTIFICATIONS
# ============================================================================


def notify(
    db: AsyncSession,
    user_id: int,
    content: str,
    link: Optional[str] = None,
    type: NotificationType = NotificationType.OFFER,
) -> Notification:
    """Queue an in-app notification on the current transaction."""
    notification = Notification(user_id=user_id, type=type, content=content, link=link)
    db.add(notification)
    return notification
