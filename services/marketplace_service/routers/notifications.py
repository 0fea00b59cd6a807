"""In-app notifications raised by offer and order events."""

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.marketplace_service.models import Notification
from services.marketplace_service.routers._helpers import forbid_unless, get_or_404
from services.marketplace_service.schemas import (
    NotificationResponse,
    UnreadCountResponse,
)
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["notifications"])


@router.get("/notifications", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    query = select(Notification).where(Notification.user_id == current_user.user_id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
    result = await db.execute(query.limit(limit))
    return result.scalars().all()


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    query = select(func.count(Notification.id)).where(
        Notification.user_id == current_user.user_id,
        Notification.is_read.is_(False),
    )
    return {"count": (await db.execute(query)).scalar_one()}


@router.post("/notifications/read-all", status_code=204)
async def mark_all_read(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await db.execute(
        update(Notification)
        .where(
            Notification.user_id == current_user.user_id,
            Notification.is_read.is_(False),
        )
        .values(is_read=True)
    )
    await db.commit()


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    notification = await get_or_404(db, Notification, notification_id, "Notification")
    forbid_unless(notification.user_id == current_user.user_id)
    notification.is_read = True
    await db.commit()
    return notification
