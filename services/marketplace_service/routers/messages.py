"""Buyer/seller messaging router.

Messages always hang off an order: users can only talk once they have traded.
A conversation with another user is addressed by that user's id and is filed
under the latest order between the two.
"""

from fastapi import APIRouter, Depends, HTTPException
from libs.auth.dependencies import get_current_user, require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.marketplace_service.messaging import (
    contains_contact_info,
    conversation_previews,
)
from services.marketplace_service.models import Message, NotificationType, Order
from services.marketplace_service.routers._helpers import (
    can_view_order,
    forbid_unless,
    get_or_404,
    notify,
)
from services.marketplace_service.schemas import (
    ConversationPreviewResponse,
    MessageCreate,
    MessageResponse,
    UnreadCountResponse,
)
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["messages"])
logger = get_logger(__name__)


def _between(user_a: int, user_b: int):
    return or_(
        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
        and_(Message.sender_id == user_b, Message.receiver_id == user_a),
    )


async def _send(
    db: AsyncSession,
    order: Order,
    sender: AuthUser,
    receiver_id: int,
    content: str,
    link: str,
) -> Message:
    if contains_contact_info(content):
        logger.warning(
            "Blocked contact details from user %s to user %s on order %s",
            sender.user_id,
            receiver_id,
            order.id,
        )
        raise HTTPException(
            status_code=400, detail="Sharing contact information is not allowed"
        )
    message = Message(
        order_id=order.id,
        sender_id=sender.user_id,
        receiver_id=receiver_id,
        content=content,
    )
    db.add(message)
    notify(
        db,
        receiver_id,
        f"New message about order #{order.code or order.id}",
        link,
        NotificationType.MESSAGE,
    )
    await db.commit()
    await db.refresh(message)
    return message


async def _mark_read(db: AsyncSession, receiver_id: int, *criteria) -> None:
    await db.execute(
        update(Message)
        .where(Message.receiver_id == receiver_id, Message.is_read.is_(False), *criteria)
        .values(is_read=True)
    )
    await db.commit()


# ============================================================================
# ORDER MESSAGES
# ============================================================================


@router.get("/orders/{order_id}/messages", response_model=list[MessageResponse])
async def list_order_messages(
    order_id: int,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order = await get_or_404(db, Order, order_id, "Order")
    forbid_unless(can_view_order(current_user, order))
    query = (
        select(Message)
        .where(Message.order_id == order_id)
        .order_by(Message.created_at, Message.id)
    )
    return (await db.execute(query)).scalars().all()


@router.post(
    "/orders/{order_id}/messages", response_model=MessageResponse, status_code=201
)
async def send_order_message(
    order_id: int,
    payload: MessageCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Message the other party of an order; only its buyer and seller may."""
    order = await get_or_404(db, Order, order_id, "Order")
    forbid_unless(current_user.user_id in (order.buyer_id, order.seller_id))
    if current_user.user_id == order.buyer_id:
        receiver_id = order.seller_id
    else:
        receiver_id = order.buyer_id
    return await _send(
        db,
        order,
        current_user,
        receiver_id,
        payload.message,
        f"/orders/{order.id}/messages",
    )


@router.post("/orders/{order_id}/messages/read", status_code=204)
async def mark_order_messages_read(
    order_id: int,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order = await get_or_404(db, Order, order_id, "Order")
    forbid_unless(can_view_order(current_user, order))
    await _mark_read(db, current_user.user_id, Message.order_id == order_id)


# ============================================================================
# CONVERSATIONS
# ============================================================================


@router.get("/conversations", response_model=list[ConversationPreviewResponse])
async def list_conversations(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    me = current_user.user_id
    query = select(Message).where(or_(Message.sender_id == me, Message.receiver_id == me))
    messages = (await db.execute(query)).scalars().all()
    return [vars(preview) for preview in conversation_previews(messages, me)]


@router.get("/conversations/{user_id}/messages", response_model=list[MessageResponse])
async def list_conversation_messages(
    user_id: int,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    query = (
        select(Message)
        .where(_between(current_user.user_id, user_id))
        .order_by(Message.created_at, Message.id)
    )
    return (await db.execute(query)).scalars().all()


@router.post(
    "/conversations/{user_id}/messages",
    response_model=MessageResponse,
    status_code=201,
)
async def send_conversation_message(
    user_id: int,
    payload: MessageCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    me = current_user.user_id
    query = (
        select(Order)
        .where(
            or_(
                and_(Order.buyer_id == me, Order.seller_id == user_id),
                and_(Order.buyer_id == user_id, Order.seller_id == me),
            )
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(1)
    )
    order = (await db.execute(query)).scalar_one_or_none()
    if order is None:
        raise HTTPException(status_code=400, detail="No order between users")
    return await _send(
        db, order, current_user, user_id, payload.message, f"/conversations/{me}"
    )


@router.post("/conversations/{user_id}/messages/read", status_code=204)
async def mark_conversation_read(
    user_id: int,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await _mark_read(db, current_user.user_id, Message.sender_id == user_id)


@router.get("/messages/unread-count", response_model=UnreadCountResponse)
async def unread_message_count(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    query = select(func.count(Message.id)).where(
        Message.receiver_id == current_user.user_id,
        Message.is_read.is_(False),
    )
    return {"count": (await db.execute(query)).scalar_one()}


# ============================================================================
# ADMIN
# ============================================================================


@router.get(
    "/admin/conversations/{user_a}/{user_b}/messages",
    response_model=list[MessageResponse],
)
async def admin_conversation_messages(
    user_a: int,
    user_b: int,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    query = (
        select(Message)
        .where(_between(user_a, user_b))
        .order_by(Message.created_at, Message.id)
    )
    return (await db.execute(query)).scalars().all()
