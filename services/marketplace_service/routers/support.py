"""Support tickets: users open them, admins answer and close them."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from libs.auth.dependencies import get_current_user, require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.marketplace_service.models import (
    NotificationType,
    SupportTicket,
    SupportTicketMessage,
    TicketStatus,
)
from services.marketplace_service.routers._helpers import (
    forbid_unless,
    get_or_404,
    notify,
)
from services.marketplace_service.schemas import (
    MessageCreate,
    SupportTicketCreate,
    SupportTicketMessageResponse,
    SupportTicketRespond,
    SupportTicketResponse,
    SupportTicketStatusUpdate,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/support-tickets", tags=["support"])
logger = get_logger(__name__)

HELP_LINK = "/help"


async def _ticket_for(
    db: AsyncSession, ticket_id: int, user: AuthUser
) -> SupportTicket:
    ticket = await get_or_404(db, SupportTicket, ticket_id, "Ticket")
    forbid_unless(user.is_admin or ticket.user_id == user.user_id)
    return ticket


def _notify_owner(db: AsyncSession, ticket: SupportTicket) -> None:
    notify(
        db,
        ticket.user_id,
        f"Support ticket #{ticket.id} has a new response",
        HELP_LINK,
        NotificationType.SUPPORT,
    )


@router.get("", response_model=list[SupportTicketResponse])
async def list_tickets(
    status: Optional[TicketStatus] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """The caller's tickets; admins see every ticket."""
    query = select(SupportTicket)
    if not current_user.is_admin:
        query = query.where(SupportTicket.user_id == current_user.user_id)
    if status:
        query = query.where(SupportTicket.status == status)
    query = query.order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc())
    return (await db.execute(query)).scalars().all()


@router.post("", response_model=SupportTicketResponse, status_code=201)
async def create_ticket(
    payload: SupportTicketCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    ticket = SupportTicket(
        user_id=current_user.user_id,
        subject=payload.subject,
        message=payload.message,
        status=TicketStatus.OPEN,
    )
    db.add(ticket)
    await db.commit()
    await db.refresh(ticket)
    logger.info("User %s opened support ticket %s", current_user.user_id, ticket.id)
    return ticket


@router.get("/{ticket_id}", response_model=SupportTicketResponse)
async def get_ticket(
    ticket_id: int,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await _ticket_for(db, ticket_id, current_user)


@router.get("/{ticket_id}/messages", response_model=list[SupportTicketMessageResponse])
async def list_ticket_messages(
    ticket_id: int,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await _ticket_for(db, ticket_id, current_user)
    query = (
        select(SupportTicketMessage)
        .where(SupportTicketMessage.ticket_id == ticket_id)
        .order_by(SupportTicketMessage.created_at, SupportTicketMessage.id)
    )
    return (await db.execute(query)).scalars().all()


@router.post(
    "/{ticket_id}/messages",
    response_model=SupportTicketMessageResponse,
    status_code=201,
)
async def reply_to_ticket(
    ticket_id: int,
    payload: MessageCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Add to the ticket thread. Closed tickets take no further replies."""
    ticket = await _ticket_for(db, ticket_id, current_user)
    if ticket.status == TicketStatus.CLOSED:
        raise HTTPException(status_code=400, detail="Ticket is closed")
    reply = SupportTicketMessage(
        ticket_id=ticket.id, sender_id=current_user.user_id, message=payload.message
    )
    db.add(reply)
    if current_user.is_admin and current_user.user_id != ticket.user_id:
        _notify_owner(db, ticket)
    await db.commit()
    await db.refresh(reply)
    return reply


@router.post("/{ticket_id}/respond", response_model=SupportTicketResponse)
async def respond_to_ticket(
    ticket_id: int,
    payload: SupportTicketRespond,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Record the admin's answer on the ticket itself."""
    ticket = await get_or_404(db, SupportTicket, ticket_id, "Ticket")
    ticket.response = payload.response
    _notify_owner(db, ticket)
    await db.commit()
    await db.refresh(ticket)
    return ticket


@router.post("/{ticket_id}/status", response_model=SupportTicketResponse)
async def update_ticket_status(
    ticket_id: int,
    payload: SupportTicketStatusUpdate,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    ticket = await get_or_404(db, SupportTicket, ticket_id, "Ticket")
    ticket.status = payload.status
    await db.commit()
    await db.refresh(ticket)
    logger.info(
        "Admin %s set support ticket %s to %s", admin.user_id, ticket.id, payload.status
    )
    return ticket
