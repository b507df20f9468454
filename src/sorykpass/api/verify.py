"""Ticket verification endpoints (door scanning)"""
from datetime import datetime
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sorykpass.core.database import get_db
from sorykpass.models import Ticket, TicketStatus
from sorykpass.schemas import TicketVerifyResponse

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_ticket(db: AsyncSession, qr_code: str) -> Ticket:
    result = await db.execute(
        select(Ticket)
        .where(Ticket.qr_code == qr_code.strip().upper())
        .execution_options(populate_existing=True)
    )
    ticket = result.scalar_one_or_none()
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


@router.get("/verify/{qr_code}", response_model=TicketVerifyResponse)
async def verify_ticket(qr_code: str, db: AsyncSession = Depends(get_db)):
    """Report whether a ticket would be admitted, without using it"""
    ticket = await _get_ticket(db, qr_code)
    return TicketVerifyResponse.from_ticket(ticket)


@router.post("/verify/{qr_code}/use", response_model=TicketVerifyResponse)
async def use_ticket(qr_code: str, db: AsyncSession = Depends(get_db)):
    """Admit a ticket. A ticket can be used once."""
    result = await db.execute(
        update(Ticket)
        .where(
            Ticket.qr_code == qr_code.strip().upper(),
            Ticket.status == TicketStatus.ACTIVE,
            Ticket.is_used == False,  # noqa: E712
        )
        .values(is_used=True, used_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    ticket = await _get_ticket(db, qr_code)
    if result.rowcount != 1:
        if ticket.status != TicketStatus.ACTIVE:
            raise HTTPException(status_code=409, detail="Ticket has been cancelled")
        raise HTTPException(status_code=409, detail="Ticket has already been used")

    logger.info(f"🎫 Ticket admitted: {ticket.qr_code}", extra={"order_id": ticket.order_id})
    return TicketVerifyResponse.from_ticket(ticket)
