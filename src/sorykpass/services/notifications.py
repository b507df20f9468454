"""
Ticket delivery notifications

Rendering and sending the actual email lives outside this service; the
default notifier only records the dispatch.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TicketNotice:
    order_id: str
    order_number: str
    email: str
    buyer_name: str
    event_title: str
    total_amount: int
    currency: str
    qr_codes: List[str] = field(default_factory=list)


class TicketNotifier(ABC):
    @abstractmethod
    async def send_tickets(self, notice: TicketNotice) -> None:
        """Deliver the buyer's tickets. May raise; callers treat failure as non-fatal."""
        ...


class LoggingTicketNotifier(TicketNotifier):
    """Logs each notice; the log line is the dispatch record"""

    async def send_tickets(self, notice: TicketNotice) -> None:
        logger.info(
            f"📧 Ticket email queued to {notice.email}: {len(notice.qr_codes)} tickets "
            f"for '{notice.event_title}' (order {notice.order_number})",
            extra={"order_id": notice.order_id},
        )
