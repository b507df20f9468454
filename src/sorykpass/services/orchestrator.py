"""
Payment Orchestrator

Owns the order state machine:

    PENDING --(gateway approves)-----------------> PAID
    PENDING --(gateway rejects / buyer aborts)---> CANCELLED

Checkout creation and the gateway return are the only writers of orders
and payments. Each unit of work opens its own session from the session
factory; seat holds live in the reservation manager and are released only
after the database transaction that settles the order has committed.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlencode
import asyncio
import logging

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from sorykpass.core.config import settings
from sorykpass.core.metrics import (
    checkouts_total,
    gateway_returns_total,
    notification_failures_total,
    tickets_issued_total,
)
from sorykpass.models import (
    Event,
    EventSeat,
    Order,
    OrderStatus,
    Payment,
    PaymentStatus,
    SeatStatus,
    Ticket,
    TicketStatus,
    TicketType,
    User,
)
from sorykpass.services.errors import ConsistencyError, GatewayError, SeatStoreUnavailableError
from sorykpass.services.identifiers import generate_buy_order, generate_gateway_session_id
from sorykpass.services.notifications import TicketNotice, TicketNotifier
from sorykpass.services.payment_gateway import CommitResponse, PaymentGateway
from sorykpass.services.pricing import PriceBreakdown, calculate_price_breakdown
from sorykpass.services.promo_codes import PromoCodeService, PromoDiscount
from sorykpass.services.result import FailureReason, Result
from sorykpass.services.seat_reservation import SeatReservationManager
from sorykpass.services.ticket_issuer import IssuableOrder, IssuancePlan, plan_issuance

logger = logging.getLogger(__name__)

MAX_QUANTITY = 10
SETTLE_POLL_SECONDS = 0.2

# Payment.failure_reason when the hold was lost before the charge was captured
SEATS_LOST = "seats-unavailable"


# ==================== Checkout types ====================

@dataclass(frozen=True)
class BuyerInfo:
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class CheckoutRequest:
    """
    Seat checkout: session_id + seat_ids (event_id optional).
    Ticket-type checkout: ticket_type_id, or event_id alone, + quantity.

    The buyer is either `buyer` (guest, found or created by email) or an
    existing `user_id`.
    """
    session_id: Optional[str] = None
    seat_ids: Tuple[str, ...] = ()
    event_id: Optional[str] = None
    ticket_type_id: Optional[str] = None
    quantity: Optional[int] = None
    buyer: Optional[BuyerInfo] = None
    user_id: Optional[str] = None
    promo_code: Optional[str] = None

    @property
    def is_seat_checkout(self) -> bool:
        return bool(self.seat_ids)


@dataclass(frozen=True)
class CheckoutOutcome:
    order_id: str
    order_number: str
    price: PriceBreakdown
    is_free: bool = False
    payment_url: Optional[str] = None
    token: Optional[str] = None
    tickets_generated: int = 0


@dataclass(frozen=True)
class _PricedOrder:
    user_id: str
    event_id: str
    quantity: int
    price: PriceBreakdown
    ticket_type_id: Optional[str] = None
    promo: Optional[PromoDiscount] = None
    reservation: Optional[dict] = None


# ==================== Gateway return types ====================

class ReturnReason(str, Enum):
    NO_TOKEN = "no-token"
    PAYMENT_NOT_FOUND = "payment-not-found"
    TRANSACTION_FAILED = "transaction-failed"
    TRANSACTION_CANCELLED = "transaction-cancelled"
    CONFIRMATION_ERROR = "confirmation-error"


@dataclass(frozen=True)
class GatewayReturn:
    """Normalized gateway callback: `token_ws` and/or `TBK_TOKEN`"""
    token: Optional[str] = None
    cancelled_token: Optional[str] = None


@dataclass(frozen=True)
class ReturnOutcome:
    success: bool
    order_id: Optional[str] = None
    reason: Optional[ReturnReason] = None

    @classmethod
    def paid(cls, order_id: str) -> "ReturnOutcome":
        return cls(success=True, order_id=order_id)

    @classmethod
    def failed(cls, reason: ReturnReason, order_id: Optional[str] = None) -> "ReturnOutcome":
        return cls(success=False, order_id=order_id, reason=reason)

    def redirect_url(self, app_url: str) -> str:
        base = app_url.rstrip("/")
        if self.success:
            return f"{base}/payment/success?{urlencode({'orderId': self.order_id})}"
        params = {}
        if self.order_id:
            params["orderId"] = self.order_id
        params["reason"] = self.reason.value
        return f"{base}/payment/error?{urlencode(params)}"


@dataclass(frozen=True)
class _PaymentSnapshot:
    payment_id: str
    payment_status: PaymentStatus
    order_id: str
    order_status: OrderStatus
    reservation: Optional[dict]
    payment_failure_reason: Optional[str] = None

    @property
    def is_settled(self) -> bool:
        return self.order_status != OrderStatus.PENDING or self.payment_status != PaymentStatus.PENDING


@dataclass(frozen=True)
class _Issued:
    plan: IssuancePlan
    notice: TicketNotice


def _settled_outcome(
    order_id: str,
    order_status: OrderStatus,
    payment_status: Optional[PaymentStatus],
    failure_reason: Optional[str] = None,
) -> ReturnOutcome:
    """Redirect for an order whose callback was already processed"""
    if order_status == OrderStatus.PAID:
        return ReturnOutcome.paid(order_id)
    if payment_status == PaymentStatus.REJECTED or failure_reason == SEATS_LOST:
        return ReturnOutcome.failed(ReturnReason.TRANSACTION_FAILED, order_id)
    return ReturnOutcome.failed(ReturnReason.TRANSACTION_CANCELLED, order_id)


def validate_reservation(reservation) -> None:
    """Raise ConsistencyError unless the order's seat reservation is well formed"""
    if reservation is None:
        return
    if not isinstance(reservation, dict):
        raise ConsistencyError("Reservation metadata is not an object")
    session_id = reservation.get("session_id")
    seat_ids = reservation.get("seat_ids")
    if not isinstance(session_id, str) or not session_id:
        raise ConsistencyError("Reservation metadata has no session id")
    if not isinstance(seat_ids, list) or not seat_ids:
        raise ConsistencyError("Reservation metadata has no seats")
    if not all(isinstance(s, str) and s for s in seat_ids):
        raise ConsistencyError("Reservation metadata has invalid seat ids")


class PaymentOrchestrator:
    """Checkout creation, gateway return reconciliation and abandoned-order expiry"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        reservations: SeatReservationManager,
        gateway: PaymentGateway,
        notifier: Optional[TicketNotifier] = None,
        app_url: Optional[str] = None,
        api_url: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.reservations = reservations
        self.gateway = gateway
        self.notifier = notifier
        self.app_url = app_url or settings.APP_URL
        self.api_url = api_url or settings.API_URL
        self._now = clock

    @property
    def return_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/api/v1/payment/return"

    # ==================== Checkout ====================

    async def create_checkout(self, request: CheckoutRequest) -> Result[CheckoutOutcome]:
        """
        Price the request, create a PENDING order and hand it to the gateway.

        Orders that price to zero are issued and marked PAID immediately,
        without a gateway round-trip. Raises SeatStoreUnavailableError when
        seat holds cannot be checked; every other failure is a Result.
        """
        flow = "seats" if request.is_seat_checkout else "ticket_type"

        result = self._validate_request(request)
        if result is None:
            try:
                if request.is_seat_checkout:
                    result = await self._create_seat_checkout(request)
                else:
                    result = await self._create_ticket_type_checkout(request)
            except SeatStoreUnavailableError:
                checkouts_total.labels(flow=flow, result="store_unavailable").inc()
                raise
            except Exception:
                logger.exception(
                    "❌ Checkout creation failed",
                    extra={"session_id": request.session_id, "event_id": request.event_id},
                )
                result = Result.fail(FailureReason.INTERNAL_ERROR, "Could not create checkout")

        checkouts_total.labels(
            flow=flow,
            result="ok" if result.is_ok else result.failure.value.lower(),
        ).inc()
        return result

    def _validate_request(self, request: CheckoutRequest) -> Optional[Result[CheckoutOutcome]]:
        if not request.buyer and not request.user_id:
            return Result.fail(FailureReason.INVALID_REQUEST, "Buyer information is required")

        if request.is_seat_checkout:
            if not request.session_id:
                return Result.fail(FailureReason.INVALID_REQUEST, "sessionId is required for seat checkout")
            if len(set(request.seat_ids)) > settings.MAX_SEATS_PER_CHECKOUT:
                return Result.fail(
                    FailureReason.INVALID_REQUEST,
                    f"Cannot buy more than {settings.MAX_SEATS_PER_CHECKOUT} seats at once",
                )
            return None

        if not request.ticket_type_id and not request.event_id:
            return Result.fail(FailureReason.INVALID_REQUEST, "Seats, a ticket type or an event is required")
        if request.quantity is None or not 1 <= request.quantity <= MAX_QUANTITY:
            return Result.fail(FailureReason.INVALID_REQUEST, f"Quantity must be between 1 and {MAX_QUANTITY}")
        return None

    async def _resolve_buyer(self, db: AsyncSession, request: CheckoutRequest) -> Optional[User]:
        """Existing user by id, or a guest found (or created) by email"""
        if request.buyer:
            email = request.buyer.email.strip().lower()
            result = await db.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(
                    email=email,
                    first_name=request.buyer.first_name,
                    last_name=request.buyer.last_name,
                    phone=request.buyer.phone,
                )
                db.add(user)
                await db.flush()
                logger.info("👤 Guest buyer created", extra={"user_id": user.id})
            return user
        return await db.get(User, request.user_id)

    @staticmethod
    def _check_event(event: Optional[Event]) -> Optional[Result[CheckoutOutcome]]:
        if event is None:
            return Result.fail(FailureReason.EVENT_NOT_FOUND, "Event not found")
        if not event.is_published:
            return Result.fail(FailureReason.EVENT_NOT_PUBLISHED, "Event is not available for sale")
        return None

    async def _apply_promo(
        self,
        db: AsyncSession,
        request: CheckoutRequest,
        user_id: str,
        event: Event,
        base_amount: int,
        quantity: int,
        ticket_type_id: Optional[str] = None,
        unit_price: Optional[int] = None,
    ) -> Result[Optional[PromoDiscount]]:
        if not request.promo_code:
            return Result.ok(None)
        return await PromoCodeService.validate(
            db,
            request.promo_code,
            user_id=user_id,
            event_id=event.id,
            base_amount=base_amount,
            quantity=quantity,
            ticket_type_id=ticket_type_id,
            unit_price=unit_price,
            now=self._now(),
        )

    async def _create_seat_checkout(self, request: CheckoutRequest) -> Result[CheckoutOutcome]:
        seat_ids = list(dict.fromkeys(request.seat_ids))

        async with self.session_factory() as db, db.begin():
            buyer = await self._resolve_buyer(db, request)
            if buyer is None:
                return Result.fail(FailureReason.INVALID_REQUEST, "Unknown buyer")

            result = await db.execute(
                select(EventSeat)
                .options(selectinload(EventSeat.section))
                .where(EventSeat.id.in_(seat_ids))
            )
            seats = result.scalars().all()
            if len(seats) != len(seat_ids):
                return Result.fail(FailureReason.SEAT_NOT_FOUND, "One or more seats do not exist")

            event_ids = {seat.section.event_id for seat in seats}
            if len(event_ids) != 1 or (request.event_id and request.event_id not in event_ids):
                return Result.fail(FailureReason.INVALID_REQUEST, "All seats must belong to the same event")

            event = await db.get(Event, event_ids.pop())
            failure = self._check_event(event)
            if failure:
                return failure

            if any(seat.status != SeatStatus.AVAILABLE for seat in seats):
                return Result.fail(FailureReason.SEATS_UNAVAILABLE, "One or more seats are no longer available")

            base_amount = sum(seat.effective_price for seat in seats)
            promo = await self._apply_promo(db, request, buyer.id, event, base_amount, len(seats))
            if not promo.is_ok:
                return Result.fail(promo.failure, promo.message)

            discount = promo.value.discount_amount if promo.value else 0
            priced = _PricedOrder(
                user_id=buyer.id,
                event_id=event.id,
                quantity=len(seats),
                price=calculate_price_breakdown(base_amount, discount, event.currency),
                promo=promo.value,
                reservation={"session_id": request.session_id, "seat_ids": seat_ids},
            )

        # Acquire or refresh; this is the atomic availability check
        unavailable = await self.reservations.try_reserve(request.session_id, seat_ids)
        if unavailable:
            return Result.fail(FailureReason.SEATS_UNAVAILABLE, "One or more seats are no longer available")

        return await self._place_order(priced)

    async def _create_ticket_type_checkout(self, request: CheckoutRequest) -> Result[CheckoutOutcome]:
        quantity = request.quantity

        async with self.session_factory() as db, db.begin():
            buyer = await self._resolve_buyer(db, request)
            if buyer is None:
                return Result.fail(FailureReason.INVALID_REQUEST, "Unknown buyer")

            ticket_type = None
            if request.ticket_type_id:
                ticket_type = await db.get(TicketType, request.ticket_type_id)
                if ticket_type is None:
                    return Result.fail(FailureReason.TICKET_TYPE_NOT_FOUND, "Ticket type not found")
                if request.event_id and request.event_id != ticket_type.event_id:
                    return Result.fail(FailureReason.INVALID_REQUEST, "Ticket type belongs to another event")
                event = await db.get(Event, ticket_type.event_id)
            else:
                event = await db.get(Event, request.event_id)

            failure = self._check_event(event)
            if failure:
                return failure

            if ticket_type:
                unit_price = ticket_type.price
                capacity = ticket_type.capacity
                per_unit = max(ticket_type.tickets_generated or 1, 1)
                issued_filter = [Ticket.ticket_type_id == ticket_type.id]
            else:
                unit_price = 0 if event.is_free else event.price
                capacity = event.capacity
                per_unit = 1
                issued_filter = [
                    Ticket.event_id == event.id,
                    Ticket.ticket_type_id.is_(None),
                    Ticket.seat_id.is_(None),
                ]

            # Capacity is counted in tickets, not purchased units
            issued = await db.scalar(
                select(func.count(Ticket.id)).where(Ticket.status == TicketStatus.ACTIVE, *issued_filter)
            )
            needed = quantity * per_unit
            if capacity - issued < needed:
                return Result.fail(
                    FailureReason.INSUFFICIENT_CAPACITY,
                    f"Only {max(capacity - issued, 0)} tickets left",
                )

            base_amount = unit_price * quantity
            promo = await self._apply_promo(
                db,
                request,
                buyer.id,
                event,
                base_amount,
                quantity,
                ticket_type_id=ticket_type.id if ticket_type else None,
                unit_price=unit_price,
            )
            if not promo.is_ok:
                return Result.fail(promo.failure, promo.message)

            discount = promo.value.discount_amount if promo.value else 0
            priced = _PricedOrder(
                user_id=buyer.id,
                event_id=event.id,
                quantity=quantity,
                price=calculate_price_breakdown(base_amount, discount, event.currency),
                ticket_type_id=ticket_type.id if ticket_type else None,
                promo=promo.value,
            )

        return await self._place_order(priced)

    async def _place_order(self, priced: _PricedOrder) -> Result[CheckoutOutcome]:
        price = priced.price
        issued = None

        # 1. Persist the order (and settle it right away when nothing is owed)
        async with self.session_factory() as db, db.begin():
            now = self._now()
            order = Order(
                created_at=now,
                updated_at=now,
                order_number=generate_buy_order(),
                status=OrderStatus.PENDING,
                base_amount=price.original_amount,
                discount_amount=price.discount_amount,
                commission_amount=price.commission_amount,
                total_amount=price.total_amount,
                currency=price.currency,
                quantity=priced.quantity,
                user_id=priced.user_id,
                event_id=priced.event_id,
                ticket_type_id=priced.ticket_type_id,
                promo_code_id=priced.promo.promo_code_id if priced.promo else None,
                reservation=priced.reservation,
            )
            db.add(order)
            await db.flush()
            order_id = order.id
            order_number = order.order_number

            if price.is_free:
                issued = await self._issue_tickets(db, order)

        log_extra = {"order_id": order_id, "user_id": priced.user_id, "event_id": priced.event_id}

        if issued:
            tickets_issued_total.inc(len(issued.plan.tickets))
            logger.info(f"🎟️ Free order {order_number} issued {len(issued.plan.tickets)} tickets", extra=log_extra)
            await self._release_hold(priced.reservation, order_id)
            await self._notify(issued.notice)
            return Result.ok(CheckoutOutcome(
                order_id=order_id,
                order_number=order_number,
                price=price,
                is_free=True,
                tickets_generated=len(issued.plan.tickets),
            ))

        # 2. Gateway hand-off
        gateway_session_id = generate_gateway_session_id()
        try:
            transaction = await self.gateway.create(
                buy_order=order_number,
                session_id=gateway_session_id,
                amount=price.total_amount,
                return_url=self.return_url,
            )
        except GatewayError as e:
            logger.error(f"❌ Gateway create failed for {order_number}: {e}", extra=log_extra)
            await self._cancel_unpaid_order(order_id)
            return Result.fail(FailureReason.GATEWAY_ERROR, "Payment gateway is unavailable, please retry")

        # 3. Remember the token so the return callback can find the order
        async with self.session_factory() as db, db.begin():
            db.add(Payment(
                order_id=order_id,
                token=transaction.token,
                transaction_id=gateway_session_id,
                amount=price.total_amount,
                currency=price.currency,
                status=PaymentStatus.PENDING,
            ))

        logger.info(
            f"💳 Order {order_number} awaiting payment of {price.total_amount} {price.currency}",
            extra={**log_extra, "token": transaction.token},
        )
        return Result.ok(CheckoutOutcome(
            order_id=order_id,
            order_number=order_number,
            price=price,
            payment_url=transaction.url,
            token=transaction.token,
        ))

    async def _cancel_unpaid_order(self, order_id: str):
        async with self.session_factory() as db, db.begin():
            await db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
                .values(status=OrderStatus.CANCELLED, updated_at=self._now())
                .execution_options(synchronize_session=False)
            )

    # ==================== Issuance (inside the caller's transaction) ====================

    async def _issue_tickets(self, db: AsyncSession, order: Order) -> _Issued:
        """
        Insert tickets, mark seats sold and flip the order to PAID.

        Must run inside an open transaction; any exception rolls all of it
        back together.
        """
        tickets_per_unit = 1
        if order.ticket_type_id:
            ticket_type = await db.get(TicketType, order.ticket_type_id)
            tickets_per_unit = ticket_type.tickets_generated if ticket_type else 1

        plan = plan_issuance(IssuableOrder.from_order(order, tickets_per_unit))

        await self._insert_tickets(db, plan)
        await self._mark_seats_sold(db, plan.seats_to_mark_sold, order.id)
        await self._mark_order_paid(db, order)

        if order.promo_code_id:
            await PromoCodeService.record_usage(
                db,
                promo_code_id=order.promo_code_id,
                user_id=order.user_id,
                order_id=order.id,
                discount_amount=order.discount_amount,
                original_amount=order.base_amount,
                final_amount=order.base_amount - order.discount_amount,
            )

        user = await db.get(User, order.user_id)
        event = await db.get(Event, order.event_id)
        notice = TicketNotice(
            order_id=order.id,
            order_number=order.order_number,
            email=user.email,
            buyer_name=user.display_name,
            event_title=event.title,
            total_amount=order.total_amount,
            currency=order.currency,
            qr_codes=[t.qr_code for t in plan.tickets],
        )
        return _Issued(plan=plan, notice=notice)

    async def _insert_tickets(self, db: AsyncSession, plan: IssuancePlan):
        db.add_all([draft.to_model() for draft in plan.tickets])
        await db.flush()

    async def _mark_seats_sold(self, db: AsyncSession, seat_ids: List[str], order_id: str):
        if not seat_ids:
            return
        result = await db.execute(
            update(EventSeat)
            .where(EventSeat.id.in_(seat_ids), EventSeat.status != SeatStatus.SOLD)
            .values(status=SeatStatus.SOLD, updated_at=self._now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(seat_ids):
            # The buyer has paid, so the sale stands; someone has to sort out the seat
            logger.critical(
                f"🚨 {len(seat_ids) - result.rowcount} seats were already SOLD when settling the order",
                extra={"order_id": order_id, "error_kind": "consistency"},
            )

    async def _mark_order_paid(self, db: AsyncSession, order: Order):
        now = self._now()
        result = await db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PENDING)
            .values(
                status=OrderStatus.PAID,
                paid_at=now,
                updated_at=now,
                payment_intent_id=order.order_number,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConsistencyError(f"Order {order.id} left PENDING before it could be paid")

    async def _mark_payment_approved(self, db: AsyncSession, payment: Payment, response: CommitResponse):
        payment.status = PaymentStatus.APPROVED
        payment.authorization_code = response.authorization_code
        payment.response_code = response.response_code
        payment.payment_type_code = response.payment_type_code
        payment.transaction_date = response.transaction_date
        payment.updated_at = self._now()
        await db.flush()

    # ==================== Gateway return ====================

    async def handle_gateway_return(self, callback: GatewayReturn) -> ReturnOutcome:
        """
        Reconcile one gateway callback. Safe to call any number of times
        per token and from either HTTP verb; never raises.
        """
        try:
            outcome = await self._handle_gateway_return(callback)
        except Exception:
            logger.exception(
                "❌ Gateway return failed",
                extra={"token": callback.token or callback.cancelled_token},
            )
            outcome = ReturnOutcome.failed(ReturnReason.CONFIRMATION_ERROR)

        gateway_returns_total.labels(
            outcome="success" if outcome.success else outcome.reason.value
        ).inc()
        return outcome

    async def _handle_gateway_return(self, callback: GatewayReturn) -> ReturnOutcome:
        if callback.cancelled_token:
            return await self._handle_cancelled(callback.cancelled_token)

        token = callback.token
        if not token:
            logger.info("↩️ Gateway return without token")
            return ReturnOutcome.failed(ReturnReason.NO_TOKEN)

        snapshot = await self._load_snapshot(token)
        if snapshot is None:
            logger.critical(
                "🚨 Gateway returned a token with no matching payment",
                extra={"token": token, "error_kind": "consistency"},
            )
            return ReturnOutcome.failed(ReturnReason.PAYMENT_NOT_FOUND)

        log_extra = {"order_id": snapshot.order_id, "token": token}

        if snapshot.is_settled:
            logger.info("↩️ Repeated gateway return for a settled order", extra=log_extra)
            return _settled_outcome(
                snapshot.order_id, snapshot.order_status, snapshot.payment_status, snapshot.payment_failure_reason
            )

        try:
            validate_reservation(snapshot.reservation)
        except ConsistencyError as e:
            logger.critical(f"🚨 {e}", extra={**log_extra, "error_kind": "consistency"})
            return ReturnOutcome.failed(ReturnReason.CONFIRMATION_ERROR, snapshot.order_id)

        # The paying session must still own every seat before the charge is captured
        if snapshot.reservation:
            lost = await self.reservations.try_reserve(
                snapshot.reservation["session_id"], snapshot.reservation["seat_ids"]
            )
            if lost:
                return await self._settle_seats_lost(token, snapshot, lost)

        try:
            response = await self.gateway.commit(token)
        except GatewayError as e:
            logger.error(f"❌ Gateway commit failed: {e}", extra=log_extra)
            # A concurrent delivery of the same callback may be settling it
            current = await self._wait_for_settlement(token)
            if current is not None:
                return _settled_outcome(
                    current.order_id, current.order_status, current.payment_status, current.payment_failure_reason
                )
            return ReturnOutcome.failed(ReturnReason.CONFIRMATION_ERROR, snapshot.order_id)

        if response.is_approved:
            return await self._settle_approved(token, snapshot, response)
        return await self._settle_rejected(token, snapshot, response)

    async def _wait_for_settlement(self, token: str) -> Optional[_PaymentSnapshot]:
        """Re-read the payment until it is settled or the grace period runs out"""
        deadline = settings.GATEWAY_RETURN_SETTLE_WAIT_SECONDS
        waited = 0.0
        while True:
            current = await self._load_snapshot(token)
            if current is not None and current.is_settled:
                return current
            if waited >= deadline:
                return None
            await asyncio.sleep(SETTLE_POLL_SECONDS)
            waited += SETTLE_POLL_SECONDS

    async def _load_snapshot(self, token: str) -> Optional[_PaymentSnapshot]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Payment, Order)
                .join(Order, Payment.order_id == Order.id)
                .where(Payment.token == token)
            )
            row = result.first()
            if row is None:
                return None
            payment, order = row
            return _PaymentSnapshot(
                payment_id=payment.id,
                payment_status=payment.status,
                payment_failure_reason=payment.failure_reason,
                order_id=order.id,
                order_status=order.status,
                reservation=order.reservation,
            )

    async def _lock_payment(self, db: AsyncSession, token: str) -> Tuple[Optional[Payment], Optional[Order]]:
        result = await db.execute(select(Payment).where(Payment.token == token).with_for_update())
        payment = result.scalar_one_or_none()
        if payment is None:
            return None, None
        order = await db.get(Order, payment.order_id)
        return payment, order

    async def _settle_approved(
        self,
        token: str,
        snapshot: _PaymentSnapshot,
        response: CommitResponse,
    ) -> ReturnOutcome:
        log_extra = {"order_id": snapshot.order_id, "token": token}
        try:
            async with self.session_factory() as db, db.begin():
                payment, order = await self._lock_payment(db, token)
                if payment.status != PaymentStatus.PENDING or order.status != OrderStatus.PENDING:
                    return _settled_outcome(order.id, order.status, payment.status, payment.failure_reason)

                issued = await self._issue_tickets(db, order)
                await self._mark_payment_approved(db, payment, response)
        except ConsistencyError as e:
            logger.critical(f"🚨 Approved payment could not be settled: {e}", extra={**log_extra, "error_kind": "consistency"})
            return ReturnOutcome.failed(ReturnReason.CONFIRMATION_ERROR, snapshot.order_id)
        except Exception:
            logger.exception("❌ Approved payment could not be settled", extra=log_extra)
            return ReturnOutcome.failed(ReturnReason.CONFIRMATION_ERROR, snapshot.order_id)

        tickets_issued_total.inc(len(issued.plan.tickets))
        logger.info(
            f"✅ Payment approved (auth {response.authorization_code}), "
            f"{len(issued.plan.tickets)} tickets issued",
            extra=log_extra,
        )
        await self._release_hold(snapshot.reservation, snapshot.order_id)
        await self._notify(issued.notice)
        return ReturnOutcome.paid(snapshot.order_id)

    async def _settle_rejected(
        self,
        token: str,
        snapshot: _PaymentSnapshot,
        response: CommitResponse,
    ) -> ReturnOutcome:
        log_extra = {"order_id": snapshot.order_id, "token": token}
        try:
            async with self.session_factory() as db, db.begin():
                payment, order = await self._lock_payment(db, token)
                if payment.status != PaymentStatus.PENDING or order.status != OrderStatus.PENDING:
                    return _settled_outcome(order.id, order.status, payment.status, payment.failure_reason)

                payment.status = PaymentStatus.REJECTED
                payment.response_code = response.response_code
                payment.authorization_code = response.authorization_code
                payment.transaction_date = response.transaction_date
                payment.updated_at = self._now()
                await self._cancel_order(db, order.id)
        except Exception:
            logger.exception("❌ Rejected payment could not be recorded", extra=log_extra)
            return ReturnOutcome.failed(ReturnReason.CONFIRMATION_ERROR, snapshot.order_id)

        logger.info(
            f"❌ Payment rejected: {response.status} / {response.response_code}",
            extra=log_extra,
        )
        await self._release_hold(snapshot.reservation, snapshot.order_id)
        return ReturnOutcome.failed(ReturnReason.TRANSACTION_FAILED, snapshot.order_id)

    async def _settle_seats_lost(self, token: str, snapshot: _PaymentSnapshot, lost: List[str]) -> ReturnOutcome:
        """The hold lapsed and the seats went elsewhere; the charge is never captured"""
        log_extra = {"order_id": snapshot.order_id, "token": token}
        async with self.session_factory() as db, db.begin():
            payment, order = await self._lock_payment(db, token)
            if payment.status != PaymentStatus.PENDING or order.status != OrderStatus.PENDING:
                return _settled_outcome(order.id, order.status, payment.status, payment.failure_reason)

            payment.status = PaymentStatus.FAILED
            payment.failure_reason = SEATS_LOST
            payment.updated_at = self._now()
            await self._cancel_order(db, order.id)

        logger.warning(
            f"⚠️ Seat hold lost before payment was captured: {lost}",
            extra={**log_extra, "session_id": snapshot.reservation["session_id"]},
        )
        return ReturnOutcome.failed(ReturnReason.TRANSACTION_FAILED, snapshot.order_id)

    async def _handle_cancelled(self, token: str) -> ReturnOutcome:
        """Buyer aborted on the gateway page (TBK_TOKEN)"""
        async with self.session_factory() as db, db.begin():
            payment, order = await self._lock_payment(db, token)
            if payment is None:
                logger.info("↩️ Buyer cancelled an unknown transaction", extra={"token": token})
                return ReturnOutcome.failed(ReturnReason.TRANSACTION_CANCELLED)

            if payment.status != PaymentStatus.PENDING or order.status != OrderStatus.PENDING:
                return _settled_outcome(order.id, order.status, payment.status, payment.failure_reason)

            payment.status = PaymentStatus.FAILED
            payment.updated_at = self._now()
            await self._cancel_order(db, order.id)
            order_id = order.id
            reservation = order.reservation

        logger.info("↩️ Buyer cancelled the payment", extra={"order_id": order_id, "token": token})
        await self._release_hold(reservation, order_id)
        return ReturnOutcome.failed(ReturnReason.TRANSACTION_CANCELLED, order_id)

    async def _cancel_order(self, db: AsyncSession, order_id: str) -> bool:
        result = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
            .values(status=OrderStatus.CANCELLED, updated_at=self._now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ==================== Side effects after commit ====================

    async def _release_hold(self, reservation: Optional[Dict], order_id: str):
        if not reservation or not isinstance(reservation, dict) or not reservation.get("session_id"):
            return
        session_id = reservation["session_id"]
        try:
            # Only this order's seats; the session may hold seats for a newer checkout
            await self.reservations.release_seats(session_id, reservation.get("seat_ids") or [])
        except SeatStoreUnavailableError as e:
            # Locks expire on their own
            logger.warning(
                f"⚠️ Could not release seat hold: {e}",
                extra={"order_id": order_id, "session_id": session_id},
            )

    async def _notify(self, notice: TicketNotice):
        if self.notifier is None:
            return
        try:
            await self.notifier.send_tickets(notice)
        except Exception as e:
            notification_failures_total.inc()
            logger.error(f"📧 Ticket notification failed: {e}", extra={"order_id": notice.order_id})

    # ==================== Abandoned orders ====================

    async def expire_abandoned_orders(self, now: Optional[datetime] = None) -> int:
        """
        Cancel PENDING orders older than ORDER_PENDING_TIMEOUT_MINUTES.

        Their pending payments become FAILED and their seat holds are
        released. Returns how many orders were cancelled.
        """
        now = now or self._now()
        cutoff = now - timedelta(minutes=settings.ORDER_PENDING_TIMEOUT_MINUTES)

        async with self.session_factory() as db, db.begin():
            result = await db.execute(
                select(Order)
                .where(Order.status == OrderStatus.PENDING, Order.created_at < cutoff)
                .with_for_update(skip_locked=True)
            )
            orders = result.scalars().all()

            expired = []
            for order in orders:
                if await self._cancel_order(db, order.id):
                    expired.append((order.id, order.reservation))

            if expired:
                await db.execute(
                    update(Payment)
                    .where(
                        Payment.order_id.in_([order_id for order_id, _ in expired]),
                        Payment.status == PaymentStatus.PENDING,
                    )
                    .values(status=PaymentStatus.FAILED, updated_at=now)
                    .execution_options(synchronize_session=False)
                )

        for order_id, reservation in expired:
            await self._release_hold(reservation, order_id)

        if expired:
            logger.info(f"⏰ Expired {len(expired)} abandoned orders")
        return len(expired)
