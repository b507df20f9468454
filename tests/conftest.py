import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("APP_URL", "http://frontend.test")
os.environ.setdefault("API_URL", "http://api.test")
os.environ.setdefault("GATEWAY_RETURN_SETTLE_WAIT_SECONDS", "0")

from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sorykpass.core.database import Base
from sorykpass.models import (
    Event,
    EventSeat,
    PromoCode,
    PromoCodeType,
    SeatStatus,
    Section,
    TicketType,
    User,
)
from sorykpass.services import (
    CommitResponse,
    GatewayError,
    GatewayTransaction,
    InMemorySeatLockStore,
    PaymentGateway,
    PaymentOrchestrator,
    SeatReservationManager,
    TicketNotice,
    TicketNotifier,
)


class FakeClock:
    """Monotonic clock the tests move by hand"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeGateway(PaymentGateway):
    """Records calls; answers with whatever the test configured"""

    def __init__(self):
        self.create_calls: List[dict] = []
        self.commit_calls: List[str] = []
        self.create_error: Optional[Exception] = None
        self.commit_error: Optional[Exception] = None
        self.commit_response = CommitResponse(
            status="AUTHORIZED",
            response_code=0,
            authorization_code="1213",
            payment_type_code="VN",
            transaction_date=datetime(2024, 5, 1, 12, 0, 0),
        )

    async def create(self, buy_order, session_id, amount, return_url):
        self.create_calls.append({
            "buy_order": buy_order,
            "session_id": session_id,
            "amount": amount,
            "return_url": return_url,
        })
        if self.create_error:
            raise self.create_error
        return GatewayTransaction(
            token=f"tok-{len(self.create_calls)}",
            url="https://webpay3gint.transbank.cl/webpayserver/initTransaction",
        )

    async def commit(self, token):
        self.commit_calls.append(token)
        if self.commit_error:
            raise self.commit_error
        return self.commit_response

    def reject(self, response_code: int = -1):
        self.commit_response = CommitResponse(status="FAILED", response_code=response_code)

    def break_commit(self):
        self.commit_error = GatewayError("connection reset")


class RecordingNotifier(TicketNotifier):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.notices: List[TicketNotice] = []

    async def send_tickets(self, notice):
        self.notices.append(notice)
        if self.fail:
            raise RuntimeError("SMTP down")


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def seat_store(clock):
    return InMemorySeatLockStore(clock=clock)


@pytest.fixture
def reservations(seat_store, session_factory):
    return SeatReservationManager(seat_store, session_factory, ttl_seconds=600)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def orchestrator(session_factory, reservations, gateway, notifier):
    return PaymentOrchestrator(
        session_factory,
        reservations,
        gateway,
        notifier,
        app_url="http://frontend.test",
        api_url="http://api.test",
    )


@pytest_asyncio.fixture
async def catalog(session_factory):
    """
    One published event with a seat map and three ticket types, an
    unpublished event, a second published event, a buyer and promo codes.
    """
    async with session_factory() as db, db.begin():
        buyer = User(email="buyer@example.com", first_name="Ana")

        event = Event(title="Concierto", currency="CLP", price=5000, capacity=3, is_published=True)
        hidden = Event(title="Ensayo", currency="CLP", price=1000, capacity=10, is_published=False)
        other = Event(title="Festival", currency="CLP", price=0, capacity=0, is_published=True)
        db.add_all([buyer, event, hidden, other])
        await db.flush()

        platea = Section(event_id=event.id, name="Platea", price=10000)
        campo = Section(event_id=other.id, name="Campo", price=7000)
        db.add_all([platea, campo])
        await db.flush()

        a1 = EventSeat(section_id=platea.id, row="A", number="1")
        a2 = EventSeat(section_id=platea.id, row="A", number="2")
        b1 = EventSeat(section_id=platea.id, row="B", number="1", price=15000)
        c1 = EventSeat(section_id=platea.id, row="C", number="1", status=SeatStatus.SOLD)
        x1 = EventSeat(section_id=campo.id, row="X", number="1")

        general = TicketType(event_id=event.id, name="General", price=5000, capacity=100)
        free = TicketType(event_id=event.id, name="Cortesía", price=0, capacity=10)
        pack = TicketType(event_id=event.id, name="Pack x2", price=8000, capacity=4, tickets_generated=2)
        hidden_type = TicketType(event_id=hidden.id, name="General", price=1000, capacity=10)
        db.add_all([a1, a2, b1, c1, x1, general, free, pack, hidden_type])
        await db.flush()

        now = datetime.utcnow()
        db.add_all([
            PromoCode(code="FIXED1000", type=PromoCodeType.FIXED_AMOUNT, value=1000),
            PromoCode(code="HALF", type=PromoCodeType.PERCENTAGE, value=50, max_discount_amount=3000),
            PromoCode(code="GRATIS", type=PromoCodeType.FREE, value=0),
            PromoCode(
                code="EXPIRED",
                type=PromoCodeType.FIXED_AMOUNT,
                value=500,
                valid_from=now - timedelta(days=10),
                valid_until=now - timedelta(days=1),
            ),
            PromoCode(code="FESTIVAL", type=PromoCodeType.FIXED_AMOUNT, value=500, event_id=other.id),
            PromoCode(code="ONCE", type=PromoCodeType.FIXED_AMOUNT, value=500, usage_limit_per_user=1),
        ])

        return SimpleNamespace(
            buyer_id=buyer.id,
            event_id=event.id,
            hidden_event_id=hidden.id,
            other_event_id=other.id,
            a1=a1.id,
            a2=a2.id,
            b1=b1.id,
            c1=c1.id,
            x1=x1.id,
            general_id=general.id,
            free_id=free.id,
            pack_id=pack.id,
            hidden_type_id=hidden_type.id,
        )
