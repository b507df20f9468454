"""
Checkout services
"""
from sorykpass.services.errors import (
    CheckoutServiceError,
    ConsistencyError,
    GatewayError,
    SeatStoreUnavailableError,
)
from sorykpass.services.result import FailureReason, Result
from sorykpass.services.seat_lock_store import (
    InMemorySeatLockStore,
    RedisSeatLockStore,
    SeatLockStore,
)
from sorykpass.services.seat_reservation import SeatReservationManager
from sorykpass.services.payment_gateway import (
    CommitResponse,
    GatewayTransaction,
    PaymentGateway,
    WebpayPlusGateway,
)
from sorykpass.services.notifications import LoggingTicketNotifier, TicketNotice, TicketNotifier
from sorykpass.services.orchestrator import (
    BuyerInfo,
    CheckoutOutcome,
    CheckoutRequest,
    GatewayReturn,
    PaymentOrchestrator,
    ReturnOutcome,
    ReturnReason,
)
from sorykpass.services.expiry_worker import ExpiryWorker

__all__ = [
    "CheckoutServiceError",
    "ConsistencyError",
    "GatewayError",
    "SeatStoreUnavailableError",
    "FailureReason",
    "Result",
    "SeatLockStore",
    "RedisSeatLockStore",
    "InMemorySeatLockStore",
    "SeatReservationManager",
    "PaymentGateway",
    "WebpayPlusGateway",
    "GatewayTransaction",
    "CommitResponse",
    "TicketNotifier",
    "TicketNotice",
    "LoggingTicketNotifier",
    "PaymentOrchestrator",
    "CheckoutRequest",
    "CheckoutOutcome",
    "BuyerInfo",
    "GatewayReturn",
    "ReturnOutcome",
    "ReturnReason",
    "ExpiryWorker",
]
