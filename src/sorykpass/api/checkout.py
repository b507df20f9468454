"""Checkout API endpoints"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from sorykpass.api.deps import get_current_user_id, get_orchestrator
from sorykpass.middleware.rate_limiter import CHECKOUT_LIMIT, limiter
from sorykpass.schemas import CheckoutCreate, CheckoutResponse, ErrorResponse
from sorykpass.services import FailureReason, PaymentOrchestrator

router = APIRouter()

FAILURE_STATUS = {
    FailureReason.INVALID_REQUEST: 400,
    FailureReason.SEAT_NOT_FOUND: 400,
    FailureReason.SEATS_UNAVAILABLE: 400,
    FailureReason.INSUFFICIENT_CAPACITY: 400,
    FailureReason.INVALID_PROMO_CODE: 400,
    FailureReason.EVENT_NOT_FOUND: 404,
    FailureReason.EVENT_NOT_PUBLISHED: 404,
    FailureReason.TICKET_TYPE_NOT_FOUND: 404,
    FailureReason.GATEWAY_ERROR: 500,
    FailureReason.INTERNAL_ERROR: 500,
}


@router.post(
    "/checkout/create",
    response_model=CheckoutResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
@limiter.limit(CHECKOUT_LIMIT)
async def create_checkout(
    request: Request,
    payload: CheckoutCreate,
    user_id: Optional[str] = Depends(get_current_user_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """
    Start a purchase.

    Seat checkout: `sessionId` + `seatIds` (prices are taken from the seat
    map on the server). Ticket-type checkout: `ticketTypeId` or `eventId`
    + `quantity`. Free orders come back with `isFree` and their tickets
    already issued; paid orders carry the gateway `paymentUrl` and `token`.
    """
    result = await orchestrator.create_checkout(payload.to_request(user_id))

    if not result.is_ok:
        body = ErrorResponse(error=result.message, reason=result.failure.value)
        return JSONResponse(
            status_code=FAILURE_STATUS.get(result.failure, 500),
            content=body.model_dump(by_alias=True),
        )

    return CheckoutResponse.from_outcome(result.value)
