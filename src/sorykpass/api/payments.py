"""Payment gateway return endpoints"""
from typing import Mapping

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from sorykpass.api.deps import get_orchestrator
from sorykpass.services import GatewayReturn, PaymentOrchestrator

router = APIRouter()


def callback_from_params(params: Mapping) -> GatewayReturn:
    """token_ws on a completed payment, TBK_TOKEN when the buyer aborted"""
    token = params.get("token_ws")
    cancelled = params.get("TBK_TOKEN")
    return GatewayReturn(
        token=str(token) if token else None,
        cancelled_token=str(cancelled) if cancelled else None,
    )


async def _redirect(orchestrator: PaymentOrchestrator, callback: GatewayReturn) -> RedirectResponse:
    outcome = await orchestrator.handle_gateway_return(callback)
    return RedirectResponse(outcome.redirect_url(orchestrator.app_url), status_code=303)


@router.get("/payment/return")
async def payment_return_get(
    request: Request,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    return await _redirect(orchestrator, callback_from_params(request.query_params))


@router.post("/payment/return")
async def payment_return_post(
    request: Request,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    form = await request.form()
    params = {**request.query_params, **form}
    return await _redirect(orchestrator, callback_from_params(params))
