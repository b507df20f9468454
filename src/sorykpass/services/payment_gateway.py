"""
Payment gateway client (Transbank Webpay Plus REST API v1.2)

    create(buy_order, session_id, amount, return_url) -> token + payment URL
    commit(token)                                     -> authorization result

The buyer pays on the gateway's page between the two calls; the gateway
then sends the browser back to `return_url` with `token_ws` (or `TBK_TOKEN`
when the buyer aborted).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

import httpx

from sorykpass.core.config import settings
from sorykpass.core.logging_config import mask_token
from sorykpass.core.metrics import track_gateway_call
from sorykpass.services.errors import GatewayError
from sorykpass.services.identifiers import BUY_ORDER_MAX_LENGTH, GATEWAY_SESSION_MAX_LENGTH

logger = logging.getLogger(__name__)

INTEGRATION_HOST = "https://webpay3gint.transbank.cl"
PRODUCTION_HOST = "https://webpay3g.transbank.cl"
TRANSACTIONS_PATH = "/rswebpaytransaction/api/webpay/v1.2/transactions"

# Public Webpay Plus integration credentials published by Transbank
INTEGRATION_COMMERCE_CODE = "597055555532"
INTEGRATION_API_KEY = "579B532A7440BB0C9079DED94D31EA1615BACEB56610332264630D42D0A36B1C"

AUTHORIZED = "AUTHORIZED"


@dataclass(frozen=True)
class GatewayTransaction:
    token: str
    url: str


@dataclass(frozen=True)
class CommitResponse:
    status: str
    response_code: int
    authorization_code: Optional[str] = None
    payment_type_code: Optional[str] = None
    transaction_date: Optional[datetime] = None
    buy_order: Optional[str] = None
    amount: Optional[int] = None

    @property
    def is_approved(self) -> bool:
        return self.status == AUTHORIZED and self.response_code == 0


class PaymentGateway(ABC):
    """Interface the orchestrator talks to"""

    @abstractmethod
    async def create(self, buy_order: str, session_id: str, amount: int, return_url: str) -> GatewayTransaction:
        ...

    @abstractmethod
    async def commit(self, token: str) -> CommitResponse:
        ...

    async def close(self):
        pass


def _parse_transaction_date(value: Optional[str]) -> Optional[datetime]:
    """Webpay sends ISO-8601 UTC ('2024-03-20T20:18:20.000Z'); stored naive UTC"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"⚠️ Unparseable transaction_date from gateway: {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class WebpayPlusGateway(PaymentGateway):
    """
    Webpay Plus over httpx

    Integration credentials are used unless the environment is production,
    where both commerce code and API key must be configured.
    """

    def __init__(
        self,
        commerce_code: Optional[str] = None,
        api_key: Optional[str] = None,
        environment: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        environment = (environment or settings.TRANSBANK_ENVIRONMENT).lower()
        if environment == "production":
            commerce_code = commerce_code or settings.TRANSBANK_COMMERCE_CODE
            api_key = api_key or settings.TRANSBANK_API_KEY
            if not commerce_code or not api_key:
                raise ValueError(
                    "TRANSBANK_COMMERCE_CODE and TRANSBANK_API_KEY are required in production"
                )
            self.base_url = PRODUCTION_HOST
        else:
            commerce_code = commerce_code or settings.TRANSBANK_COMMERCE_CODE or INTEGRATION_COMMERCE_CODE
            api_key = api_key or settings.TRANSBANK_API_KEY or INTEGRATION_API_KEY
            self.base_url = INTEGRATION_HOST

        self.environment = environment
        self.commerce_code = commerce_code
        self.timeout = timeout or settings.TRANSBANK_TIMEOUT_SECONDS
        self._api_key = api_key
        self._client = client

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Tbk-Api-Key-Id": self.commerce_code,
            "Tbk-Api-Key-Secret": self._api_key,
            "Content-Type": "application/json",
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, operation: str, method: str, path: str, json: Optional[dict] = None) -> Dict[str, Any]:
        client = self._get_client()
        url = f"{self.base_url}{path}"
        with track_gateway_call(operation):
            try:
                response = await client.request(method, url, json=json, headers=self.headers)
            except httpx.HTTPError as e:
                raise GatewayError(f"Webpay {operation} request failed: {e}") from e

        if response.status_code >= 300:
            raise GatewayError(
                f"Webpay {operation} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(f"Webpay {operation} returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise GatewayError(f"Webpay {operation} returned an unexpected body")
        return body

    async def create(self, buy_order: str, session_id: str, amount: int, return_url: str) -> GatewayTransaction:
        if not buy_order or len(buy_order) > BUY_ORDER_MAX_LENGTH:
            raise GatewayError(f"buy_order must be 1-{BUY_ORDER_MAX_LENGTH} characters")
        if not session_id or len(session_id) > GATEWAY_SESSION_MAX_LENGTH:
            raise GatewayError(f"session_id must be 1-{GATEWAY_SESSION_MAX_LENGTH} characters")
        if amount <= 0:
            raise GatewayError("amount must be positive")

        body = await self._request(
            "create",
            "POST",
            TRANSACTIONS_PATH,
            json={
                "buy_order": buy_order,
                "session_id": session_id,
                "amount": amount,
                "return_url": return_url,
            },
        )

        token = body.get("token")
        url = body.get("url")
        if not token or not url:
            raise GatewayError("Webpay create response is missing token or url")

        logger.info(f"💳 Webpay transaction created for {buy_order}", extra={"token": token})
        return GatewayTransaction(token=token, url=url)

    async def commit(self, token: str) -> CommitResponse:
        if not token:
            raise GatewayError("token is required")

        body = await self._request("commit", "PUT", f"{TRANSACTIONS_PATH}/{token}")

        status = body.get("status")
        try:
            response_code = int(body.get("response_code"))
        except (TypeError, ValueError) as e:
            raise GatewayError("Webpay commit response has no valid response_code") from e
        if not isinstance(status, str):
            raise GatewayError("Webpay commit response has no status")

        result = CommitResponse(
            status=status,
            response_code=response_code,
            authorization_code=body.get("authorization_code"),
            payment_type_code=body.get("payment_type_code"),
            transaction_date=_parse_transaction_date(body.get("transaction_date")),
            buy_order=body.get("buy_order"),
            amount=body.get("amount"),
        )
        logger.info(
            f"💳 Webpay commit {mask_token(token)}: {status} / {response_code}",
            extra={"token": token},
        )
        return result
