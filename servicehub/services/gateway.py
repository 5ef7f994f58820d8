"""Payment gateway client (Paystack-compatible REST API).

Only two calls are made from this side: initialising a transaction (which
returns the customer-facing authorization URL) and creating a payout
sub-account. Settlement is reported back asynchronously via the webhook.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from servicehub.config import settings
from servicehub.errors import GatewayRejected, GatewayUnavailable
from servicehub.services.secrets import get_gateway_secret_key

logger = logging.getLogger(__name__)


@dataclass
class TransactionInit:
    """Gateway handle for a freshly initialised transaction."""

    authorization_url: str
    access_code: str
    reference: str


class PaystackGateway:
    def __init__(
        self,
        base_url: str,
        secret_key: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.timeout = timeout
        self.transport = transport

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                resp = await client.post(
                    f"{self.base_url}{path}",
                    headers={
                        "Authorization": f"Bearer {self.secret_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
            except httpx.TimeoutException:
                logger.error("Gateway timed out on %s", path)
                raise GatewayUnavailable("Payment gateway timed out, retry later")
            except httpx.RequestError as e:
                logger.error("Gateway request to %s failed: %s", path, e)
                raise GatewayUnavailable()

        if resp.status_code >= 500 or resp.status_code == 429:
            logger.error("Gateway %s returned %d: %s", path, resp.status_code, resp.text[:500])
            raise GatewayUnavailable()

        try:
            data = resp.json()
        except ValueError:
            logger.error("Gateway %s returned non-JSON body (status %d)", path, resp.status_code)
            raise GatewayUnavailable()

        if resp.status_code >= 400 or not data.get("status"):
            logger.warning("Gateway %s rejected request: %s", path, data.get("message"))
            raise GatewayRejected(f"Payment gateway rejected the request: {data.get('message', 'unknown error')}")

        return data.get("data") or {}

    async def initialize_transaction(
        self,
        *,
        email: str,
        amount: int,
        reference: str,
        callback_url: str,
        metadata: dict[str, Any],
        subaccount: str | None = None,
        transaction_charge: int | None = None,
    ) -> TransactionInit:
        payload: dict[str, Any] = {
            "email": email,
            "amount": amount,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata,
        }
        # Split: the gateway pays the sub-account, the platform keeps transaction_charge.
        if subaccount:
            payload["subaccount"] = subaccount
            payload["bearer"] = "account"
            payload["transaction_charge"] = transaction_charge

        data = await self._post("/transaction/initialize", payload)
        return TransactionInit(
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code", ""),
            reference=data.get("reference", reference),
        )

    async def create_subaccount(
        self,
        *,
        business_name: str,
        bank_code: str,
        account_number: str,
        percentage_charge: float,
    ) -> str:
        data = await self._post(
            "/subaccount",
            {
                "business_name": business_name,
                "settlement_bank": bank_code,
                "account_number": account_number,
                "percentage_charge": percentage_charge,
            },
        )
        return data["subaccount_code"]


def get_gateway() -> PaystackGateway:
    """FastAPI dependency; overridden in tests."""
    return PaystackGateway(
        base_url=settings.gateway_base_url,
        secret_key=get_gateway_secret_key(),
        timeout=settings.gateway_timeout_seconds,
    )
