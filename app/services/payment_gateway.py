# app/services/payment_gateway.py
from __future__ import annotations

"""
CinePass — Payment Gateway Adapter
==================================
Thin async client for the payment provider's REST API (YooKassa v3).

Contract
--------
    create_payment(*, amount, currency, return_url, metadata, description, idempotence_key)
        -> GatewayPayment(id, status, confirmation_url, raw)
    get_payment(payment_id) -> GatewayPayment

Transport or non-2xx failures raise `PaymentGatewayError`; callers decide
whether that is a retryable 502 (poll) or a generic "payment creation failed"
(checkout).

Wiring
------
The app lifespan stores the configured gateway on `app.state.payment_gateway`.
Handlers get it through `get_payment_gateway`; when the provider is not
configured they receive `UnconfiguredGateway`, whose calls fail with
`PaymentGatewayError` instead of crashing at import time.
"""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Protocol

import httpx
from fastapi import Request

from app.core.config import settings
from app.core.exceptions import PaymentGatewayError

logger = logging.getLogger("payments.gateway")

_CENTS = Decimal("0.01")


# ──────────────────────────────────────────────────────────────
# 📦 Types
# ──────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class GatewayPayment:
    id: str
    status: str
    confirmation_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    async def create_payment(
        self,
        *,
        amount: Decimal,
        currency: str,
        return_url: str,
        metadata: Dict[str, Any],
        description: str,
        idempotence_key: str,
    ) -> GatewayPayment: ...

    async def get_payment(self, payment_id: str) -> GatewayPayment: ...


# ──────────────────────────────────────────────────────────────
# 💳 YooKassa
# ──────────────────────────────────────────────────────────────
class YooKassaGateway:
    """HTTP Basic auth (`shop_id:secret_key`) against `{base_url}/payments`."""

    def __init__(
        self,
        *,
        shop_id: str,
        secret_key: str,
        base_url: str = "https://api.yookassa.ru/v3",
        timeout: float = 20.0,
        payment_method: str = "bank_card",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.shop_id = shop_id
        self._secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.payment_method = payment_method
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(self.shop_id, self._secret_key),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def create_payment(
        self,
        *,
        amount: Decimal,
        currency: str,
        return_url: str,
        metadata: Dict[str, Any],
        description: str,
        idempotence_key: str,
    ) -> GatewayPayment:
        body = {
            "amount": {"value": str(Decimal(amount).quantize(_CENTS, rounding=ROUND_HALF_UP)), "currency": currency},
            "payment_method_data": {"type": self.payment_method},
            "capture": True,
            "confirmation": {"type": "redirect", "return_url": return_url},
            "description": description[:128],
            "metadata": metadata,
        }
        data = await self._request("POST", "/payments", json=body, headers={"Idempotence-Key": idempotence_key})
        return self._parse(data)

    async def get_payment(self, payment_id: str) -> GatewayPayment:
        data = await self._request("GET", f"/payments/{payment_id}")
        return self._parse(data)

    # ── internals ────────────────────────────────────────────
    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Gateway transport error | %s %s | %r", method, path, exc)
            raise PaymentGatewayError(details={"error": type(exc).__name__}) from exc

        if resp.status_code >= 400:
            logger.error("Gateway rejected request | %s %s | status=%s", method, path, resp.status_code)
            raise PaymentGatewayError(
                "Payment provider rejected the request",
                details={"status": resp.status_code},
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise PaymentGatewayError("Malformed payment provider response") from exc

    @staticmethod
    def _parse(data: Dict[str, Any]) -> GatewayPayment:
        payment_id = data.get("id")
        status = data.get("status")
        if not payment_id or not status:
            raise PaymentGatewayError("Malformed payment provider response")
        confirmation = data.get("confirmation") or {}
        return GatewayPayment(
            id=str(payment_id),
            status=str(status),
            confirmation_url=confirmation.get("confirmation_url"),
            raw=data,
        )


class UnconfiguredGateway:
    """Stand-in used when no provider credentials are configured."""

    async def create_payment(self, **_: Any) -> GatewayPayment:
        raise PaymentGatewayError("Payment gateway is not configured")

    async def get_payment(self, payment_id: str) -> GatewayPayment:
        raise PaymentGatewayError("Payment gateway is not configured")


# ──────────────────────────────────────────────────────────────
# 🔧 Wiring
# ──────────────────────────────────────────────────────────────
def build_payment_gateway() -> Optional[YooKassaGateway]:
    if not settings.payment_gateway_configured:
        logger.warning("Payment gateway credentials not configured; checkout is disabled")
        return None
    return YooKassaGateway(
        shop_id=str(settings.PAYMENT_SHOP_ID),
        secret_key=settings.PAYMENT_SECRET_KEY.get_secret_value(),
        base_url=settings.PAYMENT_API_BASE,
        timeout=settings.PAYMENT_TIMEOUT_SECONDS,
        payment_method=settings.PAYMENT_METHOD,
    )


def get_payment_gateway(request: Request) -> PaymentGateway:
    """FastAPI dependency: the app's gateway (tests override it)."""
    return getattr(request.app.state, "payment_gateway", None) or UnconfiguredGateway()


__all__ = [
    "GatewayPayment",
    "PaymentGateway",
    "YooKassaGateway",
    "UnconfiguredGateway",
    "build_payment_gateway",
    "get_payment_gateway",
]
