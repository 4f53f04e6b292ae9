# app/core/exceptions.py
from __future__ import annotations

"""
CinePass — Application Exceptions
=================================
A small, consistent layer on top of FastAPI/Starlette's `HTTPException` that
lets us attach structured metadata and integrate cleanly with our JSON error
shape from `app.core.exception_handlers`.

Key ideas
---------
- One base `AppException` that carries `code`, `reason`, `details`, `extra`.
- Domain exceptions inherit from it and set sane defaults.
- `reason` is a stable, machine-readable string (e.g. `TOKEN_EXPIRED`,
  `ACCESS_LOST`) so clients can route the user (re-auth, purchase, retry).
- Helpers to render a canonical body (`to_problem`) compatible with our handlers.

Usage
-----
    raise PriceMismatchError(expected="9.99", received="5.00")

    raise VideoAccessError.access_lost(user_id=..., film_id=...)
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "AppException",
    "OrderValidationError",
    "PriceMismatchError",
    "DuplicatePurchaseError",
    "OrderNotFoundError",
    "PaymentCreationError",
    "PaymentGatewayError",
    "WebhookPayloadError",
    "EntitlementGrantError",
    "VideoAccessError",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with optional metadata.

    Attributes
    -----------
    status_code : int
        HTTP status code (e.g., 400/401/403/404/409/502).
    message : str
        Human-readable error message (serialized as `detail` as well).
    code : int
        Optional internal/typed error code. Defaults to `status_code`.
    reason : str | None
        Stable machine-readable reason code.
    details : dict | list | str | None
        Machine-readable details (e.g., ids, expected/received values).
    extra : dict | None
        Additional non-sensitive metadata merged into the response body.
    headers : dict | None
        Optional headers (e.g., `{"WWW-Authenticate": "Bearer"}`).
    """

    default_reason: Optional[str] = None

    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: Optional[int] = None,
        reason: Optional[str] = None,
        details: Optional[Any] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code: int = int(code or status_code)
        self.message: str = message
        self.reason: Optional[str] = reason or self.default_reason
        self.details: Optional[Any] = details
        self.extra: Dict[str, Any] = extra or {}

    # ── [Helper] Canonical body used by handlers ───────────────────────────
    def to_problem(self, *, request_id: Optional[str] = None) -> Dict[str, Any]:
        """Return a dict matching our problem-like JSON shape."""
        body: Dict[str, Any] = {
            "error": True,
            "message": self.message,
            "code": self.code,
            "request_id": request_id or "N/A",
        }
        if self.reason:
            body["reason"] = self.reason
        if self.details is not None:
            body["details"] = self.details
        # Avoid leaking obvious secrets if someone passed them in `extra`.
        extra_sanitized = dict(self.extra) if self.extra else {}
        for k in ("token", "authorization", "password", "secret"):
            extra_sanitized.pop(k, None)
        body.update(extra_sanitized)
        return body


# ──────────────────────────────────────────────────────────────
# 🧾 Orders & payments
# ──────────────────────────────────────────────────────────────
class OrderValidationError(AppException):
    """Bad/missing order fields; raised before any row or gateway call."""

    default_reason = "ORDER_INVALID"

    def __init__(self, message: str, *, reason: Optional[str] = None, details: Optional[Any] = None) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            message=message,
            reason=reason,
            details=details,
        )


class PriceMismatchError(OrderValidationError):
    default_reason = "PRICE_MISMATCH"

    def __init__(self, *, expected: str, received: str) -> None:
        super().__init__(
            "Order amount does not match the current price",
            details={"expected": expected, "received": received},
        )


class DuplicatePurchaseError(AppException):
    default_reason = "ALREADY_PURCHASED"

    def __init__(self, *, film_id: Any) -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            message="Film already purchased",
            details={"film_id": str(film_id)},
        )


class OrderNotFoundError(AppException):
    default_reason = "ORDER_NOT_FOUND"

    def __init__(self, order_id: Any = None) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            message="Order not found",
            details={"order_id": str(order_id)} if order_id is not None else None,
        )


class PaymentCreationError(AppException):
    """Gateway failed while creating a payment; the pending order is kept."""

    default_reason = "PAYMENT_CREATION_FAILED"

    def __init__(self, *, order_id: Any = None) -> None:
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            message="Payment creation failed, please try again later",
            details={"order_id": str(order_id)} if order_id is not None else None,
        )


class PaymentGatewayError(AppException):
    """Transport or non-2xx failure talking to the payment provider."""

    default_reason = "GATEWAY_UNAVAILABLE"

    def __init__(self, message: str = "Payment gateway unavailable", *, details: Optional[Any] = None) -> None:
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            message=message,
            details=details,
        )


class WebhookPayloadError(AppException):
    default_reason = "WEBHOOK_REJECTED"

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            message=message,
            details=details,
        )


class EntitlementGrantError(AppException):
    default_reason = "GRANT_FAILED"

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            message=message,
            details=details,
        )


# ──────────────────────────────────────────────────────────────
# 🎬 Streaming / video access
# ──────────────────────────────────────────────────────────────
class VideoAccessError(AppException):
    """
    Streaming-token and entitlement failures with explicit reason codes:

    401: TOKEN_MISSING, TOKEN_INVALID, TOKEN_EXPIRED
    403: FILM_MISMATCH, TOKEN_OWNER_MISMATCH, ACCESS_DENIED, ACCESS_LOST, ORIGIN_FORBIDDEN
    404: TOKEN_NOT_FOUND, FILM_NOT_FOUND, VIDEO_NOT_FOUND
    """

    def __init__(
        self,
        *,
        status_code: int,
        reason: str,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
        super().__init__(
            status_code=status_code,
            message=message,
            reason=reason,
            extra=extra,
            headers=headers,
        )

    # ── 401 ──────────────────────────────────────────────────
    @classmethod
    def token_missing(cls) -> "VideoAccessError":
        return cls(status_code=401, reason="TOKEN_MISSING", message="Video token not provided")

    @classmethod
    def token_invalid(cls) -> "VideoAccessError":
        return cls(status_code=401, reason="TOKEN_INVALID", message="Invalid video token")

    @classmethod
    def token_expired(cls) -> "VideoAccessError":
        return cls(status_code=401, reason="TOKEN_EXPIRED", message="Video token has expired")

    # ── 403 ──────────────────────────────────────────────────
    @classmethod
    def film_mismatch(cls) -> "VideoAccessError":
        return cls(status_code=403, reason="FILM_MISMATCH", message="Token is not valid for this film")

    @classmethod
    def owner_mismatch(cls) -> "VideoAccessError":
        return cls(status_code=403, reason="TOKEN_OWNER_MISMATCH", message="Token belongs to another user")

    @classmethod
    def origin_forbidden(cls) -> "VideoAccessError":
        return cls(
            status_code=403,
            reason="ORIGIN_FORBIDDEN",
            message="Streaming is only available from an allowed origin",
        )

    @classmethod
    def access_denied(cls, *, user_id: Any, film_id: Any) -> "VideoAccessError":
        return cls(
            status_code=403,
            reason="ACCESS_DENIED",
            message="An active subscription or a purchase is required to watch this film",
            extra={"isPaid": True, "userId": str(user_id), "filmId": str(film_id)},
        )

    @classmethod
    def access_lost(cls, *, user_id: Any, film_id: Any) -> "VideoAccessError":
        return cls(
            status_code=403,
            reason="ACCESS_LOST",
            message="Access to this film has been lost",
            extra={"isPaid": True, "userId": str(user_id), "filmId": str(film_id)},
        )

    # ── 404 ──────────────────────────────────────────────────
    @classmethod
    def token_not_found(cls) -> "VideoAccessError":
        return cls(status_code=404, reason="TOKEN_NOT_FOUND", message="Token not found or expired")

    @classmethod
    def film_not_found(cls) -> "VideoAccessError":
        return cls(status_code=404, reason="FILM_NOT_FOUND", message="Film not found")

    @classmethod
    def video_not_found(cls) -> "VideoAccessError":
        return cls(status_code=404, reason="VIDEO_NOT_FOUND", message="Video file not found")
