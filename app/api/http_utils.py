from __future__ import annotations

"""
CinePass · HTTP Utilities
=========================

Shared helpers for API routers:

- No-store JSON helper for token/payment responses
- Webhook HMAC verification (rotating secrets)
- Frontend Origin/Referer allow-list check for the streaming endpoint

All helpers are side-effect free; they return values and never raise.
"""

import hashlib
import hmac
from typing import Any, Iterable, Optional, Sequence

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

__all__ = [
    "json_no_store",
    "verify_webhook_signature",
    "origin_allowed",
]


# ─────────────────────────────────────────────────────────────────────────────
# 🧾 JSON helpers
# ─────────────────────────────────────────────────────────────────────────────
def json_no_store(
    payload: Any,
    status_code: int = 200,
    *,
    response: Optional[Response] = None,
) -> JSONResponse:
    """
    Return a JSON response with strict `no-store` caching.

    Pydantic models, UUIDs, Decimals and datetimes are encoded with FastAPI's
    `jsonable_encoder`. Rate-limit headers set on an upstream `response` are
    carried over.
    """
    resp = JSONResponse(content=jsonable_encoder(payload), status_code=status_code)
    resp.headers["Cache-Control"] = "no-store"
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"

    if response is not None:
        for key, value in response.headers.items():
            if key.lower().startswith("x-ratelimit") or key.lower() == "retry-after":
                resp.headers[key] = value
    return resp


# ─────────────────────────────────────────────────────────────────────────────
# 🔏 Webhook signature
# ─────────────────────────────────────────────────────────────────────────────
def verify_webhook_signature(
    body: bytes,
    signature: Optional[str],
    secrets: Sequence[str],
    *,
    scheme: str = "sha256=",
) -> bool:
    """Verify an HMAC-SHA256 signature of the raw request body.

    • No secrets configured → True (verification disabled).
    • Header missing or without the `sha256=` prefix → False.
    • Any secret matching (rotation) → True; constant-time compare.
    """
    if not secrets:
        return True
    if not signature or not signature.startswith(scheme):
        return False

    provided = signature[len(scheme):].strip().lower()
    for secret in secrets:
        calc = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        if hmac.compare_digest(calc, provided):
            return True
    return False


# ─────────────────────────────────────────────────────────────────────────────
# 🎬 Origin allow-list
# ─────────────────────────────────────────────────────────────────────────────
def origin_allowed(request: Request, allowed: Iterable[str]) -> bool:
    """True when `Origin` (or, failing that, `Referer`) starts with an allowed origin."""
    source = request.headers.get("origin") or request.headers.get("referer")
    if not source:
        return False
    source = source.rstrip("/")
    for origin in allowed:
        origin = origin.rstrip("/")
        if origin and (source == origin or source.startswith(origin + "/")):
            return True
    return False
