"""CinePass API v1.

The mounted router lives in `app.api.v1.routers`:

    from app.api.v1.routers import router as api_v1_router

Tests monkeypatch route modules by dotted path (for example
`app.api.v1.routers.payments.handle_webhook`), so nothing here rebinds the
`routers` name.
"""

__all__: list[str] = []
