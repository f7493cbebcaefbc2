"""Middleware registration."""

from fastapi import FastAPI

from stepcoin.config import Settings
from stepcoin.middleware.cors import setup_cors
from stepcoin.middleware.error_handler import setup_error_handlers
from stepcoin.middleware.logging import setup_logging
from stepcoin.middleware.rate_limit import RateLimitMiddleware
from stepcoin.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers, and middleware.

    Starlette runs middleware in reverse-add order (last added = outermost):
    CORS -> request id -> rate limit -> routes. Request ids are therefore bound
    before a 429 is produced, and CORS headers wrap every response.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)  # added last → outermost → wraps 429 responses
