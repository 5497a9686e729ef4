"""Middleware registration.

Starlette runs middleware in reverse-add order, so CORS is added last to
wrap every response, including the JSON error bodies.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from habitcircle.config import Settings
from habitcircle.middleware.error_handler import setup_error_handlers
from habitcircle.middleware.logging import setup_logging
from habitcircle.middleware.request_id import REQUEST_ID_HEADER, RequestContextMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )
