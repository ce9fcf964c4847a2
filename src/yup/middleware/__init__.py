"""Middleware registration."""

from fastapi import FastAPI

from yup.config import Settings
from yup.middleware.error_handler import setup_error_handlers
from yup.middleware.logging import setup_logging
from yup.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers and the request id middleware."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
