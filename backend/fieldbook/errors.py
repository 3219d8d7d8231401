# backend/fieldbook/errors.py
"""
Booking errors with stable codes.

Raised by the scheduling services, rendered by register_error_handlers
as {"ok": false, "error": code}.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BookingError(Exception):
    status_code = 500

    def __init__(self, code: str, message: Optional[str] = None, details: Any = None):
        super().__init__(code)
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"ok": False, "error": self.code}
        if self.message:
            body["message"] = self.message
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationFailed(BookingError):
    """Client-fixable input problem (bad time, outside hours/window/area)."""
    status_code = 400


class NotFound(BookingError):
    status_code = 404


class CapacityExceeded(BookingError):
    """day_full / slot_full: expected, the client should pick another slot."""
    status_code = 409


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info(f"{request.method} {request.url.path} -> 400 invalid_payload")
        error = ValidationFailed("invalid_payload", details=jsonable_encoder(exc.errors()))
        return JSONResponse(error.to_dict(), status_code=error.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"{request.method} {request.url.path} failed")
        return JSONResponse(BookingError("server_error").to_dict(), status_code=500)
