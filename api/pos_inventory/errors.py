# pos_inventory/errors.py
"""
Domain error taxonomy and its HTTP mapping.

Services raise these; the handlers below turn them into
``{"statusCode": ..., "message": ..., "error": ...}`` so the frontend can show
``message`` as-is.
"""
from __future__ import annotations
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

log = logging.getLogger(__name__)


class InventoryError(Exception):
    status_code = 400
    error = "Bad Request"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(InventoryError):
    """Malformed input, insufficient stock, invalid lifecycle transition."""
    status_code = 400
    error = "Bad Request"


class NotFoundError(InventoryError):
    status_code = 404
    error = "Not Found"


class ConflictError(InventoryError):
    """Duplicate barcode, unit already linked to a sale line."""
    status_code = 409
    error = "Conflict"


def _body(status_code: int, message: str, error: str) -> dict:
    return {"statusCode": status_code, "message": message, "error": error}


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(InventoryError)
    async def inventory_error_handler(request: Request, exc: InventoryError):
        log.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(
            content=_body(exc.status_code, exc.message, exc.error),
            status_code=exc.status_code,
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        # unique barcode / unit link / stock CHECK hit at flush time
        log.warning("%s %s -> integrity error: %s", request.method, request.url.path, exc.orig)
        return JSONResponse(
            content=_body(409, "Conflicting record: the change violates a database constraint", "Conflict"),
            status_code=409,
        )
