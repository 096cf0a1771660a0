"""
Error taxonomy for the Storefront service and the handlers that turn it into
structured JSON responses.

Every response produced here has the shape ``{"message": str, "code": str}``,
plus ``validation`` when field-level detail is available. Stack traces are
logged server-side only.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "SERVER_ERROR"
    message = "Server error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        validation: Optional[List[Dict[str, Any]]] = None,
    ):
        self.message = message or self.message
        self.code = code or self.code
        self.validation = validation
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message, "code": self.code}
        if self.validation:
            body["validation"] = self.validation
        return body


class InvalidPayload(StoreError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    message = "Validation failed"


class InvalidOrderPayload(InvalidPayload):
    code = "INVALID_ORDER_PAYLOAD"
    message = "Invalid order payload"


class MissingFields(InvalidPayload):
    code = "MISSING_FIELDS"
    message = "Missing required fields"


class AlreadyExists(InvalidPayload):
    code = "ALREADY_EXISTS"
    message = "Already exists"


class NotFound(StoreError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    message = "Not found"


class ConfigMissing(StoreError):
    code = "CONFIG_MISSING"
    message = "Server configuration missing"


class PersistenceFailure(StoreError):
    code = "PERSISTENCE_FAILURE"
    message = "Database operation failed"


class SaleWriteFailed(PersistenceFailure):
    code = "SALE_WRITE_FAILED"
    message = "Failed to save sale"


class GatewayError(StoreError):
    code = "GATEWAY_ERROR"
    message = "Payment gateway request failed"


HTTP_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}


def validation_details(errors) -> List[Dict[str, Any]]:
    """
    Flatten pydantic error dicts into ``{field, kind, message, value}`` entries.

    The ``body`` prefix FastAPI adds to request-body locations is dropped so
    that field names read like the payload keys.
    """
    details = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        value = err.get("input")
        if not isinstance(value, (str, int, float, bool, type(None))):
            value = None
        details.append({
            "field": ".".join(loc) or None,
            "kind": err.get("type"),
            "message": err.get("msg"),
            "value": value,
        })
    return details


def from_validation_error(exc: ValidationError, error_cls=InvalidPayload) -> InvalidPayload:
    return error_cls(validation=validation_details(exc.errors()))


def register_exception_handlers(app: FastAPI) -> None:
    """
    Attach the error handlers to the application.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = InvalidPayload(validation=validation_details(exc.errors()))
        logger.warning(f"{request.method} {request.url.path} rejected: {error.validation}")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        content = {
            "message": str(exc.detail),
            "code": HTTP_CODES.get(exc.status_code, f"HTTP_{exc.status_code}"),
        }
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning(f"{request.method} {request.url.path} constraint violation: {exc.orig}")
        error = AlreadyExists()
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(SQLAlchemyError)
    async def persistence_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception(f"{request.method} {request.url.path} database error")
        error = PersistenceFailure()
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
