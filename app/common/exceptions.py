"""
Typed errors for the back-office engine and their HTTP translation.

Services and helpers raise these exceptions and never ``HTTPException``.
``register_exception_handlers`` is the single place where they are turned
into the public error envelope::

    {"success": false, "error": "<CODE>", "message": "<text>"}
"""
from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class EngineError(Exception):
    """Base class. ``code`` is stable and machine readable."""

    code = "UNEXPECTED"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Error inesperado"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class UnauthenticatedError(EngineError):
    code = "UNAUTHENTICATED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class ForbiddenError(EngineError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Acceso denegado"


class NotFoundError(EngineError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Recurso no encontrado"


class InvalidArgumentError(EngineError):
    code = "INVALID_ARGUMENT"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Datos inválidos"


class InvalidAmountError(InvalidArgumentError):
    code = "INVALID_AMOUNT"
    default_message = "El monto debe ser mayor a 0"


class ConflictError(EngineError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_message = "El registro fue modificado por otra operación, intente de nuevo"


class UnexpectedError(EngineError):
    pass


def error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": code, "message": message}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """Map typed errors, request validation errors and anything else to the envelope."""

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthenticatedError) else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message),
            headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(InvalidArgumentError.code, "Datos de entrada inválidos", {"errors": errors})
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(UnexpectedError.code, UnexpectedError.default_message)
        )
