"""Structured error responses: every failure renders as {"success": false, "error": ...}."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from zona_fiscal.core.security import log_security_event

logger = logging.getLogger("zona_fiscal.errors")

# Validation failures on these paths are recorded as security events
_SENSITIVE_PATHS = ("/lgpd/delete-account", "/lgpd/submit-reactivation")


class AppError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Erro interno do servidor"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Não autorizado"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Acesso negado"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Não encontrado"


class InvalidRequest(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Requisição inválida"


class InternalError(AppError):
    pass


class AuthRejected(Exception):
    """Raised by auth dependencies; carries the gate's ready-to-send response."""

    def __init__(self, response: JSONResponse):
        self.response = response
        super().__init__(response.status_code)


def error_response(
    message: str,
    status_code: int,
    request: Request | None = None,
    details: list | None = None,
) -> JSONResponse:
    content: dict = {"success": False, "error": message}
    if details:
        content["details"] = details
    if request is not None:
        content["request_id"] = getattr(request.state, "request_id", None)
    return JSONResponse(status_code=status_code, content=content)


def _validation_messages(exc: RequestValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return messages


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AuthRejected)
    async def auth_rejected_handler(request: Request, exc: AuthRejected):
        return exc.response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if isinstance(exc, InternalError):
            logger.error("Internal error on %s: %s", request.url.path, exc.message)
            return error_response(AppError.default_message, exc.status_code, request)
        return error_response(exc.message, exc.status_code, request)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(str(exc.detail), exc.status_code, request)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        messages = _validation_messages(exc)
        if request.url.path in _SENSITIVE_PATHS:
            log_security_event("Malformed request rejected", {"errors": messages}, request)
        return error_response(
            "Dados inválidos", status.HTTP_400_BAD_REQUEST, request, details=messages
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(
            "Erro interno do servidor", status.HTTP_500_INTERNAL_SERVER_ERROR, request
        )
