"""
Error taxonomy shared by services and routes.

Services raise these; the FastAPI handlers below turn them into
{"success": false, "message": ...} with a generic, non-technical message.
Provider bodies and stack traces go to the log only.
"""
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("errors")

DEFAULT_PUBLIC_MESSAGE = "Sorry, something went wrong. Please try again."


class AppError(Exception):
    status_code: int = 500
    public_message: str = DEFAULT_PUBLIC_MESSAGE
    # 4xx errors describe the caller's own input, so their text is safe to return
    expose_message: bool = False

    def __init__(self, message: str = "", public_message: str | None = None) -> None:
        super().__init__(message or self.public_message)
        if public_message is not None:
            self.public_message = public_message

    @property
    def response_message(self) -> str:
        if self.expose_message:
            return str(self)
        return self.public_message


class ValidationError(AppError):
    status_code = 400
    expose_message = True


class UnauthorizedError(AppError):
    status_code = 401
    expose_message = True


class NotFoundError(AppError):
    status_code = 404
    expose_message = True


class GatewayError(AppError):
    """External provider answered non-2xx or could not be reached."""

    status_code = 500
    public_message = "We couldn't reach our service provider. Please try again."

    def __init__(
        self,
        message: str,
        provider: str = "",
        provider_status: int | None = None,
        body: Any = None,
        public_message: str | None = None,
    ) -> None:
        super().__init__(message, public_message=public_message)
        self.provider = provider
        self.provider_status = provider_status
        self.body = body


class AuthError(AppError):
    """Token exchange with a provider failed."""

    status_code = 500
    public_message = "Payments are temporarily unavailable. Please try again shortly."


class PersistenceError(AppError):
    """Datastore write/verify failed (after retries where applicable)."""

    status_code = 500
    public_message = "We couldn't save your request. Please try again."


class MaintenanceError(AppError):
    status_code = 503
    public_message = "Poster generation is currently unavailable."
    expose_message = True


def is_client_side_gateway_error(exc: BaseException) -> bool:
    """4xx from a provider means a bad request, not an unhealthy provider."""
    return (
        isinstance(exc, GatewayError)
        and exc.provider_status is not None
        and 400 <= exc.provider_status < 500
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        extra = {
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code,
            "error": str(exc),
        }
        if isinstance(exc, GatewayError):
            extra["provider"] = exc.provider
        if exc.status_code >= 500:
            logger.error("request_failed", exc_info=exc, extra=extra)
        else:
            logger.warning("request_rejected", extra=extra)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.response_message},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(
            "request_body_invalid",
            extra={"path": request.url.path, "method": request.method, "error": str(exc.errors())[:500]},
        )
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid request body"},
        )
