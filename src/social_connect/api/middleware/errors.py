"""Error handlers for the Social Connect API.

Renders every SocialConnectError subclass through its own error_type and
status_code, so routes never translate domain errors themselves.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException
from structlog import get_logger

from social_connect.exceptions import ErrorType, SocialConnectError


logger = get_logger(__name__)


def _build_error_response(
    status_code: int, error_type: str, message: str
) -> JSONResponse:
    """Build standardized error response."""
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": message}},
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Setup error handlers for the FastAPI application."""

    @app.exception_handler(SocialConnectError)
    async def social_connect_error_handler(
        request: Request, exc: SocialConnectError
    ) -> JSONResponse:
        """Handle all SocialConnectError subclasses using their built-in attributes."""
        log_kwargs = {
            "error_type": str(exc.error_type),
            "error_message": exc.message,
            "status_code": exc.status_code,
            "request_method": request.method,
            "request_url": str(request.url.path),
        }
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("request_failed", **log_kwargs)
        else:
            logger.warning("request_rejected", **log_kwargs)

        return _build_error_response(exc.status_code, str(exc.error_type), exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request body/query validation failures."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid request")
        if location:
            message = f"{location}: {message}"
        logger.debug(
            "request_validation_failed",
            request_url=str(request.url.path),
            error_count=len(errors),
        )
        return _build_error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY, str(ErrorType.INVALID_REQUEST), message
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle FastAPI/Starlette HTTP exceptions."""
        log_kwargs = {
            "error_type": f"http_{exc.status_code}",
            "error_message": exc.detail,
            "status_code": exc.status_code,
            "request_method": request.method,
            "request_url": str(request.url.path),
        }
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            logger.debug("http_not_found", **log_kwargs)
        else:
            logger.warning("http_exception", **log_kwargs)

        return _build_error_response(exc.status_code, "http_error", str(exc.detail))

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle all other unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            error_message=str(exc),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_method=request.method,
            request_url=str(request.url.path),
            exc_info=True,
        )
        return _build_error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            str(ErrorType.INTERNAL_SERVER),
            "An internal server error occurred",
        )
