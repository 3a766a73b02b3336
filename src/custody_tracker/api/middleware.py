"""Custom middleware and exception handlers for API request/response processing."""

from typing import Callable, Dict, Optional, Type

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..domain.errors import (
    ConflictError,
    CustodyError,
    InvalidDestinationError,
    InvalidPayloadError,
    NoOpMoveError,
    NotFoundError,
    PersistenceError,
)
from ..utils.logging_config import get_logger, log_exception

logger = get_logger("api")

ERROR_STATUS: Dict[Type[CustodyError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidDestinationError: status.HTTP_400_BAD_REQUEST,
    NoOpMoveError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_409_CONFLICT,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    InvalidPayloadError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}

DEFAULT_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    409: "Conflict",
    413: "Payload Too Large",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


class ProblemDetailsException(HTTPException):
    """Enhanced HTTPException that includes RFC 9457 Problem Details."""

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        **extra_fields,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.title = title
        self.type_uri = type_uri or f"https://httpstatuses.com/{status_code}"
        self.instance = instance
        self.extra_fields = extra_fields


def problem_response(
    status_code: int,
    title: str,
    detail: Optional[str] = None,
    type_uri: Optional[str] = None,
    instance: Optional[str] = None,
    **extra_fields,
) -> JSONResponse:
    """Create a JSON response in RFC 9457 Problem Details format."""
    problem = {
        "type": type_uri or f"https://httpstatuses.com/{status_code}",
        "title": title,
        "status": status_code,
    }

    if detail:
        problem["detail"] = detail
    if instance:
        problem["instance"] = instance

    problem.update(extra_fields)

    return JSONResponse(
        status_code=status_code,
        content=problem,
        media_type="application/problem+json",
    )


def custody_error_response(request: Request, exc: CustodyError) -> JSONResponse:
    """Map a domain error onto its HTTP status and Problem Details body."""
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)

    if status_code >= 500:
        # Store failures stay opaque to clients
        log_exception("api", exc, {"path": request.url.path, "method": request.method})
        return problem_response(
            status_code=status_code,
            title=DEFAULT_TITLES[500],
            detail="An unexpected error occurred",
            instance=str(request.url),
            code=exc.code,
        )

    logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
    return problem_response(
        status_code=status_code,
        title=DEFAULT_TITLES.get(status_code, "HTTP Error"),
        detail=exc.message,
        instance=str(request.url),
        code=exc.code,
        **exc.detail,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Render domain, HTTP and validation errors as Problem Details."""

    @app.exception_handler(CustodyError)
    async def handle_custody_error(request: Request, exc: CustodyError):
        return custody_error_response(request, exc)

    @app.exception_handler(ProblemDetailsException)
    async def handle_problem_details(request: Request, exc: ProblemDetailsException):
        return problem_response(
            status_code=exc.status_code,
            title=exc.title,
            detail=exc.detail,
            type_uri=exc.type_uri,
            instance=exc.instance or str(request.url),
            **exc.extra_fields,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return problem_response(
            status_code=exc.status_code,
            title=DEFAULT_TITLES.get(exc.status_code, "HTTP Error"),
            detail=str(exc.detail) if exc.detail else None,
            instance=str(request.url),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return problem_response(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            title="Validation Error",
            detail="Request validation failed",
            instance=str(request.url),
            code=InvalidPayloadError.code,
            errors=[
                {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
                for error in exc.errors()
            ],
        )


class ProblemDetailsMiddleware(BaseHTTPMiddleware):
    """Last-resort conversion of unhandled exceptions to Problem Details."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except ProblemDetailsException as exc:
            return problem_response(
                status_code=exc.status_code,
                title=exc.title,
                detail=exc.detail,
                type_uri=exc.type_uri,
                instance=exc.instance or str(request.url),
                **exc.extra_fields,
            )
        except CustodyError as exc:
            return custody_error_response(request, exc)
        except Exception as exc:
            log_exception("api", exc, {"path": request.url.path, "method": request.method})
            return problem_response(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                title="Internal Server Error",
                detail="An unexpected error occurred",
                instance=str(request.url),
            )


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce request size limits."""

    def __init__(self, app: ASGIApp, max_request_bytes: int = 64 * 1024):
        super().__init__(app)
        self.max_request_bytes = max_request_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                length = int(content_length)
            except ValueError:
                return problem_response(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    title="Bad Request",
                    detail="Invalid Content-Length header",
                    instance=str(request.url),
                )

            if length > self.max_request_bytes:
                return problem_response(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    title="Request Entity Too Large",
                    detail=f"Request size {length} bytes exceeds limit of {self.max_request_bytes} bytes",
                    type_uri="https://datatracker.ietf.org/doc/html/rfc9110#section-15.5.14",
                    instance=str(request.url),
                )

        return await call_next(request)
