"""Custom middleware and exception handlers for API request/response processing."""

from typing import Any, Callable, Dict, Mapping, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..core.errors import DomainError, ErrorCode, message_for
from ..utils.logging_config import get_logger, log_exception

logger = get_logger("api")

MAX_REQUEST_BYTES = 64 * 1024

CORS_ALLOW_METHODS = ["GET", "HEAD", "PUT", "POST", "DELETE", "PATCH"]
CORS_ALLOW_HEADERS = ["Content-Type", "Authorization"]
CORS_MAX_AGE = 600

STATUS_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    413: "Payload Too Large",
    422: "Unprocessable Entity",
    429: "Too Many Requests",
    500: "Internal Server Error",
    503: "Service Unavailable",
}

STATUS_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.NOT_FOUND,
    413: ErrorCode.PAYLOAD_TOO_LARGE,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMITED,
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
        code: Optional[ErrorCode] = None,
        headers: Optional[Dict[str, str]] = None,
        **extra_fields,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.title = title
        self.type_uri = type_uri or f"https://httpstatuses.com/{status_code}"
        self.instance = instance
        self.code = code or STATUS_CODES.get(status_code, ErrorCode.UNKNOWN_ERROR)
        self.extra_fields = extra_fields


def default_title(status_code: int) -> str:
    """Get default title for HTTP status codes."""
    return STATUS_TITLES.get(status_code, "HTTP Error")


def problem_response(
    status_code: int,
    code: ErrorCode,
    detail: Optional[str] = None,
    title: Optional[str] = None,
    type_uri: Optional[str] = None,
    instance: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
    **extra_fields: Any,
) -> JSONResponse:
    """Create a JSON response in RFC 9457 Problem Details format."""
    problem = {
        "type": type_uri or f"https://httpstatuses.com/{status_code}",
        "title": title or default_title(status_code),
        "status": status_code,
        "code": code.value,
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
        headers=dict(headers) if headers else None,
    )


def _validation_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        log_exception("api", exc, {"path": request.url.path})
    return problem_response(
        status_code=exc.status_code,
        code=exc.code,
        detail=exc.detail,
        instance=request.url.path,
        **exc.extra_fields,
    )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    return problem_response(
        status_code=exc.status_code,
        code=exc.code,
        detail=exc.detail,
        title=exc.title,
        type_uri=exc.type_uri,
        instance=exc.instance or request.url.path,
        headers=exc.headers,
        **exc.extra_fields,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = STATUS_CODES.get(exc.status_code)
    if code is not None:
        detail = message_for(code)
    else:
        code = ErrorCode.UNKNOWN_ERROR
        detail = exc.detail if isinstance(exc.detail, str) else None
    return problem_response(
        status_code=exc.status_code,
        code=code,
        detail=detail,
        instance=request.url.path,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = _validation_errors(exc)
    detail = errors[0]["msg"] if errors else message_for(ErrorCode.VALIDATION_ERROR)
    return problem_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code=ErrorCode.VALIDATION_ERROR,
        detail=detail,
        title="Validation Error",
        instance=request.url.path,
        errors=errors,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log_exception("api", exc, {"method": request.method, "path": request.url.path})
    return problem_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=ErrorCode.UNKNOWN_ERROR,
        detail=message_for(ErrorCode.UNKNOWN_ERROR),
        instance=request.url.path,
    )


def register_problem_handlers(app: FastAPI) -> None:
    """Render every error raised by a route as application/problem+json."""
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


class ProblemDetailsMiddleware(BaseHTTPMiddleware):
    """Convert exceptions raised by inner middleware to Problem Details."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except ProblemDetailsException as exc:
            return await problem_details_handler(request, exc)
        except DomainError as exc:
            return await domain_error_handler(request, exc)
        except StarletteHTTPException as exc:
            return await http_exception_handler(request, exc)
        except Exception as exc:
            return await unhandled_exception_handler(request, exc)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce request size limits."""

    def __init__(self, app: ASGIApp, max_bytes: int = MAX_REQUEST_BYTES):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                length = int(content_length)
            except ValueError:
                raise ProblemDetailsException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    title="Bad Request",
                    detail="Invalid Content-Length header",
                    code=ErrorCode.VALIDATION_ERROR,
                )

            if length > self.max_bytes:
                logger.warning(
                    f"Rejected {request.method} {request.url.path}: {length} bytes"
                )
                raise ProblemDetailsException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    title="Request Entity Too Large",
                    detail=message_for(ErrorCode.PAYLOAD_TOO_LARGE),
                    type_uri="https://datatracker.ietf.org/doc/html/rfc9110#section-15.5.14",
                    code=ErrorCode.PAYLOAD_TOO_LARGE,
                    limit=self.max_bytes,
                )

        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    def __init__(self, app: ASGIApp, include_hsts: bool = False):
        super().__init__(app)
        self.include_hsts = include_hsts

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # JSON API: no content to frame or script
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"
        )

        if self.include_hsts and request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


def configure_cors(app: FastAPI, frontend_url: str) -> None:
    """
    Allow the configured front end, and only it, to call the API with credentials.

    A request whose Origin equals ``frontend_url`` gets that origin echoed in
    Access-Control-Allow-Origin. Any other origin gets no allow-origin header,
    and its preflight is refused.
    """
    origin = frontend_url.rstrip("/")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin],
        allow_credentials=True,
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        max_age=CORS_MAX_AGE,
    )
    logger.info(f"CORS enabled for origin {origin}")
