"""
Request middleware for the Candidate Search API: request ids, error shaping,
timing and request logging.

Every error response has the same body:

    {"success": false, "timestamp": ..., "request_id": ..., "status_code": ...,
     "error": "<human readable message>", ...extra detail}
"""
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from candidate_search.utils.exceptions import CandidateSearchError, map_to_http_exception
from candidate_search.utils.logging_config import get_logger

logger = get_logger(__name__)

GENERIC_FAILURE = {
    "error": "Internal server error",
    "message": "An unexpected error occurred. Please try again later.",
}


def request_id_of(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def request_context(request: Request, **extra) -> dict:
    """`extra=` payload shared by the request log lines"""
    return {
        "request_id": request_id_of(request),
        "method": request.method,
        "path": request.url.path,
        **extra,
    }


def error_payload(request_id: str, status_code: int, detail: Any) -> dict:
    """Standard error body; `error` is always a human-readable string."""
    if isinstance(detail, dict):
        body = dict(detail)
        body.setdefault("error", body.get("message", "Request failed"))
    else:
        body = {"error": str(detail)}

    return {
        "success": False,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "status_code": status_code,
        **body,
    }


def error_response(request_id: str, status_code: int, detail: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_payload(request_id, status_code, detail),
        headers={"X-Request-ID": request_id},
    )


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """Assigns the request id and turns escaped exceptions into error responses"""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except CandidateSearchError as exc:
            logger.error(
                f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}",
                extra=request_context(request, error_code=exc.error_code, details=exc.details),
            )
            http_exc = map_to_http_exception(exc)
            return error_response(request_id, http_exc.status_code, http_exc.detail)
        except HTTPException as exc:
            logger.warning(
                f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}",
                extra=request_context(request, status_code=exc.status_code),
            )
            return error_response(request_id, exc.status_code, exc.detail)
        except Exception as exc:
            # internals stay in the log, never in the body
            logger.error(
                f"Unhandled {exc.__class__.__name__} on {request.method} {request.url.path}: {exc}",
                extra=request_context(request),
                exc_info=True,
            )
            return error_response(request_id, 500, GENERIC_FAILURE)

        response.headers["X-Request-ID"] = request_id
        return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies (e.g. not JSON) -> 422 in the standard error shape"""
    errors = jsonable_errors(exc)
    logger.warning(
        f"Rejected body on {request.method} {request.url.path}: {len(errors)} validation error(s)",
        extra=request_context(request, validation_errors=errors),
    )
    detail = {"error": "Request data validation failed", "validation_errors": errors}
    return error_response(request_id_of(request), 422, detail)


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request with status and duration; health probes are skipped"""

    async def dispatch(self, request: Request, call_next):
        if getattr(request.state, "health_check", False):
            return await call_next(request)

        started = time.perf_counter()
        client = request.client.host if request.client else "unknown"
        logger.debug(f"{request.method} {request.url} from {client}", extra=request_context(request))

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - started
            logger.error(
                f"{request.method} {request.url.path} failed after {elapsed:.3f}s",
                extra=request_context(request, processing_time=elapsed, exception=str(exc)),
            )
            raise

        elapsed = time.perf_counter() - started
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} in {elapsed:.3f}s",
            extra=request_context(request, status_code=response.status_code, processing_time=elapsed),
        )
        return response


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Adds X-Processing-Time and warns about requests slower than the threshold (seconds)"""

    def __init__(self, app, slow_request_threshold: float = 2.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        if elapsed > self.slow_request_threshold:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {elapsed:.3f}s",
                extra=request_context(request, processing_time=elapsed, threshold=self.slow_request_threshold),
            )

        response.headers["X-Processing-Time"] = f"{elapsed:.3f}"
        return response


class HealthCheckMiddleware(BaseHTTPMiddleware):
    """Flags liveness probes on request.state"""

    HEALTH_PATHS = frozenset({"/", "/health"})

    async def dispatch(self, request: Request, call_next):
        request.state.health_check = request.url.path in self.HEALTH_PATHS
        return await call_next(request)
