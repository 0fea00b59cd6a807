"""Request middleware and shared exception handlers for FastAPI apps.

Provides:
- Request ID generation and propagation (``X-Request-ID``)
- Request timing and lifecycle logging
- A 409 response for optimistic-lock conflicts raised by the ORM

Usage:
    from libs.common.middleware import add_observability_middleware

    app = FastAPI()
    add_observability_middleware(app)
"""
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request ID to the logging context and log each request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get("X-Request-ID"),
            path=request.url.path,
            method=request.method,
        )

        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "Request failed with unhandled exception",
                extra={
                    "extra_fields": {
                        "error": str(e),
                        "duration_ms": round(duration_ms, 2),
                    }
                },
            )
            raise
        finally:
            clear_request_context()

        duration_ms = (time.perf_counter() - start_time) * 1000
        if request.url.path != "/health":
            log = logger.warning if response.status_code >= 400 else logger.info
            log(
                "%s %s -> %s",
                request.method,
                request.url.path,
                response.status_code,
                extra={
                    "extra_fields": {
                        "status_code": response.status_code,
                        "duration_ms": round(duration_ms, 2),
                    }
                },
            )

        response.headers["X-Request-ID"] = request_id
        return response


async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    """Concurrent writers raced on a versioned row; the loser gets 409."""
    logger.warning("Concurrent update rejected on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=409,
        content={
            "detail": "This record was changed by another request. Reload and retry.",
            "code": "CONFLICT",
        },
    )


def add_observability_middleware(app: FastAPI) -> None:
    """
    Add request middleware and shared exception handlers to a FastAPI app.

    Call this after creating the app but before adding routes.
    """
    configure_logging()

    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(StaleDataError, stale_data_handler)

    logger.info("Observability middleware initialized")
