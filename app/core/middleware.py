"""
HTTP middleware stack
Request ids, access logging, last-resort error envelope and CORS
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable
import logging
import time
import uuid

from .config import settings

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id, reusing the caller's when supplied"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log line per request with its duration"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        request_id = getattr(request.state, "request_id", "-")

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            logger.error(f"{request.method} {request.url.path} failed after {elapsed:.3f}s [{request_id}]: {str(e)}")
            raise

        elapsed = time.perf_counter() - started
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} in {elapsed:.3f}s [{request_id}]")
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turn exceptions no handler claimed into a 500 error envelope"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(f"Unhandled error on {request.url.path}: {str(e)}")

            message = str(e) if settings.DEBUG else "An unexpected error occurred"
            return JSONResponse(
                status_code=500,
                content={
                    "error": {
                        "code": "INTERNAL_ERROR",
                        "message": message,
                        "request_id": getattr(request.state, "request_id", None)
                    }
                }
            )


def setup_middleware(app: FastAPI) -> None:
    """Install middleware; the last one added is the outermost"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
