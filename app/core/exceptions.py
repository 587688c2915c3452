"""
Custom exception classes and error handlers
Provides consistent error responses across the application
"""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


# Category hierarchy errors (transport independent)

class CategoryError(Exception):
    """Base class for category hierarchy errors"""

    error_code = "CATEGORY_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CategoryNotFound(CategoryError):
    """Referenced category id has no corresponding node"""

    error_code = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: Optional[str] = None, message: Optional[str] = None):
        super().__init__(message or f"Category {category_id} not found")
        self.category_id = category_id


class InvalidOperation(CategoryError):
    """Structural rule violated (cycle, non-parentable target, self reference)"""

    error_code = "INVALID_OPERATION"


class CategoryValidationError(CategoryError):
    """Field fails length or format validation"""

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConsistencyFault(CategoryError):
    """Invariant violation detected by the verification pass"""

    error_code = "CONSISTENCY_FAULT"

    def __init__(self, issues: List[Any]):
        super().__init__(f"Category tree has {len(issues)} consistency issue(s)")
        self.issues = issues


# HTTP exceptions

class AppException(HTTPException):
    """Base exception class for the API"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class BadRequestException(AppException):
    """400 Bad Request"""

    def __init__(self, detail: str, error_code: str = "BAD_REQUEST"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code
        )


class NotFoundException(AppException):
    """404 Not Found"""

    def __init__(self, detail: str = "Not found", error_code: str = "NOT_FOUND"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code=error_code
        )


class ConflictException(AppException):
    """409 Conflict"""

    def __init__(self, detail: str, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )


class ValidationException(AppException):
    """422 Unprocessable Entity"""

    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )


class InternalServerException(AppException):
    """500 Internal Server Error"""

    def __init__(
        self,
        detail: str = "Internal server error",
        error_code: str = "INTERNAL_ERROR"
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code=error_code
        )


def to_http_exception(exc: CategoryError) -> AppException:
    """Map a category error onto its HTTP counterpart"""
    if isinstance(exc, CategoryNotFound):
        return NotFoundException(detail=exc.message, error_code=exc.error_code)
    if isinstance(exc, InvalidOperation):
        return BadRequestException(detail=exc.message, error_code=exc.error_code)
    if isinstance(exc, CategoryValidationError):
        return ValidationException(detail=exc.message, error_code=exc.error_code)
    if isinstance(exc, ConsistencyFault):
        return ConflictException(detail=exc.message, error_code=exc.error_code)
    return InternalServerException(detail=exc.message, error_code=exc.error_code)


def _error_response(request: Request, exc: AppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.error_code,
                "message": exc.detail,
                "request_id": getattr(request.state, "request_id", None)
            }
        },
        headers=exc.headers
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render AppException as the standard error envelope"""
    return _error_response(request, exc)


async def category_exception_handler(request: Request, exc: CategoryError) -> JSONResponse:
    """Render category errors raised straight out of the service layer"""
    http_exc = to_http_exception(exc)
    if http_exc.status_code >= 500:
        logger.error(f"Category error on {request.url.path}: {exc.message}")
    return _error_response(request, http_exc)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach error handlers to the application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(CategoryError, category_exception_handler)
