from enum import Enum
from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from carebridge.core.logger import get_logger

logger = get_logger("errors")


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class AppError(HTTPException):
    """
    Caller-facing domain error. Subclasses fix the status code and error code;
    the message goes out as ``detail`` so callers can correct the request.
    """

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(self, detail: str, details: Optional[dict[str, Any]] = None):
        super().__init__(status_code=self.status_code_default, detail=detail)
        self.details = details


class InvalidRequestError(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.VALIDATION_ERROR


class NotFoundError(AppError):
    status_code_default = status.HTTP_404_NOT_FOUND
    code = ErrorCode.RESOURCE_NOT_FOUND

    @classmethod
    def resource(cls, name: str) -> "NotFoundError":
        return cls(f"{name} not found")


class ConflictError(AppError):
    status_code_default = status.HTTP_409_CONFLICT
    code = ErrorCode.RESOURCE_CONFLICT


class InternalError(AppError):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCode.INTERNAL_SERVER_ERROR


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code.value} on {request.method} {request.url.path}: {exc.detail}")
    else:
        logger.info(f"{exc.code.value} on {request.method} {request.url.path}: {exc.detail}")

    body: dict[str, Any] = {"detail": exc.detail, "code": exc.code.value}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)
