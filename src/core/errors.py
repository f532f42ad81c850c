from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorEnvelope(BaseModel):
    error: ErrorDetail


class AppError(Exception):
    """Error the API surfaces to callers as ``{"error": {...}}``."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details

    def to_envelope(self) -> ErrorEnvelope:
        return ErrorEnvelope(
            error=ErrorDetail(code=self.code, message=self.message, details=self.details)
        )


class NotFoundError(AppError):
    def __init__(
        self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(code="not_found", message=message, status_code=404, details=details)


class BadRequestError(AppError):
    def __init__(
        self, message: str = "Bad request", details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(code="bad_request", message=message, status_code=400, details=details)


def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info("Request %s failed code=%s message=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope().model_dump())


def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    envelope = ErrorEnvelope(
        error=ErrorDetail(
            code="validation_error",
            message="Validation error",
            details={"errors": exc.errors()},
        )
    )
    return JSONResponse(status_code=422, content=envelope.model_dump())
