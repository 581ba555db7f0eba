"""Domain errors raised by the service layer and their HTTP rendering."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


class BookstoreError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidOperationError(BookstoreError):
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(BookstoreError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(BookstoreError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(BookstoreError):
    status_code = status.HTTP_409_CONFLICT


class PayloadTooLargeError(BookstoreError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


async def bookstore_error_handler(request: Request, exc: BookstoreError) -> JSONResponse:
    logger.info(
        "request_rejected",
        path=request.url.path,
        status=exc.status_code,
        reason=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookstoreError, bookstore_error_handler)
