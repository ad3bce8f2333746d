# app/api/errors.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.domain.errors import (
    ConcurrencyConflict,
    NotFoundOrForbidden,
    TransientIOError,
    ValidationError,
)
from app.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_CODES = {
    ValidationError: 400,
    NotFoundOrForbidden: 404,
    ConcurrencyConflict: 409,
    TransientIOError: 503,
}


def register_exception_handlers(app: FastAPI):
    def handler(request: Request, exc: Exception):
        status_code = next(code for exc_type, code in STATUS_CODES.items() if isinstance(exc, exc_type))
        if status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    for exc_type in STATUS_CODES:
        app.add_exception_handler(exc_type, handler)
