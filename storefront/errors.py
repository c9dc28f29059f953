import logging
import traceback
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """Operational error: carries the HTTP status and optional field-level errors."""

    def __init__(self, status_code: int, message: str, errors: Optional[List[Any]] = None,
                 is_operational: bool = True):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.errors = errors or []
        self.is_operational = is_operational


def _envelope(request: Request, status_code: int, message: str, errors=None, exc: Exception = None):
    body = {"success": False, "message": message, "errors": errors or []}
    settings = getattr(request.app.state, "settings", None)
    if exc is not None and settings is not None and settings.is_development:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def _duplicate_field(exc: DuplicateKeyError) -> str:
    details = exc.details or {}
    key = details.get("keyValue") or details.get("keyPattern") or {}
    if key:
        return ", ".join(key.keys())
    return "value"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if exc.is_operational:
            logger.warning("Operational error on %s %s: %s", request.method, request.url.path, exc.message)
        else:
            logger.error("Error processing %s %s: %s", request.method, request.url.path, exc.message)
        return _envelope(request, exc.status_code, exc.message, exc.errors, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Resource not found - {request.url.path}"
        else:
            message = str(exc.detail)
        return _envelope(request, exc.status_code, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = []
        for err in exc.errors():
            loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
            errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
        return _envelope(request, 400, "Validation failed", errors)

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        field = _duplicate_field(exc)
        logger.warning("Duplicate key on %s %s: %s", request.method, request.url.path, field)
        return _envelope(request, 409, f"Duplicate value for {field}")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _envelope(request, 500, "Internal server error", exc=exc)
