"""
Error envelope and exception handlers.

Every error leaves the API as ``{"success": false, "message": ..., "errors"?: [...]}``.
"""

import logging
from typing import Any, Dict, List, Optional

from bson.errors import InvalidId
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """HTTPException that can also carry per-field validation errors."""

    def __init__(self, status_code: int, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(status_code=status_code, detail=message)
        self.errors = errors


def error_body(message: str, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def flatten_validation_errors(raw_errors) -> List[Dict[str, Any]]:
    """pydantic error list -> [{field, message}]"""
    flattened = []
    for err in raw_errors:
        # loc is ("body" | "query" | "path" | "form", field, ...)
        location = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        flattened.append({"field": ".".join(location), "message": err.get("msg", "Invalid value")})
    return flattened


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route not found: {request.url.path}"
    else:
        message = str(exc.detail)
    errors = getattr(exc, "errors", None)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message, errors),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=error_body("Validation failed", flatten_validation_errors(exc.errors())),
    )


async def invalid_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(status_code=400, content=error_body("Invalid id"))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"💥 Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(InvalidId, invalid_id_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
