from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.errors import ServiceError
from schemas.common import ErrorEnvelope

logger = structlog.get_logger(__name__)

GENERIC_ERROR_TEXT = "Something went wrong. Please try again later."


def error_response(
    request: Request,
    status_code: int,
    message: str,
    error_data: Optional[Any] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    body = ErrorEnvelope(
        responseText=message,
        statusCode=status_code,
        timestamp=datetime.now(timezone.utc).isoformat(),
        path=request.url.path,
        errorData=error_data,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message, cause=repr(exc.__cause__))
        return error_response(request, exc.status_code, GENERIC_ERROR_TEXT)
    return error_response(request, exc.status_code, exc.message, exc.error_data)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    failed = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ())),
            "constraint": err.get("type"),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    return error_response(request, status.HTTP_400_BAD_REQUEST, "Validation failed", failed)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, detail=exc.detail)
        return error_response(request, exc.status_code, GENERIC_ERROR_TEXT)
    return error_response(request, exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path)
    return error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_ERROR_TEXT)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
