"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nearcast.domain.errors import NearcastError
from nearcast.obs import logging as obs_logging


def get_request_id(request: Request, default: str = "unknown") -> str:
    rid = getattr(request.state, "request_id", None) or obs_logging.current_request_id()
    return rid or default


def to_http_error(exc: Exception) -> HTTPException:
    """Translate domain exceptions to FastAPI HTTP errors."""
    if isinstance(exc, NearcastError):
        return HTTPException(status_code=exc.status_code, detail=exc.detail)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NearcastError)
    async def domain_exc_handler(request: Request, exc: NearcastError):  # type: ignore[override]
        http_exc = to_http_error(exc)
        payload = {"detail": http_exc.detail, "request_id": get_request_id(request)}
        return JSONResponse(status_code=http_exc.status_code, content=payload)

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        payload = {"detail": exc.detail, "request_id": get_request_id(request)}
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        payload = {
            "detail": "validation_error",
            "errors": jsonable_encoder(exc.errors()),
            "request_id": get_request_id(request),
        }
        return JSONResponse(status_code=422, content=payload)
