# concisely/exception_handling.py
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
# Starlette's base class also covers the 404/405 raised by the router itself
from starlette.exceptions import HTTPException

from .errors import ConciselyError
from .logging_setup import get_logger
from .responses import error

logger = get_logger("concisely.exceptions")


async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning(
        "HTTP_EXCEPTION",
        extra={"handled": True, "path": str(request.url.path), "status_code": exc.status_code},
    )
    return JSONResponse(error(str(exc.detail)), status_code=exc.status_code)


async def domain_exception_handler(request: Request, exc: ConciselyError):
    logger.warning(
        "DOMAIN_ERROR",
        extra={
            "handled": True,
            "path": str(request.url.path),
            "status_code": exc.status_code,
            "error": type(exc).__name__,
        },
    )
    return JSONResponse(error(exc.message or type(exc).__name__), status_code=exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("VALIDATION_ERROR", extra={"handled": True, "path": str(request.url.path)})
    return JSONResponse(error("Invalid request", jsonable_encoder(exc.errors())), status_code=422)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "UNHANDLED_EXCEPTION",
        extra={"handled": False, "path": str(request.url.path)},
    )
    return JSONResponse(error("Internal Server Error"), status_code=500)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers in one place.
    Call from concisely/main.py after creating the FastAPI app.
    """
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(ConciselyError, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
