from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
import logging

from datamind.utils.exceptions import BaseAppException

logger = logging.getLogger(__name__)

async def error_handler_middleware(request: Request, call_next):
    """Global error handler middleware"""
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        return handle_error(e)

def handle_error(error: Exception) -> JSONResponse:
    """Handle different types of errors"""

    if isinstance(error, BaseAppException):
        if error.status_code >= 500:
            logger.error(f"Application error: {error.message}", exc_info=True)
        else:
            logger.warning(f"Application error: {error.message}")
        return JSONResponse(
            status_code=error.status_code,
            content={
                "error": True,
                "message": error.message,
                "code": error.code,
                "details": error.details
            }
        )

    elif isinstance(error, HTTPException):
        return JSONResponse(
            status_code=error.status_code,
            content={
                "error": True,
                "message": error.detail,
                "code": "HTTP_ERROR"
            }
        )

    elif isinstance(error, RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "code": "VALIDATION_ERROR",
                "details": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
                    for e in error.errors()
                ]
            }
        )

    else:
        logger.error(f"Unexpected error: {str(error)}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": str(error) or "Internal server error",
                "code": "INTERNAL_ERROR"
            }
        )

async def _exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return handle_error(exc)

def setup_error_handlers(app: FastAPI):
    """Route every error through handle_error"""
    app.add_exception_handler(BaseAppException, _exception_handler)
    app.add_exception_handler(HTTPException, _exception_handler)
    app.add_exception_handler(RequestValidationError, _exception_handler)
    app.middleware("http")(error_handler_middleware)
