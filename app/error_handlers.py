"""
Global exception handlers.

- ``AppError`` -> its own status and the uniform envelope.
- ``RequestValidationError`` -> 400 with field-level details.
- anything else -> 500 without internal details.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.errors import AppError, DatastoreFailure

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if isinstance(exc, DatastoreFailure):
            logger.error(
                "Datastore failure during %s on %s: %s",
                exc.operation, request.url.path, exc.cause,
            )
        else:
            logger.info("%s on %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.http_status,
            content=jsonable_encoder(exc.to_response()),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder({
                "success": False,
                "data": None,
                "message": "Request validation failed",
                "error": {
                    "code": "VALIDATION_ERROR",
                    "details": [
                        {
                            "field": ".".join(str(part) for part in err.get("loc", [])),
                            "message": err.get("msg", ""),
                        }
                        for err in exc.errors()
                    ],
                },
            }),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "data": None,
                "message": "An unexpected error occurred",
                "error": {"code": "INTERNAL_ERROR"},
            },
        )
