"""Error body mapping: ``{"error": {"code", "message", "context"?}}``."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chat_core.domain.exceptions import BusinessError, InternalError, RateLimitError, ValidationError
from chat_core.infrastructure.logging.logger import logger


def error_response(exc: BusinessError) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimitError) and "limit" in exc.extra:
        headers = {
            "X-RateLimit-Limit": str(exc.extra["limit"]),
            "X-RateLimit-Remaining": str(exc.extra.get("remaining", 0)),
            "X-RateLimit-Reset": str(exc.extra.get("reset", 0)),
            "Retry-After": str(exc.extra.get("reset", 0)),
        }
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        logger.info(
            "api.error",
            extra={"extra": {"path": request.url.path, "code": exc.code, "status": exc.http_status}},
        )
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", ""), "type": e.get("type", "")}
            for e in exc.errors()
        ]
        return error_response(ValidationError(message="Invalid request", errors=errors))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("api.unhandled_error", exc_info=exc, extra={"extra": {"path": request.url.path}})
        return error_response(InternalError(message="Internal server error"))
