"""
Error handling for the HTTP surface.

Two layers:
- register_exception_handlers: maps RiskRegisterError (and request-shape
  validation failures) to the structured ErrorResponse with its stable code
- ErrorHandlerMiddleware: outermost catch-all for anything unexpected.
  NEVER leaks stack traces or DB errors; every error gets an error_id for
  correlation with server logs.
"""

import traceback
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from riskregister.config import settings
from riskregister.errors import RiskRegisterError, ValidationError

logger = structlog.get_logger(__name__)


def _request_id(request: Request):
    return getattr(request.state, "request_id", None)


async def handle_register_error(request: Request, exc: RiskRegisterError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_failed",
        kind=exc.kind,
        code=exc.code.value,
        message=exc.message,
        path=request.url.path,
    )
    body = exc.to_response(request_id=_request_id(request))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or None
    error = ValidationError(
        first.get("msg", "invalid request"),
        field=field,
        details={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
    )
    return await handle_register_error(request, error)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RiskRegisterError, handle_register_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Outermost middleware: catches everything the handlers did not.

    Returns:
    {
      "error": "human-readable message",
      "error_id": "uuid for log correlation",
      "status": 500
    }
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = str(uuid.uuid4())
            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )
            body: dict = {
                "error": "An internal error occurred. Please try again later.",
                "error_id": error_id,
                "status": 500,
            }
            if settings.debug:
                body["debug_hint"] = type(exc).__name__
            return JSONResponse(status_code=500, content=body)
