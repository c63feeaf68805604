from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class CoreFailure(Exception):
    """Base for failures raised by the billing and access-control core.

    Carries a failure ``kind`` and a machine-readable ``cause``; callers are
    expected to turn those into user-facing messages themselves.
    """

    kind = "failure"
    status_code = 500

    def __init__(self, cause: str, message: Optional[str] = None, **details: Any) -> None:
        super().__init__(message or cause)
        self.cause = cause
        self.message = message or cause
        self.details = details

    def as_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "cause": self.cause, "details": self.details}


class ValidationFailure(CoreFailure):
    kind = "validation"
    status_code = 422


class NotFoundFailure(CoreFailure):
    kind = "not_found"
    status_code = 404


class PersistenceFailure(CoreFailure):
    kind = "persistence"
    status_code = 503


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CoreFailure)
    async def core_failure_handler(request: Request, exc: CoreFailure) -> JSONResponse:  # type: ignore[override]
        payload: Dict[str, Any] = {"detail": exc.message, "path": str(request.url)}
        payload.update(exc.as_dict())
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation failed.",
                "kind": ValidationFailure.kind,
                "cause": "invalid_request",
                "errors": jsonable_encoder(exc.errors()),
                "path": str(request.url),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error.",
                "path": str(request.url),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # type: ignore[override]
        payload: Dict[str, Any] = {"detail": exc.detail or "HTTP error.", "path": str(request.url)}
        if exc.headers:
            payload["headers"] = exc.headers
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)
