"""Exception handlers mapping application errors to ``{ok:false, code, message}``.

Every :class:`~arena_reconciler.core.exceptions.ArenaReconcilerError`
subclass has a fixed HTTP status so callers can branch on it:

=============================  ======
code                           status
=============================  ======
``invalid_input``              400
``project_not_found``          404
``not_eligible``               409
``reconciliation_conflict``    500
=============================  ======

Request-body validation failures raised by FastAPI are reported as
``invalid_input`` too, with HTTP 400 rather than FastAPI's default 422.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from arena_reconciler.core.exceptions import (
    ArenaReconcilerError,
    InvalidInputError,
    NotEligibleError,
    ProjectNotFoundError,
    ReconciliationConflictError,
)
from arena_reconciler.core.schemas.arena import ErrorResponse

logger = structlog.get_logger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[ArenaReconcilerError], int], ...] = (
    # Most specific first: ProjectNotFoundError subclasses InvalidInputError.
    (ProjectNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (NotEligibleError, status.HTTP_409_CONFLICT),
    (ReconciliationConflictError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(exc: ArenaReconcilerError) -> int:
    """Return the HTTP status code for *exc*."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(code=code, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def arena_error_handler(request: Request, exc: ArenaReconcilerError) -> JSONResponse:
    status_code = status_for(exc)
    log_fn = logger.error if status_code >= 500 else logger.info
    log_fn("request_rejected", status_code=status_code, **exc.to_dict())
    return error_response(status_code, exc.code, exc.message)


async def validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    message = "; ".join(problems) or "Invalid request."
    logger.info("request_invalid", errors=problems)
    return error_response(status.HTTP_400_BAD_REQUEST, InvalidInputError.code, message)


def register_exception_handlers(application: FastAPI) -> None:
    """Attach the application's exception handlers to *application*."""
    application.add_exception_handler(ArenaReconcilerError, arena_error_handler)
    application.add_exception_handler(RequestValidationError, validation_error_handler)
