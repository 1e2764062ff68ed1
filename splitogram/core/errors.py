import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    """
    Base for every error a core operation can raise.

    Each subclass carries a stable machine-readable ``kind`` and the HTTP
    status it maps to; ``detail`` is the human-readable part.
    """

    kind = "internal_error"
    status = 500

    def __init__(self, detail: str):
        super().__init__(status_code=self.status, detail=detail)


class Unauthorized(AppError):
    kind = "unauthorized"
    status = 401


class NotFound(AppError):
    kind = "not_found"
    status = 404


class NotMember(AppError):
    kind = "not_member"
    status = 403


class NotInvolved(AppError):
    kind = "not_involved"
    status = 403


class NotDebtor(AppError):
    kind = "not_debtor"
    status = 403


class NotCreditor(AppError):
    kind = "not_creditor"
    status = 403


class InvalidStatus(AppError):
    kind = "invalid_status"
    status = 400


class NoOutstandingDebt(AppError):
    kind = "no_outstanding_debt"
    status = 400


class ValidationError(AppError):
    kind = "validation_error"
    status = 400


class AlreadyMember(AppError):
    kind = "already_member"
    status = 409


class NoWallet(AppError):
    kind = "no_wallet"
    status = 400


class ConfigError(AppError):
    kind = "config_error"
    status = 500


class LedgerImbalance(AppError):
    kind = "ledger_imbalance"
    status = 500


class OracleUnavailable(AppError):
    # absorbed by the settlement service, never rendered to a caller
    kind = "oracle_unavailable"
    status = 503


def error_body(kind: str, detail) -> dict:
    return {"error": kind, "detail": detail}


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.kind, exc.detail))


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    kind = "not_found" if exc.status_code == 404 else "http_error"
    return JSONResponse(status_code=exc.status_code, content=error_body(kind, exc.detail))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in errors
    )
    return JSONResponse(status_code=422, content=error_body(ValidationError.kind, detail))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("internal_error", "Something went wrong"))


def register_error_handlers(app) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
