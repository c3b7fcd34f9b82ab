from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.exc import IntegrityError, NoResultFound

from .config import ENVIRONMENT


def _error(status_code: int, detail: str, code: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "error": code, **extra})


async def integrity_error_handler(request: Request, exc: IntegrityError):
    print(f"[localnest] integrity error on {request.method} {request.url.path}: {exc.orig}")
    return _error(409, "A record with this information already exists", "DUPLICATE_ENTRY")


async def no_result_handler(request: Request, exc: NoResultFound):
    return _error(404, "Record not found", "NOT_FOUND")


async def jwt_error_handler(request: Request, exc: JWTError):
    if isinstance(exc, ExpiredSignatureError):
        return _error(401, "Token expired", "TOKEN_EXPIRED")
    return _error(401, "Invalid token", "INVALID_TOKEN")


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return _error(
        400,
        "Validation failed",
        "VALIDATION_ERROR",
        errors=jsonable_encoder(exc.errors()),
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    print(f"[localnest] unhandled error on {request.method} {request.url.path}: {exc!r}")
    code = str(exc) if ENVIRONMENT == "development" else "INTERNAL_ERROR"
    return _error(500, "Internal server error", code)


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(NoResultFound, no_result_handler)
    app.add_exception_handler(JWTError, jwt_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
