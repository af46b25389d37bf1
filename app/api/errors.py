"""Map auth failure codes to HTTP statuses and render the error envelope."""

import logging
from typing import NoReturn

from fastapi import HTTPException, Request, status
from fastapi.exception_handlers import http_exception_handler as default_http_exception_handler
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.schemas.auth import AuthErrorCode, AuthFailure, ErrorResponse

logger = logging.getLogger(__name__)

STATUS_BY_CODE: dict[AuthErrorCode, int] = {
    AuthErrorCode.MISSING_PARAM: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.INVALID_PARAM: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.TOKEN_EXPIRED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.INVALID_SIGNATURE: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.ACCOUNT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    AuthErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    AuthErrorCode.CONFIG_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def raise_for_failure(failure: AuthFailure) -> NoReturn:
    """Raise the HTTPException for an auth failure; 401s advertise Bearer auth."""
    status_code = STATUS_BY_CODE[failure.code]
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    raise HTTPException(
        status_code=status_code,
        detail={"error": failure.message, "code": failure.code.value},
        headers=headers,
    )


async def auth_http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render auth failures as {ok: false, error, code}; defer everything else to FastAPI."""
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(**exc.detail).model_dump(mode="json"),
            headers=getattr(exc, "headers", None),
        )
    return await default_http_exception_handler(request, exc)


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Render store failures as a 503 service_unavailable envelope."""
    logger.exception("Database error while handling %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ok": False, "error": "Service temporarily unavailable", "code": "service_unavailable"},
    )
