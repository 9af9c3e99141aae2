# acadlib/middleware/authentication.py
from typing import Optional, Set, Callable, Awaitable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.security.utils import get_authorization_scheme_param
from jose import JWTError
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from acadlib.core.security import decode_subject

# Paths reachable without a bearer token, for any method.
PUBLIC_PATHS: Set[str] = {
    "/",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/health",
    "/health/db",
    "/api/v1/auth/token",
    "/api/v1/auth/register",
}

# Prefixes that are public for safe methods only (catalogue browsing and downloads).
PUBLIC_READ_PREFIXES = ("/api/v1/materials",)


def is_public_path(path: str, method: str = "GET") -> bool:
    """Checks if the given path (and method) can be served without authentication."""
    if path in PUBLIC_PATHS:
        return True
    if path.startswith(("/docs", "/redoc", "/health")):
        return True
    if method in ("GET", "HEAD") and path.startswith(PUBLIC_READ_PREFIXES):
        return True
    return False


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path
        request_id = getattr(request.state, "request_id", "N/A")

        if request.method == "OPTIONS" or is_public_path(path, request.method):
            logger.debug(f"RID:{request_id} Public path accessed: {request.method} {path}. Skipping auth.")
            return await call_next(request)

        authorization: Optional[str] = request.headers.get("Authorization")
        scheme, token = get_authorization_scheme_param(authorization or "")
        if not authorization or scheme.lower() != "bearer" or not token:
            logger.warning(f"RID:{request_id} Auth failed: No valid Bearer token for protected path {path}.")
            return _unauthorized("Not authenticated")

        try:
            user_id = decode_subject(token)
        except JWTError as e:
            logger.warning(f"RID:{request_id} Auth failed: Invalid token for path {path}. Error: {e}")
            return _unauthorized(f"Invalid token: {e}")

        # Read by get_current_user
        request.state.user_id = user_id
        logger.debug(f"RID:{request_id} Auth successful for user '{user_id}' accessing {path}.")
        return await call_next(request)
