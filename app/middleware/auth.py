"""Authentication middleware for JWT token validation."""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.request_context import (
    clear_all_context,
    set_current_user_id,
    set_current_user_role,
)
from app.utils.security import decode_access_token


class AuthMiddleware(BaseHTTPMiddleware):
    """Extracts the user from a bearer token or ``access_token`` cookie.

    Requests without a valid token pass through with no user in context;
    endpoints that need one enforce it themselves.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_all_context()

        token = self._extract_token(request)
        if token:
            payload = decode_access_token(token)
            if payload:
                set_current_user_id(str(payload["sub"]))
                if payload.get("role"):
                    set_current_user_role(str(payload["role"]).upper())

        try:
            return await call_next(request)
        finally:
            clear_all_context()

    def _extract_token(self, request: Request) -> str | None:
        """Extract JWT token from request.

        Priority:
        1. Authorization header (Bearer token)
        2. access_token cookie
        """
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            return auth_header.removeprefix("Bearer ").strip()

        return request.cookies.get("access_token")
