from __future__ import annotations

from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from .errors import UnauthenticatedError
from .identity import identity_from_claims
from .tokens import decode_identity_token

PUBLIC_PATHS = frozenset({"/healthz", "/docs", "/openapi.json", "/redoc"})


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Resolve the bearer token into ``request.state.identity``."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        if request.url.path in PUBLIC_PATHS or request.method == "OPTIONS":
            return await call_next(request)
        token = self._extract_token(request)
        if token is None:
            return self._reject("Missing or malformed Authorization header. Expected: Bearer <token>")
        claims = decode_identity_token(token)
        if claims is None:
            return self._reject("Invalid or expired bearer token")
        identity = identity_from_claims(claims)
        if not identity.user_id:
            return self._reject("Token does not identify a user")
        request.state.identity = identity
        return await call_next(request)

    def _extract_token(self, request: Request) -> Optional[str]:
        header = request.headers.get("Authorization")
        if not header:
            return None
        scheme, _, value = header.partition(" ")
        if scheme.lower() != "bearer" or not value.strip():
            return None
        return value.strip()

    def _reject(self, message: str) -> JSONResponse:
        error = UnauthenticatedError(message)
        return JSONResponse(
            error.to_dict(),
            status_code=error.status_code,
            headers={"WWW-Authenticate": "Bearer"},
        )
