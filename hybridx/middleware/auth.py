"""
HybridX API - Authentication Middleware.

JWT verification for protected routes.
"""

from typing import Any, Dict, Optional

from fastapi import Request, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from hybridx.services.auth import verify_token


class JWTBearer(HTTPBearer):
    """
    JWT Bearer token authentication.

    Custom HTTPBearer that validates JWT tokens on protected routes and
    hands the verified claims to the route.
    """

    def __init__(self, auto_error: bool = True):
        super().__init__(auto_error=auto_error)

    def _reject(self, detail: str) -> None:
        if self.auto_error:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

    async def __call__(self, request: Request) -> Optional[Dict[str, Any]]:
        """
        Verify JWT token from Authorization header.

        Returns:
            Optional[Dict[str, Any]]: Token claims if valid.

        Raises:
            HTTPException: 403 if token is invalid or missing.
        """
        credentials: Optional[HTTPAuthorizationCredentials] = await super().__call__(request)

        if not credentials:
            self._reject("Invalid authorization credentials")
            return None

        if credentials.scheme.lower() != "bearer":
            self._reject("Invalid authentication scheme")
            return None

        payload = verify_token(credentials.credentials)
        if not payload:
            self._reject("Invalid or expired token")
            return None

        if not payload.get("sub"):
            self._reject("Invalid token payload")
            return None

        return payload


# Global JWT bearer instance for dependency injection
jwt_bearer = JWTBearer()
