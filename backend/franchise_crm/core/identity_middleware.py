"""
Identity Middleware
Resolves the viewer tenant from a JWT (claim `tenant_id`) or the X-Tenant-Id header
"""
import logging
from typing import Optional

import jwt
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-Id"


def decode_tenant_id(token: str, secret: Optional[str] = None, algorithm: str = "HS256") -> Optional[str]:
    """
    Extract tenant_id from a bearer token.

    The signature is verified only when a secret is configured.

    Raises:
        jwt.InvalidTokenError: malformed token or bad signature
    """
    if secret:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    else:
        payload = jwt.decode(token, options={"verify_signature": False})
    metadata = payload.get("user_metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    return payload.get("tenant_id") or metadata.get("tenant_id")


def resolve_viewer_tenant(
    authorization: Optional[str],
    tenant_header: Optional[str],
    secret: Optional[str] = None,
    algorithm: str = "HS256"
) -> Optional[str]:
    """Bearer token wins; the plain header is the fallback."""
    if authorization and authorization.startswith("Bearer "):
        token = authorization.split(" ", 1)[1]
        try:
            tenant_id = decode_tenant_id(token, secret, algorithm)
            if tenant_id:
                return tenant_id
        except jwt.InvalidTokenError as e:
            logger.warning(f"Rejected bearer token: {e}")
            return None
        except Exception as e:
            logger.warning(f"Unreadable bearer token claims: {e}")
            return None
    if tenant_header and tenant_header.strip():
        return tenant_header.strip()
    return None


class IdentityMiddleware(BaseHTTPMiddleware):
    """
    Attaches request.state.viewer_tenant for every HTTP request.

    Requests without an identity still pass through; endpoints enforce it
    via the get_identity dependency.
    """

    PUBLIC_PATHS = ["/", "/health", "/docs", "/openapi.json", "/redoc"]

    async def dispatch(self, request: Request, call_next):
        request.state.viewer_tenant = None

        if request.url.path in self.PUBLIC_PATHS:
            return await call_next(request)

        settings = request.app.state.settings
        request.state.viewer_tenant = resolve_viewer_tenant(
            request.headers.get("Authorization"),
            request.headers.get(TENANT_HEADER),
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        return await call_next(request)
