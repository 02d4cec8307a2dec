"""
Authentication dependencies for FastAPI.

Protects the administrative settlement routes with a bearer JWT carrying
an ADMIN role claim.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from backend.app.core.jwt import decode_access_token
from backend.app.core.exceptions import AuthenticationError, InsufficientPermissionsError
from backend.app.models.enums import UserRole

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


async def get_current_operator(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Decode the caller's bearer token.

    Raises:
        AuthenticationError: 401 if the token is missing, invalid or expired
    """
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    if not payload.get("user_id"):
        raise AuthenticationError("Invalid token payload")

    return payload


async def require_admin(current_user: dict = Depends(get_current_operator)) -> dict:
    """
    Dependency for admin-only endpoints.

    Usage:
        @router.post("/admin/campaigns/{campaign_id}/reconcile")
        async def reconcile(campaign_id: int, admin: dict = Depends(require_admin)):
            ...
    """
    if current_user.get("role") != UserRole.ADMIN.value:
        raise InsufficientPermissionsError("Admin access required")
    return current_user
