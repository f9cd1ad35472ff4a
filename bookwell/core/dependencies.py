"""
Authentication dependencies for FastAPI

The resolved identity is trusted as-is by the booking engine; nothing
downstream re-authenticates.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import structlog

from bookwell.core.auth import Identity, identity_from_token
from bookwell.core.permissions import Permission, get_permissions_for_role, has_permission

logger = structlog.get_logger(__name__)
security = HTTPBearer()

__all__ = ["Identity", "get_identity", "require_permission"]


async def get_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Identity:
    """Resolve user, tenant and role from the bearer token"""
    identity = identity_from_token(credentials.credentials)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug(f"User authenticated: {identity.user_id} tenant={identity.tenant_id}")
    return identity


def require_permission(required_permission: Permission):
    """Dependency factory rejecting callers whose role lacks a permission"""
    async def check_permission(identity: Identity = Depends(get_identity)) -> Identity:
        if not has_permission(required_permission, get_permissions_for_role(identity.role)):
            logger.warning(
                f"Permission {required_permission.value} denied for role {identity.role}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission required: {required_permission.value}",
            )
        return identity
    return check_permission
