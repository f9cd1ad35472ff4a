"""
Bearer tokens carrying the caller identity

A token names the user, the tenant every request is scoped to and the
role permissions are derived from. Tokens missing any of these are
rejected as a whole.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from typing import Any, Dict, Optional
import uuid

import structlog

from bookwell.core.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()

DEFAULT_ROLE = "customer"


@dataclass(frozen=True)
class Identity:
    """Resolved caller identity"""
    user_id: uuid.UUID
    tenant_id: uuid.UUID
    role: str

    def claims(self) -> Dict[str, Any]:
        return {"sub": str(self.user_id), "tenant_id": str(self.tenant_id), "role": self.role}


def create_access_token(
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    role: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Sign a token for a user acting within one tenant"""
    now = datetime.now(timezone.utc)
    ttl = expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = Identity(user_id=user_id, tenant_id=tenant_id, role=role).claims()
    claims.update(exp=now + ttl, iat=now)
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Verify signature and expiry; None for any invalid token"""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected token: {e}")
        return None


def identity_from_token(token: str) -> Optional[Identity]:
    """Identity carried by a valid token, or None

    A missing role falls back to the least privileged one.
    """
    payload = decode_access_token(token)
    if payload is None:
        return None

    try:
        return Identity(
            user_id=uuid.UUID(payload.get("sub")),
            tenant_id=uuid.UUID(payload.get("tenant_id")),
            role=payload.get("role") or DEFAULT_ROLE,
        )
    except (TypeError, ValueError):
        logger.debug("Rejected token with malformed identity claims")
        return None
