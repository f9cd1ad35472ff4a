"""
Unit test for JWT authentication
"""

import pytest
from datetime import timedelta
import uuid
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from bookwell.core.auth import (
    Identity, create_access_token, decode_access_token, identity_from_token
)
from bookwell.core.config import get_settings
from bookwell.core.dependencies import get_identity

settings = get_settings()


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_create_access_token():
    """Test JWT token creation"""
    user_id = uuid.uuid4()
    tenant_id = uuid.uuid4()
    role = "staff"

    token = create_access_token(
        user_id=user_id,
        tenant_id=tenant_id,
        role=role,
        expires_delta=timedelta(hours=24)
    )

    assert isinstance(token, str)

    payload = decode_access_token(token)
    assert payload["sub"] == str(user_id)
    assert payload["tenant_id"] == str(tenant_id)
    assert payload["role"] == role
    assert "exp" in payload


def test_identity_from_token():
    identity = Identity(user_id=uuid.uuid4(), tenant_id=uuid.uuid4(), role="owner")
    token = create_access_token(identity.user_id, identity.tenant_id, identity.role)

    assert identity_from_token(token) == identity


def test_identity_from_invalid_token():
    """Test token verification with invalid token"""
    assert identity_from_token("invalid.token.string.here") is None


def test_missing_role_falls_back_to_customer():
    user_id, tenant_id = uuid.uuid4(), uuid.uuid4()
    token = jwt.encode(
        {"sub": str(user_id), "tenant_id": str(tenant_id)},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )

    assert identity_from_token(token) == Identity(user_id, tenant_id, "customer")


def test_malformed_subject_is_rejected():
    token = jwt.encode(
        {"sub": "not-a-uuid", "tenant_id": str(uuid.uuid4()), "role": "owner"},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )

    assert decode_access_token(token) is not None
    assert identity_from_token(token) is None


def test_expired_token():
    """Test that expired tokens are rejected"""
    token = create_access_token(
        user_id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        role="staff",
        expires_delta=timedelta(hours=-1)
    )

    assert decode_access_token(token) is None


def test_token_signed_with_other_key():
    token = jwt.encode(
        {"sub": str(uuid.uuid4()), "tenant_id": str(uuid.uuid4()), "role": "owner"},
        "some-other-secret",
        algorithm=settings.JWT_ALGORITHM,
    )

    assert decode_access_token(token) is None


@pytest.mark.asyncio
async def test_get_identity():
    user_id = uuid.uuid4()
    tenant_id = uuid.uuid4()
    token = create_access_token(user_id=user_id, tenant_id=tenant_id, role="customer")

    identity = await get_identity(bearer(token))

    assert identity.user_id == user_id
    assert identity.tenant_id == tenant_id
    assert identity.role == "customer"


@pytest.mark.asyncio
async def test_get_identity_rejects_token_without_tenant():
    token = jwt.encode(
        {"sub": str(uuid.uuid4()), "role": "owner"},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )

    with pytest.raises(HTTPException) as exc_info:
        await get_identity(bearer(token))

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_get_identity_rejects_garbage():
    with pytest.raises(HTTPException) as exc_info:
        await get_identity(bearer("garbage"))

    assert exc_info.value.status_code == 401
