"""
Unit tests for RBAC permission system
"""

import pytest
import uuid
from fastapi import HTTPException

from bookwell.core.dependencies import Identity, require_permission
from bookwell.core.permissions import (
    Permission,
    get_permissions_for_role,
    has_permission,
)


def test_get_permissions_for_role():
    """Test permission retrieval for all roles"""
    # Owner and admin have everything
    assert get_permissions_for_role("owner") == set(Permission)
    assert get_permissions_for_role("admin") == set(Permission)

    # Staff run the calendar but do not see plan quotas
    staff_perms = get_permissions_for_role("staff")
    assert Permission.APPOINTMENT_CONFIRM in staff_perms
    assert Permission.GROUP_MANAGE_PARTICIPANTS in staff_perms
    assert Permission.QUOTA_VIEW not in staff_perms

    # Customers book and cancel but never confirm
    customer_perms = get_permissions_for_role("customer")
    assert Permission.APPOINTMENT_BOOK in customer_perms
    assert Permission.APPOINTMENT_CANCEL in customer_perms
    assert Permission.GROUP_JOIN in customer_perms
    assert Permission.APPOINTMENT_CONFIRM not in customer_perms
    assert Permission.APPOINTMENT_RESCHEDULE not in customer_perms


def test_unknown_role_has_no_permissions():
    assert get_permissions_for_role("waiter") == set()
    assert get_permissions_for_role(None) == set()


def test_role_lookup_ignores_case():
    assert get_permissions_for_role("Owner") == set(Permission)


def test_has_permission():
    """Test permission checking logic"""
    staff_perms = get_permissions_for_role("staff")

    assert has_permission(Permission.APPOINTMENT_VIEW, staff_perms)
    assert not has_permission(Permission.QUOTA_VIEW, staff_perms)


@pytest.mark.asyncio
async def test_require_permission_allows_role():
    identity = Identity(user_id=uuid.uuid4(), tenant_id=uuid.uuid4(), role="staff")
    checker = require_permission(Permission.APPOINTMENT_CONFIRM)

    assert await checker(identity) is identity


@pytest.mark.asyncio
async def test_require_permission_denies_role():
    identity = Identity(user_id=uuid.uuid4(), tenant_id=uuid.uuid4(), role="customer")
    checker = require_permission(Permission.APPOINTMENT_CONFIRM)

    with pytest.raises(HTTPException) as exc_info:
        await checker(identity)

    assert exc_info.value.status_code == 403
