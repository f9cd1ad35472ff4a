"""
RBAC (Role-Based Access Control) permission system
"""

from enum import Enum
from typing import Set


class Permission(str, Enum):
    """Permission definitions"""
    # Appointment permissions
    APPOINTMENT_VIEW = "appointment:view"
    APPOINTMENT_BOOK = "appointment:book"
    APPOINTMENT_CONFIRM = "appointment:confirm"
    APPOINTMENT_RESCHEDULE = "appointment:reschedule"
    APPOINTMENT_CANCEL = "appointment:cancel"

    # Group session permissions
    GROUP_JOIN = "group:join"
    GROUP_MANAGE_PARTICIPANTS = "group:manage_participants"

    # Plan permissions
    QUOTA_VIEW = "quota:view"


# Role permission mapping
ROLE_PERMISSIONS = {
    "owner": set(Permission),
    "admin": set(Permission),
    "staff": {
        Permission.APPOINTMENT_VIEW,
        Permission.APPOINTMENT_BOOK,
        Permission.APPOINTMENT_CONFIRM,
        Permission.APPOINTMENT_RESCHEDULE,
        Permission.APPOINTMENT_CANCEL,
        Permission.GROUP_JOIN,
        Permission.GROUP_MANAGE_PARTICIPANTS,
    },
    "customer": {
        # Customers book, join and cancel but never confirm
        Permission.APPOINTMENT_VIEW,
        Permission.APPOINTMENT_BOOK,
        Permission.APPOINTMENT_CANCEL,
        Permission.GROUP_JOIN,
    },
}


def get_permissions_for_role(role: str) -> Set[Permission]:
    """Get permissions for a given role"""
    return ROLE_PERMISSIONS.get((role or "").lower(), set())


def has_permission(required_permission: Permission, user_permissions: Set[Permission]) -> bool:
    """Check if user has required permission"""
    return required_permission in user_permissions
