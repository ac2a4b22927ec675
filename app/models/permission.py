"""Group permission enum for permission-scoped tokens."""

from enum import Enum as PyEnum
from typing import Iterable


class Permission(str, PyEnum):
    """
    Closed set of permissions a member can hold inside one group.

    Endpoints declare the permissions they accept; a caller is admitted if
    it holds ANY of them in its current group.

    - ADMIN: full control of the group
    - USER: ordinary member access to published records and own payments
    - MANAGE_*: delegated management of one area
    """

    USER = "user"
    ADMIN = "admin"
    MANAGE_MEMBERS = "manage_members"
    MANAGE_ANNOUNCEMENTS = "manage_announcements"
    MANAGE_EVENTS = "manage_events"
    MANAGE_PAYMENTS = "manage_payments"
    MANAGE_CONSTITUTIONS = "manage_constitutions"
    MANAGE_MINUTES_RECORDS = "manage_minutes_records"
    MANAGE_EXPENSES = "manage_expenses"
    MANAGE_GROUP = "manage_group"
    MANAGE_ACCOUNTS = "manage_accounts"


# Granted to whoever creates a group
OWNER_PERMISSIONS = (
    Permission.ADMIN,
    Permission.MANAGE_MEMBERS,
    Permission.MANAGE_ANNOUNCEMENTS,
    Permission.MANAGE_EVENTS,
)

# Granted to everyone who joins with a code
MEMBER_PERMISSIONS = (Permission.USER,)


def parse_permissions(values: Iterable[str | Permission]) -> list[Permission]:
    """
    Convert stored permission strings to Permission members.

    Raises:
        ValueError: If any value is not a known permission
    """
    return [Permission(value) for value in values]
