"""Group context for request authorization."""

from dataclasses import dataclass

from app.models.permission import Permission


@dataclass(frozen=True)
class GroupContext:
    """
    Authorization context decoded from a group-scoped token.

    Attributes:
        user_id: The authenticated user
        group_id: The group the token was issued for
        permissions: The user's permissions in that group only
    """

    user_id: int
    group_id: int
    permissions: frozenset[Permission]

    def has_any(self, required: tuple[Permission, ...] | list[Permission]) -> bool:
        """
        Any-of check: True if the caller holds at least one required permission.

        An empty requirement admits every valid token holder.
        """
        if not required:
            return True
        return not self.permissions.isdisjoint(required)

    def __repr__(self) -> str:
        perms = sorted(p.value for p in self.permissions)
        return f"<GroupContext(user_id={self.user_id}, group_id={self.group_id}, permissions={perms})>"
