"""Repository for GroupMembership model operations."""

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, joinedload

from app.models.group_membership import GroupMembership, MemberStatus
from app.models.user import User


class GroupMembershipRepository:
    """Repository for GroupMembership model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_membership(self, user_id: int, group_id: int) -> GroupMembership | None:
        """
        Get membership for a specific user in a specific group.

        Returns:
            GroupMembership object or None if not found
        """
        return (
            self.db.query(GroupMembership)
            .filter(
                GroupMembership.user_id == user_id,
                GroupMembership.group_id == group_id,
            )
            .first()
        )

    def get_user_memberships(self, user_id: int) -> list[GroupMembership]:
        """All memberships of a user, with their groups loaded"""
        return (
            self.db.query(GroupMembership)
            .options(joinedload(GroupMembership.group))
            .filter(GroupMembership.user_id == user_id)
            .order_by(GroupMembership.id)
            .all()
        )

    def get_active_members(self, group_id: int) -> list[GroupMembership]:
        return (
            self.db.query(GroupMembership)
            .options(joinedload(GroupMembership.user))
            .filter(
                GroupMembership.group_id == group_id,
                GroupMembership.status == MemberStatus.ACTIVE,
            )
            .order_by(GroupMembership.id)
            .all()
        )

    def search_members(
        self,
        group_id: int,
        full_name: str | None = None,
        email: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[GroupMembership], int]:
        """
        Page through a group's members, optionally filtered by name/email.

        Returns:
            Tuple of (memberships, total count)
        """
        query = (
            self.db.query(GroupMembership)
            .join(User, GroupMembership.user_id == User.id)
            .options(joinedload(GroupMembership.user))
            .filter(GroupMembership.group_id == group_id)
        )
        if full_name:
            query = query.filter(User.full_name.icontains(full_name, autoescape=True))
        if email:
            query = query.filter(User.email.icontains(email, autoescape=True))

        total = query.count()
        members = query.order_by(GroupMembership.id).limit(limit).offset(offset).all()
        return members, total

    def count_members_in(self, group_id: int, user_ids: set[int]) -> int:
        """How many of ``user_ids`` are members of the group"""
        if not user_ids:
            return 0
        return self.db.scalar(
            select(func.count(GroupMembership.id)).where(
                GroupMembership.group_id == group_id,
                GroupMembership.user_id.in_(user_ids),
            )
        )

    def create(self, membership: GroupMembership) -> GroupMembership:
        """
        Add a membership and flush. Caller commits.

        Raises:
            IntegrityError: If (group_id, user_id) or (group_id, member_number) already exists
        """
        self.db.add(membership)
        self.db.flush()
        return membership

    def update(self, membership: GroupMembership) -> GroupMembership:
        self.db.flush()
        return membership

    def delete_members(self, group_id: int, user_ids: set[int]) -> int:
        """
        Remove users from a group and clear their active-group pointer.

        Returns:
            Number of memberships removed
        """
        if not user_ids:
            return 0
        result = self.db.execute(
            delete(GroupMembership)
            .where(
                GroupMembership.group_id == group_id,
                GroupMembership.user_id.in_(user_ids),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.execute(
            update(User)
            .where(User.id.in_(user_ids), User.current_group_id == group_id)
            .values(current_group_id=None)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount
