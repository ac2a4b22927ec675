"""Group membership model linking users to groups with permissions."""

from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import String, Integer, Boolean, ForeignKey, Enum, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.user import User
    from app.models.group import Group


class MemberStatus(str, PyEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class GroupMembership(Base, TimestampMixin):
    """
    One row per (group, user) pair.

    Both "the groups a user belongs to" and "the members of a group" are read
    from this table, so the two views can never disagree.

    Constraints:
    - Unique(group_id, user_id) - one membership per user per group
    - Unique(group_id, member_number) - member numbers are unique in a group
    """

    __tablename__ = "group_memberships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    member_number: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[MemberStatus] = mapped_column(
        Enum(MemberStatus, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=MemberStatus.ACTIVE,
    )
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Relationships
    group: Mapped["Group"] = relationship("Group", back_populates="memberships")
    user: Mapped["User"] = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_user"),
        UniqueConstraint("group_id", "member_number", name="uq_group_member_number"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    def __repr__(self) -> str:
        return (
            f"<GroupMembership(group_id={self.group_id}, user_id={self.user_id}, "
            f"member_number='{self.member_number}')>"
        )
