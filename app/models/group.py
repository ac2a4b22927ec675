"""Group model: the tenant isolation boundary."""

from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import String, Integer, Text, ForeignKey, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.group_membership import GroupMembership


class GroupStatus(str, PyEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Group(Base, TimestampMixin):
    """
    Multi-tenant isolation boundary.

    Every payment, announcement, constitution, minutes record and expense
    belongs to exactly one group, and every query for them filters by it.

    ``member_counter`` is only ever incremented with a single atomic UPDATE;
    member numbers are ``{abbreviation}-{counter:03d}`` and are never reused,
    even after the member holding one is removed.
    """

    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    join_code: Mapped[str] = mapped_column(String(6), unique=True, nullable=False, index=True)
    abbreviation: Mapped[str] = mapped_column(String(3), nullable=False)
    member_counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[GroupStatus] = mapped_column(
        Enum(GroupStatus, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=GroupStatus.ACTIVE,
    )
    created_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )

    # Relationships
    memberships: Mapped[list["GroupMembership"]] = relationship(
        "GroupMembership",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name='{self.name}', join_code='{self.join_code}')>"
