"""Group-scoped records managed through the generic record gateway."""

from sqlalchemy import String, Integer, Numeric, Boolean, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, declared_attr

from app.models.base import Base, TimestampMixin


class GroupRecordMixin(TimestampMixin):
    """Columns shared by every record type: owning group, author, visibility"""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @declared_attr
    def group_id(cls) -> Mapped[int]:
        return mapped_column(
            Integer,
            ForeignKey("groups.id", ondelete="CASCADE"),
            nullable=False,
            index=True,  # Every query filters by group
        )

    @declared_attr
    def created_by_id(cls) -> Mapped[int]:
        return mapped_column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)


class Announcement(Base, GroupRecordMixin):
    __tablename__ = "announcements"

    body: Mapped[str] = mapped_column(Text, nullable=False)


class Constitution(Base, GroupRecordMixin):
    __tablename__ = "constitutions"

    body: Mapped[str] = mapped_column(Text, nullable=False)


class Minutes(Base, GroupRecordMixin):
    __tablename__ = "minutes"

    body: Mapped[str] = mapped_column(Text, nullable=False)


class Expense(Base, GroupRecordMixin):
    __tablename__ = "expenses"

    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(
        Numeric(precision=15, scale=2, asdecimal=False), nullable=False
    )
