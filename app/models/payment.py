from datetime import date
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    Boolean,
    Text,
    Date,
    ForeignKey,
    Enum,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.user import User


class PaymentType(str, PyEnum):
    """Payment type enumeration"""

    REQUIRED = "required"
    CONTRIBUTION = "contribution"
    DONATION = "donation"


class Payment(Base, TimestampMixin):
    """
    A payment a group tracks against its members.

    REQUIRED payments have a fixed ``amount``; each entry's ``paid`` flag is
    set explicitly and the total collected is paid_count * amount.
    CONTRIBUTION and DONATION payments have no fixed amount; each entry's
    ``paid`` is derived from ``amount_paid > 0`` and the total is the sum of
    ``amount_paid``.
    """

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    payment_type: Mapped[PaymentType] = mapped_column(
        Enum(PaymentType, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    amount: Mapped[float | None] = mapped_column(
        Numeric(precision=15, scale=2, asdecimal=False), nullable=True
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )

    # Relationships
    entries: Mapped[list["PaymentEntry"]] = relationship(
        "PaymentEntry",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentEntry.id",
    )

    @property
    def paid_count(self) -> int:
        return sum(1 for entry in self.entries if entry.paid)

    @property
    def total_collected(self) -> float | None:
        """paid_count * amount for REQUIRED payments, None otherwise"""
        if self.payment_type != PaymentType.REQUIRED:
            return None
        return self.paid_count * float(self.amount or 0)

    @property
    def total_amount_paid(self) -> float | None:
        """Sum of amount_paid for CONTRIBUTION/DONATION payments, None otherwise"""
        if self.payment_type == PaymentType.REQUIRED:
            return None
        return sum(float(entry.amount_paid or 0) for entry in self.entries)

    def entry_for(self, user_id: int) -> "PaymentEntry | None":
        return next((entry for entry in self.entries if entry.user_id == user_id), None)


class PaymentEntry(Base):
    """
    One member's ledger line inside a payment.

    A member without a row is not tracked for the payment at all.
    """

    __tablename__ = "payment_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    amount_paid: Mapped[float] = mapped_column(
        Numeric(precision=15, scale=2, asdecimal=False), nullable=False, default=0
    )

    # Relationships
    payment: Mapped["Payment"] = relationship("Payment", back_populates="entries")
    user: Mapped["User"] = relationship("User")

    __table_args__ = (UniqueConstraint("payment_id", "user_id", name="uq_payment_user"),)
