from sqlalchemy import exists, update
from sqlalchemy.orm import Session, selectinload

from app.models.payment import Payment, PaymentEntry


class PaymentRepository:
    """Repository for Payment and ledger data access with group isolation"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id_and_group(self, payment_id: int, group_id: int) -> Payment | None:
        """
        Get payment by ID, ensuring it belongs to the group.

        Returns None if payment doesn't exist or belongs to another group.
        """
        return (
            self.db.query(Payment)
            .options(selectinload(Payment.entries).selectinload(PaymentEntry.user))
            .filter(Payment.id == payment_id, Payment.group_id == group_id)
            .first()
        )

    def list_by_group(
        self,
        group_id: int,
        title: str | None = None,
        published_only: bool = False,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Payment], int]:
        """
        Page through a group's payments, newest first.

        Returns:
            Tuple of (payments, total count)
        """
        query = (
            self.db.query(Payment)
            .options(selectinload(Payment.entries))
            .filter(Payment.group_id == group_id)
        )
        if published_only:
            query = query.filter(Payment.published.is_(True))
        if title:
            query = query.filter(Payment.title.icontains(title, autoescape=True))

        total = query.count()
        payments = (
            query.order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return payments, total

    def create(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.flush()
        return payment

    def update(self, payment: Payment) -> Payment:
        self.db.flush()
        return payment

    def set_paid(self, payment_id: int, group_id: int, user_ids: set[int], paid: bool) -> int:
        """
        Bulk-set the paid flag for ledger entries in one UPDATE.

        The statement itself is scoped by group, payment and member set, so
        concurrent admins never lose each other's updates; entries absent from
        the ledger are not created.

        Returns:
            Number of ledger entries matched
        """
        if not user_ids:
            return 0
        group_owns_payment = (
            exists()
            .where(Payment.id == payment_id, Payment.group_id == group_id)
        )
        result = self.db.execute(
            update(PaymentEntry)
            .where(
                PaymentEntry.payment_id == payment_id,
                PaymentEntry.user_id.in_(user_ids),
                group_owns_payment,
            )
            .values(paid=paid)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount

    def delete_by_ids_and_group(self, payment_ids: set[int], group_id: int) -> int:
        """Delete payments (and their ledgers) belonging to the group"""
        if not payment_ids:
            return 0
        payments = (
            self.db.query(Payment)
            .filter(Payment.id.in_(payment_ids), Payment.group_id == group_id)
            .all()
        )
        for payment in payments:
            self.db.delete(payment)
        self.db.flush()
        return len(payments)
