from math import ceil

from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from app.core.logging import get_logger
from app.core.transaction import transaction
from app.models.group_context import GroupContext
from app.models.payment import Payment, PaymentEntry, PaymentType
from app.repositories.group_membership_repository import GroupMembershipRepository
from app.repositories.payment_repository import PaymentRepository
from app.schemas.payment_schemas import (
    PaymentCreate,
    PaymentMemberSelection,
    PaymentUpdate,
)

logger = get_logger(__name__)


def _derived_paid(payment_type: PaymentType, amount_paid: float, paid: bool = False) -> bool:
    """Contribution/donation entries count as paid once money came in; required entries keep their flag"""
    if payment_type == PaymentType.REQUIRED:
        return paid
    return amount_paid > 0


class PaymentService:
    """Service layer for payments and their per-member ledgers"""

    def __init__(self, db: Session):
        self.db = db
        self.payment_repo = PaymentRepository(db)
        self.membership_repo = GroupMembershipRepository(db)

    def _validate_members(
        self, group_id: int, selections: list[PaymentMemberSelection]
    ) -> dict[int, PaymentMemberSelection]:
        """
        Check every selected user belongs to the group, all or nothing.

        Raises:
            ValidationException: If an id repeats or is not a member of the group
        """
        by_user = {selection.user_id: selection for selection in selections}
        if len(by_user) != len(selections):
            raise ValidationException("The same member was selected more than once.")
        if self.membership_repo.count_members_in(group_id, set(by_user)) != len(by_user):
            raise ValidationException(
                "One or more selected users are invalid.", code="INVALID_MEMBERS"
            )
        return by_user

    def _get_payment(self, payment_id: int, context: GroupContext) -> Payment:
        payment = self.payment_repo.get_by_id_and_group(payment_id, context.group_id)
        if not payment:
            raise NotFoundException("Payment not found.")
        return payment

    def create_payment(self, data: PaymentCreate, context: GroupContext) -> Payment:
        """
        Create a payment and attach the selected members to its ledger.

        Raises:
            ValidationException: If any selected member is invalid (nothing is created)
        """
        selections = self._validate_members(context.group_id, data.members)

        with transaction(self.db, "payment creation"):
            payment = Payment(
                group_id=context.group_id,
                title=data.title,
                description=data.description,
                payment_type=data.payment_type,
                amount=data.amount if data.payment_type == PaymentType.REQUIRED else None,
                due_date=data.due_date,
                published=data.published,
                created_by_id=context.user_id,
                entries=[
                    PaymentEntry(
                        user_id=user_id,
                        amount_paid=selection.amount_paid,
                        paid=_derived_paid(data.payment_type, selection.amount_paid),
                    )
                    for user_id, selection in selections.items()
                ],
            )
            self.payment_repo.create(payment)

        logger.info(
            "Payment %s (%s) created in group %s with %d member(s)",
            payment.id,
            data.payment_type.value,
            context.group_id,
            len(selections),
        )
        return payment

    def list_payments(
        self, context: GroupContext, title: str | None = None, page: int = 1
    ) -> dict:
        """Admin listing with aggregates, newest first"""
        limit = settings.PAGE_SIZE
        payments, total = self.payment_repo.list_by_group(
            context.group_id,
            title=title.strip() if title else None,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {
            "payments": [self._summary(p) for p in payments],
            "total_pages": ceil(total / limit),
            "current_page": page,
        }

    def _summary(self, payment: Payment) -> dict:
        return {
            "id": payment.id,
            "title": payment.title,
            "payment_type": payment.payment_type,
            "amount": payment.amount,
            "due_date": payment.due_date,
            "published": payment.published,
            "member_count": len(payment.entries),
            "paid_count": payment.paid_count,
            "total_collected": payment.total_collected,
            "total_amount_paid": payment.total_amount_paid,
            "created_at": payment.created_at,
        }

    def get_payment_detail(self, payment_id: int, context: GroupContext) -> dict:
        """Admin view: full ledger plus type-specific aggregates"""
        payment = self._get_payment(payment_id, context)
        return {
            "id": payment.id,
            "title": payment.title,
            "description": payment.description,
            "payment_type": payment.payment_type,
            "amount": payment.amount,
            "due_date": payment.due_date,
            "published": payment.published,
            "created_by_id": payment.created_by_id,
            "members": [
                {
                    "user_id": entry.user_id,
                    "full_name": entry.user.full_name,
                    "paid": entry.paid,
                    "amount_paid": entry.amount_paid,
                }
                for entry in payment.entries
            ],
            "paid_count": payment.paid_count,
            "total_collected": payment.total_collected,
            "total_amount_paid": payment.total_amount_paid,
            "created_at": payment.created_at,
            "updated_at": payment.updated_at,
        }

    def _member_view(self, payment: Payment, user_id: int) -> dict:
        """Project only the caller's own ledger line"""
        entry = payment.entry_for(user_id)
        return {
            "id": payment.id,
            "title": payment.title,
            "description": payment.description,
            "payment_type": payment.payment_type,
            "amount": payment.amount,
            "due_date": payment.due_date,
            "attached": entry is not None,
            "paid": entry.paid if entry else False,
            "amount_paid": entry.amount_paid if entry else 0,
        }

    def get_member_payment(self, payment_id: int, context: GroupContext) -> dict:
        """
        Member view of one published payment.

        Raises:
            NotFoundException: If the payment is missing, unpublished or in another group
        """
        payment = self._get_payment(payment_id, context)
        if not payment.published:
            raise NotFoundException("Payment not found.")
        return self._member_view(payment, context.user_id)

    def list_member_payments(self, context: GroupContext, page: int = 1) -> dict:
        limit = settings.PAGE_SIZE
        payments, total = self.payment_repo.list_by_group(
            context.group_id, published_only=True, limit=limit, offset=(page - 1) * limit
        )
        return {
            "payments": [self._member_view(p, context.user_id) for p in payments],
            "total_pages": ceil(total / limit),
            "current_page": page,
        }

    def get_member_options(self, payment_id: int, context: GroupContext) -> list[dict]:
        """Every group member with whether (and how) they are on this payment's ledger"""
        payment = self._get_payment(payment_id, context)
        options = []
        for membership in self.membership_repo.get_active_members(context.group_id):
            entry = payment.entry_for(membership.user_id)
            options.append(
                {
                    "user_id": membership.user_id,
                    "full_name": membership.user.full_name,
                    "member_number": membership.member_number,
                    "attached": entry is not None,
                    "paid": entry.paid if entry else False,
                    "amount_paid": entry.amount_paid if entry else 0,
                }
            )
        return options

    def mark_paid(
        self, payment_id: int, member_ids: list[int], paid: bool, context: GroupContext
    ) -> int:
        """
        Set the paid flag of the given members on a required payment.

        Only ledger entries already present are touched; ids without an entry
        are ignored rather than attached.

        Returns:
            Number of ledger entries modified

        Raises:
            ForbiddenException: If the payment is not in the caller's group
                (a missing id gets the same answer, so existence is not leaked)
            ValidationException: If the payment is not a required payment
            NotFoundException: If none of the ids are on the ledger (NO_MATCHING_MEMBERS)
        """
        payment = self.payment_repo.get_by_id_and_group(payment_id, context.group_id)
        if not payment:
            raise ForbiddenException("You are not authorized to update this payment.")
        if payment.payment_type != PaymentType.REQUIRED:
            raise ValidationException(
                "Only required payments are marked paid; edit the amounts paid instead."
            )

        with transaction(self.db, "mark payments"):
            modified = self.payment_repo.set_paid(
                payment_id, context.group_id, set(member_ids), paid
            )

        if modified == 0:
            raise NotFoundException(
                "None of the selected members are on this payment.", code="NO_MATCHING_MEMBERS"
            )
        logger.info(
            "Payment %s: %d member(s) marked %s", payment_id, modified, "paid" if paid else "unpaid"
        )
        return modified

    def update_payment(
        self,
        payment_id: int,
        payment_type: PaymentType,
        data: PaymentUpdate,
        context: GroupContext,
    ) -> Payment:
        """
        Edit a payment through its type-specific endpoint.

        Ledger handling differs by type:
        - REQUIRED: ``members`` is the new roster. Ids carried over keep their
          paid flag and amount; ids left out lose their entry.
        - CONTRIBUTION/DONATION: ``members`` is merged by user id, setting
          amount_paid (and the derived paid flag); other entries are untouched.

        Raises:
            NotFoundException: If the payment is not in the caller's group
            ValidationException: If the type does not match or a member is invalid
        """
        payment = self._get_payment(payment_id, context)
        if payment.payment_type != payment_type:
            raise ValidationException(
                f"This is a {payment.payment_type.value} payment, not a {payment_type.value} payment."
            )
        if data.amount is not None and payment_type != PaymentType.REQUIRED:
            raise ValidationException("Only required payments have a fixed amount.")

        selections = None
        if data.members is not None:
            selections = self._validate_members(context.group_id, data.members)

        with transaction(self.db, "payment update"):
            for field in ("title", "description", "amount", "due_date", "published"):
                if field in data.model_fields_set and getattr(data, field) is not None:
                    setattr(payment, field, getattr(data, field))
            if "due_date" in data.model_fields_set and data.due_date is None:
                payment.due_date = None

            if selections is not None:
                if payment_type == PaymentType.REQUIRED:
                    self._replace_roster(payment, selections)
                else:
                    self._upsert_amounts(payment, selections)
            self.payment_repo.update(payment)

        return payment

    def _replace_roster(
        self, payment: Payment, selections: dict[int, PaymentMemberSelection]
    ) -> None:
        existing = {entry.user_id: entry for entry in payment.entries}
        for user_id, entry in existing.items():
            if user_id not in selections:
                payment.entries.remove(entry)
        for user_id, selection in selections.items():
            if user_id not in existing:
                payment.entries.append(
                    PaymentEntry(user_id=user_id, paid=False, amount_paid=selection.amount_paid)
                )

    def _upsert_amounts(
        self, payment: Payment, selections: dict[int, PaymentMemberSelection]
    ) -> None:
        existing = {entry.user_id: entry for entry in payment.entries}
        for user_id, selection in selections.items():
            entry = existing.get(user_id)
            if entry is None:
                entry = PaymentEntry(user_id=user_id)
                payment.entries.append(entry)
            entry.amount_paid = selection.amount_paid
            entry.paid = _derived_paid(payment.payment_type, selection.amount_paid)

    def delete_payments(self, payment_ids: list[int], context: GroupContext) -> int:
        """
        Delete payments of the caller's group together with their ledgers.

        Raises:
            NotFoundException: If none of the ids belong to the group
        """
        with transaction(self.db, "payment deletion"):
            deleted = self.payment_repo.delete_by_ids_and_group(set(payment_ids), context.group_id)
            if deleted == 0:
                raise NotFoundException("Payment not found.")
        return deleted
