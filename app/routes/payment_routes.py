from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_permissions
from app.models.group_context import GroupContext
from app.models.payment import PaymentType
from app.models.permission import Permission
from app.schemas.common import IdListRequest
from app.schemas.payment_schemas import (
    CreatedResponse,
    DeletedResponse,
    MarkPaymentsRequest,
    MarkPaymentsResponse,
    MemberPaymentListResponse,
    MemberPaymentResponse,
    PaymentCreate,
    PaymentDetailResponse,
    PaymentListResponse,
    PaymentMemberOptionsResponse,
    PaymentUpdate,
)
from app.services.payment_service import PaymentService

router = APIRouter()

payment_managers = require_permissions(Permission.ADMIN, Permission.MANAGE_PAYMENTS)
payment_viewers = require_permissions(
    Permission.USER, Permission.ADMIN, Permission.MANAGE_PAYMENTS
)


@router.post(
    "/create-payment", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED
)
async def create_payment(
    data: PaymentCreate,
    context: GroupContext = Depends(payment_managers),
    db: Session = Depends(get_db),
):
    """
    Create a payment for the caller's group.

    - **payment_type**: required, contribution or donation
    - **amount**: mandatory for required payments, ignored otherwise
    - **members**: user ids (or ``{user_id, amount_paid}``) to track on the ledger;
      every id must be a member of the group or nothing is created
    """
    service = PaymentService(db)
    payment = service.create_payment(data, context)
    return {"message": "Payment created successfully.", "id": payment.id}


@router.get("/manage-payments", response_model=PaymentListResponse)
async def manage_payments(
    page: int = Query(1, ge=1),
    context: GroupContext = Depends(payment_managers),
    db: Session = Depends(get_db),
):
    """All payments of the group, drafts included, with aggregates"""
    service = PaymentService(db)
    return service.list_payments(context, page=page)


@router.get("/manage-search-payments", response_model=PaymentListResponse)
async def manage_search_payments(
    title: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    context: GroupContext = Depends(payment_managers),
    db: Session = Depends(get_db),
):
    service = PaymentService(db)
    return service.list_payments(context, title=title, page=page)


@router.get("/manage-payment/{payment_id}", response_model=PaymentDetailResponse)
async def manage_payment(
    payment_id: int,
    context: GroupContext = Depends(payment_managers),
    db: Session = Depends(get_db),
):
    """
    Full ledger of one payment.

    Required payments report ``total_collected`` (amount x paid members);
    contribution/donation payments report ``total_amount_paid``.
    """
    service = PaymentService(db)
    return service.get_payment_detail(payment_id, context)


@router.get(
    "/manage-get-payment-members/{payment_id}", response_model=PaymentMemberOptionsResponse
)
async def manage_get_payment_members(
    payment_id: int,
    context: GroupContext = Depends(payment_managers),
    db: Session = Depends(get_db),
):
    """Group members annotated with their ledger state on this payment"""
    service = PaymentService(db)
    return {"members": service.get_member_options(payment_id, context)}


@router.get("/payments", response_model=MemberPaymentListResponse)
async def member_payments(
    page: int = Query(1, ge=1),
    context: GroupContext = Depends(payment_viewers),
    db: Session = Depends(get_db),
):
    """Published payments of the group, each with the caller's own ledger line"""
    service = PaymentService(db)
    return service.list_member_payments(context, page=page)


@router.get("/payment/{payment_id}", response_model=MemberPaymentResponse)
async def member_payment(
    payment_id: int,
    context: GroupContext = Depends(payment_viewers),
    db: Session = Depends(get_db),
):
    service = PaymentService(db)
    return service.get_member_payment(payment_id, context)


@router.post("/manage-mark-payments-as-paid", response_model=MarkPaymentsResponse)
async def mark_payments_as_paid(
    data: MarkPaymentsRequest,
    context: GroupContext = Depends(payment_managers),
    db: Session = Depends(get_db),
):
    """
    Mark members paid on a required payment.

    - **403** if the payment is not in the caller's group
    - **404** if none of the members are on the payment's ledger
    """
    service = PaymentService(db)
    modified = service.mark_paid(data.payment_id, data.member_ids, True, context)
    return {"message": "Payment updated successfully.", "modified_count": modified}


@router.post("/manage-mark-payments-as-unpaid", response_model=MarkPaymentsResponse)
async def mark_payments_as_unpaid(
    data: MarkPaymentsRequest,
    context: GroupContext = Depends(payment_managers),
    db: Session = Depends(get_db),
):
    service = PaymentService(db)
    modified = service.mark_paid(data.payment_id, data.member_ids, False, context)
    return {"message": "Payment updated successfully.", "modified_count": modified}


@router.patch(
    "/manage-edit-{payment_type}-payment/{payment_id}", response_model=PaymentDetailResponse
)
async def edit_payment(
    payment_type: PaymentType,
    payment_id: int,
    data: PaymentUpdate,
    context: GroupContext = Depends(payment_managers),
    db: Session = Depends(get_db),
):
    """
    Edit a payment through the endpoint matching its type.

    - required: ``members`` replaces the roster, carried-over members keep their status
    - contribution/donation: ``members`` sets each listed member's amount paid
    """
    service = PaymentService(db)
    payment = service.update_payment(payment_id, payment_type, data, context)
    return service.get_payment_detail(payment.id, context)


@router.delete("/manage-delete-payment/{payment_id}", response_model=DeletedResponse)
async def delete_payment(
    payment_id: int,
    context: GroupContext = Depends(payment_managers),
    db: Session = Depends(get_db),
):
    service = PaymentService(db)
    deleted = service.delete_payments([payment_id], context)
    return {"message": "Payment deleted successfully.", "deleted_count": deleted}


@router.post("/manage-delete-payments", response_model=DeletedResponse)
async def delete_payments(
    data: IdListRequest,
    context: GroupContext = Depends(payment_managers),
    db: Session = Depends(get_db),
):
    """Delete several payments; ids from other groups are ignored"""
    service = PaymentService(db)
    deleted = service.delete_payments(data.ids, context)
    return {"message": f"{deleted} payment(s) deleted successfully.", "deleted_count": deleted}
