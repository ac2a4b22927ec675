from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.payment import PaymentType


class PaymentMemberSelection(BaseModel):
    """A member attached to a payment, optionally with an amount already paid"""

    user_id: int = Field(..., gt=0)
    amount_paid: float = Field(default=0, ge=0)


def _normalize_members(value):
    """Accept bare user ids as well as {user_id, amount_paid} objects"""
    if value is None:
        return value
    return [{"user_id": item} if isinstance(item, int) else item for item in value]


class PaymentCreate(BaseModel):
    """Schema for creating a payment and its ledger"""

    model_config = {"str_strip_whitespace": True}

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=5000)
    payment_type: PaymentType
    amount: float | None = Field(None, gt=0, description="Mandatory for required payments")
    due_date: date | None = None
    published: bool = False
    members: list[PaymentMemberSelection] = Field(default_factory=list)

    @field_validator("members", mode="before")
    @classmethod
    def normalize_members(cls, value):
        return _normalize_members(value)

    @model_validator(mode="after")
    def check_amount(self):
        if self.payment_type == PaymentType.REQUIRED and self.amount is None:
            raise ValueError("Amount is required for required payments.")
        return self


class PaymentUpdate(BaseModel):
    """
    Schema for the type-specific edit endpoints.

    ``members`` replaces the roster for required payments and is merged by
    user id for contribution/donation payments.
    """

    model_config = {"str_strip_whitespace": True}

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    amount: float | None = Field(None, gt=0)
    due_date: date | None = None
    published: bool | None = None
    members: list[PaymentMemberSelection] | None = None

    @field_validator("members", mode="before")
    @classmethod
    def normalize_members(cls, value):
        return _normalize_members(value)


class MarkPaymentsRequest(BaseModel):
    payment_id: int = Field(..., gt=0)
    member_ids: list[int] = Field(..., min_length=1)


class MarkPaymentsResponse(BaseModel):
    message: str
    modified_count: int


class PaymentEntryResponse(BaseModel):
    user_id: int
    full_name: str
    paid: bool
    amount_paid: float


class PaymentDetailResponse(BaseModel):
    """Admin view: full ledger plus aggregates"""

    id: int
    title: str
    description: str
    payment_type: PaymentType
    amount: float | None
    due_date: date | None
    published: bool
    created_by_id: int
    members: list[PaymentEntryResponse]
    paid_count: int
    total_collected: float | None = None
    total_amount_paid: float | None = None
    created_at: datetime
    updated_at: datetime


class PaymentSummaryResponse(BaseModel):
    id: int
    title: str
    payment_type: PaymentType
    amount: float | None
    due_date: date | None
    published: bool
    member_count: int
    paid_count: int
    total_collected: float | None = None
    total_amount_paid: float | None = None
    created_at: datetime


class PaymentListResponse(BaseModel):
    payments: list[PaymentSummaryResponse]
    total_pages: int
    current_page: int


class MemberPaymentResponse(BaseModel):
    """
    Member view of a published payment.

    Only the caller's own ledger line is projected; ``attached`` is False when
    the caller is not tracked for this payment.
    """

    id: int
    title: str
    description: str
    payment_type: PaymentType
    amount: float | None
    due_date: date | None
    attached: bool
    paid: bool
    amount_paid: float


class MemberPaymentListResponse(BaseModel):
    payments: list[MemberPaymentResponse]
    total_pages: int
    current_page: int


class PaymentMemberOption(BaseModel):
    user_id: int
    full_name: str
    member_number: str
    attached: bool
    paid: bool
    amount_paid: float


class PaymentMemberOptionsResponse(BaseModel):
    members: list[PaymentMemberOption]


class CreatedResponse(BaseModel):
    message: str
    id: int


class DeletedResponse(BaseModel):
    message: str
    deleted_count: int
