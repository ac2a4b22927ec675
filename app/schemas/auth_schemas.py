from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.group_membership import MemberStatus
from app.models.permission import Permission
from app.models.user import Gender
from app.schemas.common import lower_email


class LoginRequest(BaseModel):
    """Email + password login"""

    model_config = {"str_strip_whitespace": True}

    email: EmailStr = Field(...)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def lower_case_email(cls, value: str) -> str:
        return lower_email(value)


class SessionUser(BaseModel):
    user_id: int
    current_group_id: int
    group_name: str
    permissions: list[Permission]


class LoginResponse(BaseModel):
    message: str
    token: str
    user: SessionUser


class OTPRequiredResponse(BaseModel):
    """Returned with 202 when the user must confirm an OTP before logging in"""

    message: str
    user_id: int


class OTPConfirmRequest(BaseModel):
    model_config = {"str_strip_whitespace": True}

    user_id: int = Field(..., gt=0)
    otp: str = Field(..., pattern=r"^\d{6}$")


class UserMembershipResponse(BaseModel):
    group_id: int
    name: str
    description: str
    member_number: str
    status: MemberStatus
    permissions: list[Permission]


class UserProfileResponse(BaseModel):
    id: int
    full_name: str
    email: str
    phone_number: str
    bio: str
    gender: Gender
    verified: bool
    current_group_id: int | None
    groups: list[UserMembershipResponse]
    created_at: datetime
    updated_at: datetime
