from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.group_membership import MemberStatus
from app.models.permission import Permission
from app.models.user import Gender
from app.schemas.common import lower_email


class ApplicantProfile(BaseModel):
    """Personal details of someone registering through create/join group"""

    model_config = {"str_strip_whitespace": True}

    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr = Field(...)
    phone_number: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=8, description="At least 8 characters")
    gender: Gender = Gender.OTHER

    @field_validator("email")
    @classmethod
    def lower_case_email(cls, value: str) -> str:
        return lower_email(value)


class CreateGroupRequest(ApplicantProfile):
    """Register a new user together with the group they own"""

    group_name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=2000)
    group_password: str = Field(..., min_length=1)


class CreateGroupResponse(BaseModel):
    message: str
    user_id: int
    group_id: int
    join_code: str
    member_number: str


class CreateAnotherGroupRequest(BaseModel):
    """Existing (verified) user creates an additional group"""

    model_config = {"str_strip_whitespace": True}

    group_name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=2000)
    group_password: str = Field(..., min_length=1)


class GroupTokenResponse(BaseModel):
    """Token scoped to the group the caller just switched to"""

    message: str
    token: str
    group_id: int
    group_name: str
    permissions: list[Permission]


class JoinGroupRequest(ApplicantProfile):
    join_code: str = Field(..., min_length=6, max_length=6)
    group_password: str = Field(..., min_length=1)

    @field_validator("join_code")
    @classmethod
    def upper_join_code(cls, value: str) -> str:
        return value.upper()


class JoinAnotherGroupRequest(BaseModel):
    model_config = {"str_strip_whitespace": True}

    join_code: str = Field(..., min_length=6, max_length=6)
    group_password: str = Field(..., min_length=1)

    @field_validator("join_code")
    @classmethod
    def upper_join_code(cls, value: str) -> str:
        return value.upper()


class JoinGroupResponse(BaseModel):
    message: str
    user_id: int
    group_id: int
    member_number: str | None = None
    otp_required: bool = False


class VerifyGroupRequest(BaseModel):
    model_config = {"str_strip_whitespace": True}

    join_code: str = Field(..., min_length=6, max_length=6)
    group_password: str = Field(..., min_length=1)


class VerifyGroupResponse(BaseModel):
    message: str
    group_name: str


class GroupInformationResponse(BaseModel):
    id: int
    name: str
    description: str
    abbreviation: str
    member_count: int
    member_number: str | None = None
    notifications_enabled: bool = False


class GroupUpdate(BaseModel):
    """Update group details (admin / manage_group)"""

    model_config = {"str_strip_whitespace": True}

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)


class GroupPasswordReset(BaseModel):
    group_password: str = Field(..., min_length=1)


class JoinCodeResponse(BaseModel):
    join_code: str


class GroupMemberResponse(BaseModel):
    user_id: int
    full_name: str
    member_number: str


class GroupMemberListResponse(BaseModel):
    members: list[GroupMemberResponse]


class ManagedMemberResponse(BaseModel):
    user_id: int
    full_name: str
    email: str
    phone_number: str
    member_number: str
    status: MemberStatus
    permissions: list[Permission]


class ManagedMemberListResponse(BaseModel):
    members: list[ManagedMemberResponse]
    total_pages: int
    current_page: int


class MemberStatusUpdate(BaseModel):
    status: MemberStatus


class RemoveMembersRequest(BaseModel):
    user_ids: list[int] = Field(..., min_length=1)


class RemoveMembersResponse(BaseModel):
    message: str
    removed_count: int


class NotificationToggleResponse(BaseModel):
    message: str
    notifications_enabled: bool
