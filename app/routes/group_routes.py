from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.core.mailer import Mailer
from app.database import get_db
from app.dependencies import get_mailer, require_permissions
from app.models.group_context import GroupContext
from app.models.permission import Permission
from app.schemas.common import MessageResponse
from app.schemas.group_schemas import (
    CreateAnotherGroupRequest,
    CreateGroupRequest,
    CreateGroupResponse,
    GroupInformationResponse,
    GroupMemberListResponse,
    GroupPasswordReset,
    GroupTokenResponse,
    GroupUpdate,
    JoinAnotherGroupRequest,
    JoinCodeResponse,
    JoinGroupRequest,
    JoinGroupResponse,
    ManagedMemberListResponse,
    MemberStatusUpdate,
    NotificationToggleResponse,
    RemoveMembersRequest,
    RemoveMembersResponse,
    VerifyGroupRequest,
    VerifyGroupResponse,
)
from app.services.group_service import GroupService, JoinOutcome

# Endpoints that run bcrypt are plain def so they execute in the threadpool
public_router = APIRouter()
router = APIRouter()

JOIN_STATUS_CODES = {
    JoinOutcome.JOINED_PENDING_OTP: status.HTTP_201_CREATED,
    JoinOutcome.JOINED: status.HTTP_200_OK,
    JoinOutcome.ALREADY_MEMBER: status.HTTP_202_ACCEPTED,
}

admin_only = require_permissions(Permission.ADMIN)
member_managers = require_permissions(Permission.ADMIN, Permission.MANAGE_MEMBERS)
group_managers = require_permissions(Permission.ADMIN, Permission.MANAGE_GROUP)


# Public


@public_router.post(
    "/create-group", response_model=CreateGroupResponse, status_code=status.HTTP_201_CREATED
)
def create_group(
    data: CreateGroupRequest,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Create a group together with its owner's account.

    - Owner becomes member ``{ABBR}-001`` with admin permissions
    - An OTP is emailed; the owner must confirm it before logging in
    - **409** if the email or phone number is already registered
    """
    service = GroupService(db, mailer)
    return service.create_group(data)


@public_router.post(
    "/join-group",
    response_model=JoinGroupResponse,
    responses={
        201: {"description": "New account created; OTP confirmation required"},
        202: {"description": "Already a member; log in instead"},
    },
)
def join_group(
    data: JoinGroupRequest,
    response: Response,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Join a group with its join code and group password"""
    service = GroupService(db, mailer)
    outcome, body = service.join_group(data)
    response.status_code = JOIN_STATUS_CODES[outcome]
    return body


@public_router.post("/verify-group", response_model=VerifyGroupResponse)
def verify_group(
    data: VerifyGroupRequest,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Check a join code / group password pair before filling in the sign-up form"""
    service = GroupService(db, mailer)
    group = service.verify_group(data.join_code, data.group_password)
    return {
        "message": f"{group.name} verified, please fill out your information.",
        "group_name": group.name,
    }


# Any member


@router.post(
    "/create-another-group",
    response_model=GroupTokenResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_another_group(
    data: CreateAnotherGroupRequest,
    context: GroupContext = Depends(require_permissions()),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Create another group as the logged-in user; returns a token for the new group"""
    service = GroupService(db, mailer)
    return service.create_another_group(data, context)


@router.post(
    "/join-another-group",
    response_model=JoinGroupResponse,
    responses={202: {"description": "Already a member"}},
)
def join_another_group(
    data: JoinAnotherGroupRequest,
    response: Response,
    context: GroupContext = Depends(require_permissions()),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Join another group as the logged-in user"""
    service = GroupService(db, mailer)
    outcome, body = service.join_another_group(data, context)
    response.status_code = JOIN_STATUS_CODES[outcome]
    return body


@router.post("/switch-group/{group_id}", response_model=GroupTokenResponse)
async def switch_group(
    group_id: int,
    context: GroupContext = Depends(require_permissions()),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Switch the active group.

    - **404** if not a member, **403** if the membership is inactive
    - Returns a token carrying the permissions held in the target group
    """
    service = GroupService(db, mailer)
    return service.switch_group(group_id, context)


@router.get("/group-information", response_model=GroupInformationResponse)
async def group_information(
    context: GroupContext = Depends(require_permissions()),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    service = GroupService(db, mailer)
    return service.get_group_information(context)


@router.patch("/toggle-group-notifications", response_model=NotificationToggleResponse)
async def toggle_group_notifications(
    context: GroupContext = Depends(require_permissions()),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    service = GroupService(db, mailer)
    enabled = service.toggle_notifications(context)
    return {
        "message": f"Notifications {'enabled' if enabled else 'disabled'}.",
        "notifications_enabled": enabled,
    }


# Admin and group managers


@router.patch("/manage-update-group-information", response_model=GroupInformationResponse)
async def update_group_information(
    data: GroupUpdate,
    context: GroupContext = Depends(group_managers),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    service = GroupService(db, mailer)
    return service.update_group(data, context)


@router.post("/manage-reset-group-password", response_model=MessageResponse)
def reset_group_password(
    data: GroupPasswordReset,
    context: GroupContext = Depends(admin_only),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    service = GroupService(db, mailer)
    service.reset_group_password(data.group_password, context)
    return {"message": "Group password updated."}


@router.get("/fetch-group-join-code/{group_id}", response_model=JoinCodeResponse)
async def fetch_group_join_code(
    group_id: int,
    context: GroupContext = Depends(admin_only),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Reveal the join code of the caller's group (**404** for any other group)"""
    service = GroupService(db, mailer)
    return {"join_code": service.fetch_join_code(group_id, context)}


@router.get("/group-members/{group_id}", response_model=GroupMemberListResponse)
async def group_members(
    group_id: int,
    context: GroupContext = Depends(admin_only),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Active members of the caller's group"""
    service = GroupService(db, mailer)
    return {"members": service.get_active_members(group_id, context)}


@router.get("/admin-users", response_model=ManagedMemberListResponse)
async def admin_users(
    full_name: str | None = Query(None),
    email: str | None = Query(None),
    page: int = Query(1, ge=1),
    context: GroupContext = Depends(member_managers),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Paginated member directory, searchable by name and email"""
    service = GroupService(db, mailer)
    return service.search_members(context, full_name=full_name, email=email, page=page)


@router.patch("/manage-member-status/{user_id}", response_model=MessageResponse)
async def manage_member_status(
    user_id: int,
    data: MemberStatusUpdate,
    context: GroupContext = Depends(member_managers),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Activate or deactivate a member without removing them"""
    service = GroupService(db, mailer)
    membership = service.set_member_status(user_id, data.status, context)
    return {"message": f"Member {membership.member_number} is now {data.status.value}."}


@router.post("/manage-remove-member/{user_id}", response_model=RemoveMembersResponse)
@router.delete("/manage-remove-member/{user_id}", response_model=RemoveMembersResponse)
async def manage_remove_member(
    user_id: int,
    context: GroupContext = Depends(member_managers),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Remove a member from the group.

    - Cannot remove yourself or the group creator
    - The member number is retired, never reissued
    """
    service = GroupService(db, mailer)
    removed = service.remove_member(user_id, context)
    return {"message": "Member removed successfully.", "removed_count": removed}


@router.post("/manage-remove-members", response_model=RemoveMembersResponse)
async def manage_remove_members(
    data: RemoveMembersRequest,
    context: GroupContext = Depends(member_managers),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    service = GroupService(db, mailer)
    removed = service.remove_members(data.user_ids, context)
    return {"message": f"{removed} member(s) removed successfully.", "removed_count": removed}
