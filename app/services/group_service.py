from enum import Enum as PyEnum
from math import ceil
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import (
    ConflictException,
    ForbiddenException,
    JoinCodeTakenException,
    NotFoundException,
    TransactionException,
    ValidationException,
)
from app.core.identifiers import abbreviate, format_member_number, generate_join_code
from app.core.logging import get_logger
from app.core.mailer import Mailer, send_otp_email
from app.core.security import create_access_token, get_password_hash, verify_password
from app.core.transaction import transaction
from app.models.group import Group
from app.models.group_context import GroupContext
from app.models.group_membership import GroupMembership, MemberStatus
from app.models.permission import MEMBER_PERMISSIONS, OWNER_PERMISSIONS
from app.models.user import User
from app.repositories.group_membership_repository import GroupMembershipRepository
from app.repositories.group_repository import GroupRepository
from app.repositories.user_repository import UserRepository
from app.schemas.group_schemas import (
    CreateAnotherGroupRequest,
    CreateGroupRequest,
    GroupUpdate,
    JoinAnotherGroupRequest,
    JoinGroupRequest,
)
from app.services.otp_service import OTPService

logger = get_logger(__name__)

T = TypeVar("T")

JOIN_CODE_ATTEMPTS = 5


class JoinOutcome(str, PyEnum):
    JOINED = "joined"  # existing account, can log in right away
    JOINED_PENDING_OTP = "joined_pending_otp"  # new account, must confirm OTP first
    ALREADY_MEMBER = "already_member"


class GroupService:
    """Service layer for group lifecycle and membership business logic"""

    def __init__(self, db: Session, mailer: Mailer):
        self.db = db
        self.mailer = mailer
        self.group_repo = GroupRepository(db)
        self.membership_repo = GroupMembershipRepository(db)
        self.user_repo = UserRepository(db)
        self.otp_service = OTPService(db)

    # Creation

    def create_group(self, data: CreateGroupRequest) -> dict:
        """
        Register a new user and the group they own, then send their OTP.

        User, group, owner membership and OTP are written in one transaction.
        No token is returned: the owner must confirm the OTP and log in.

        Raises:
            ConflictException: If the email or phone number is already registered
        """
        if self.user_repo.exists_by_email_or_phone(data.email, data.phone_number):
            raise ConflictException(
                "You already have an account, please login to create a new group."
            )

        password_hash = get_password_hash(data.password)
        group_password_hash = get_password_hash(data.group_password)

        def register():
            user = self._register_user(
                data,
                password_hash,
                "You already have an account, please login to create a new group.",
            )
            group, membership = self._create_owned_group(
                user, data.group_name, data.description, group_password_hash
            )
            return user, group, membership, self.otp_service.issue(user)

        user, group, membership, code = self._run_group_creation(register)

        send_otp_email(self.mailer, user.email, code)
        logger.info("Group %s (%s) created by new user %s", group.id, group.join_code, user.id)
        return {
            "message": "Group and account created successfully. "
            "Please verify your email with the OTP sent.",
            "user_id": user.id,
            "group_id": group.id,
            "join_code": group.join_code,
            "member_number": membership.member_number,
        }

    def create_another_group(
        self, data: CreateAnotherGroupRequest, context: GroupContext
    ) -> dict:
        """
        Create an additional group for an existing user and switch to it.

        Returns:
            A fresh token scoped to the new group
        """
        user = self.user_repo.get_by_id(context.user_id)
        if not user:
            raise NotFoundException("User not found.")

        group_password_hash = get_password_hash(data.group_password)
        group, membership = self._run_group_creation(
            lambda: self._create_owned_group(
                user, data.group_name, data.description, group_password_hash
            )
        )

        logger.info("Group %s created by existing user %s", group.id, user.id)
        return self._token_response(
            user.id, group, membership, f"{group.name} created successfully."
        )

    def _run_group_creation(self, work: Callable[[], T]) -> T:
        """
        Run ``work`` in its own transaction, starting over with a fresh join
        code when the drawn one was taken by a concurrent insert.

        Raises:
            TransactionException: If every attempt lost the join code race
        """
        for attempt in range(1, JOIN_CODE_ATTEMPTS + 1):
            try:
                with transaction(self.db, "group creation"):
                    return work()
            except JoinCodeTakenException:
                logger.warning(
                    "Join code collision on insert (attempt %d of %d)", attempt, JOIN_CODE_ATTEMPTS
                )
        raise TransactionException(
            "Could not allocate a join code for the group; no changes were saved. Please retry."
        )

    def _register_user(
        self, data: CreateGroupRequest | JoinGroupRequest, password_hash: str, conflict_message: str
    ) -> User:
        """Insert an unverified account. Runs inside the caller's transaction."""
        try:
            return self.user_repo.create(
                User(
                    full_name=data.full_name,
                    email=data.email,
                    phone_number=data.phone_number,
                    password_hash=password_hash,
                    gender=data.gender,
                    verified=False,
                )
            )
        except IntegrityError as e:
            # Same email registered between the existence check and this insert
            raise ConflictException(conflict_message) from e

    def _create_owned_group(
        self, owner: User, name: str, description: str, group_password_hash: str
    ) -> tuple[Group, GroupMembership]:
        """Group + owner membership (ABBR-001). Runs inside the caller's transaction."""
        abbreviation = abbreviate(name)
        join_code = self._unique_join_code()
        try:
            group = self.group_repo.create(
                Group(
                    name=name,
                    description=description,
                    password_hash=group_password_hash,
                    join_code=join_code,
                    abbreviation=abbreviation,
                    member_counter=1,
                    created_by_id=owner.id,
                )
            )
        except IntegrityError as e:
            if "join_code" not in str(e.orig):
                raise
            raise JoinCodeTakenException(f"Join code {join_code} is already in use.") from e
        membership = self.membership_repo.create(
            GroupMembership(
                group_id=group.id,
                user_id=owner.id,
                member_number=format_member_number(abbreviation, 1),
                status=MemberStatus.ACTIVE,
                permissions=[p.value for p in OWNER_PERMISSIONS],
            )
        )
        owner.current_group_id = group.id
        self.user_repo.update(owner)
        return group, membership

    def _unique_join_code(self) -> str:
        # Collisions are rare but possible; keep drawing until one is free
        while True:
            join_code = generate_join_code()
            if not self.group_repo.join_code_exists(join_code):
                return join_code
            logger.debug("Join code %s already taken, regenerating", join_code)

    # Joining

    def verify_group(self, join_code: str, group_password: str) -> Group:
        """
        Check a join code and group password pair.

        Raises:
            NotFoundException: If the code is unknown or the password is wrong
        """
        group = self.group_repo.get_by_join_code(join_code)
        if not group or not verify_password(group_password, group.password_hash):
            raise NotFoundException("Invalid group credentials.", code="GROUP_NOT_FOUND")
        return group

    def join_group(self, data: JoinGroupRequest) -> tuple[JoinOutcome, dict]:
        """
        Join a group by code from the public sign-up flow.

        - Unknown email: the account is created unverified, enrolled and sent
          an OTP (JOINED_PENDING_OTP)
        - Known email: its password must match; the account is enrolled and
          can log in straight away (JOINED)
        - Known email that is already a member: nothing changes (ALREADY_MEMBER)

        Raises:
            NotFoundException: If the code/password pair is invalid
            ValidationException: If an existing account's password doesn't match
        """
        group = self.verify_group(data.join_code, data.group_password)

        existing = self.user_repo.get_by_email(data.email)
        if existing:
            if not verify_password(data.password, existing.password_hash):
                raise ValidationException(
                    "An account with this email already exists; the password does not match.",
                    code="INVALID_CREDENTIALS",
                )
            return self._join_existing_user(group, existing)

        password_hash = get_password_hash(data.password)
        with transaction(self.db, "group join"):
            user = self._register_user(
                data,
                password_hash,
                "An account with this email already exists, please login to join the group.",
            )
            membership = self._enroll(group.id, user)
            code = self.otp_service.issue(user)

        send_otp_email(self.mailer, user.email, code)
        logger.info("New user %s joined group %s as %s", user.id, group.id, membership.member_number)
        return JoinOutcome.JOINED_PENDING_OTP, {
            "message": "Joined group successfully. Please verify your email.",
            "user_id": user.id,
            "group_id": group.id,
            "member_number": membership.member_number,
            "otp_required": True,
        }

    def join_another_group(
        self, data: JoinAnotherGroupRequest, context: GroupContext
    ) -> tuple[JoinOutcome, dict]:
        """Join a group by code as the authenticated user"""
        group = self.verify_group(data.join_code, data.group_password)
        user = self.user_repo.get_by_id(context.user_id)
        if not user:
            raise NotFoundException("User not found.")
        return self._join_existing_user(group, user)

    def _join_existing_user(self, group: Group, user: User) -> tuple[JoinOutcome, dict]:
        if self.membership_repo.get_membership(user.id, group.id):
            return JoinOutcome.ALREADY_MEMBER, {
                "message": f"You are already a member of {group.name}. Please login instead.",
                "user_id": user.id,
                "group_id": group.id,
            }

        with transaction(self.db, "group join"):
            membership = self._enroll(group.id, user)

        logger.info("User %s joined group %s as %s", user.id, group.id, membership.member_number)
        return JoinOutcome.JOINED, {
            "message": f"You have joined {group.name}. Please login to continue.",
            "user_id": user.id,
            "group_id": group.id,
            "member_number": membership.member_number,
            "otp_required": False,
        }

    def _enroll(self, group_id: int, user: User) -> GroupMembership:
        """
        Allocate the next member number and add the membership.

        Runs inside the caller's transaction.

        Raises:
            NotFoundException: If the group vanished before the counter was bumped
        """
        allocated = self.group_repo.allocate_member_sequence(group_id)
        if allocated is None:
            raise NotFoundException("Group not found. Invalid join code.", code="GROUP_NOT_FOUND")
        sequence, abbreviation = allocated

        membership = self.membership_repo.create(
            GroupMembership(
                group_id=group_id,
                user_id=user.id,
                member_number=format_member_number(abbreviation, sequence),
                status=MemberStatus.ACTIVE,
                permissions=[p.value for p in MEMBER_PERMISSIONS],
            )
        )
        user.current_group_id = group_id
        self.user_repo.update(user)
        return membership

    # Session

    def switch_group(self, group_id: int, context: GroupContext) -> dict:
        """
        Make another group the active one and reissue the token for it.

        Raises:
            NotFoundException: If the caller is not a member (NOT_A_MEMBER)
            ForbiddenException: If the membership is inactive (MEMBER_INACTIVE)
        """
        membership = self.membership_repo.get_membership(context.user_id, group_id)
        if not membership:
            raise NotFoundException("You are not a member of this group.", code="NOT_A_MEMBER")
        if not membership.is_active:
            raise ForbiddenException(
                "Your membership in this group is inactive.", code="MEMBER_INACTIVE"
            )

        user = self.user_repo.get_by_id(context.user_id)
        with transaction(self.db, "group switch"):
            user.current_group_id = group_id
            self.user_repo.update(user)

        return self._token_response(
            user.id, membership.group, membership, f"Switched to {membership.group.name}."
        )

    def _token_response(
        self, user_id: int, group: Group, membership: GroupMembership, message: str
    ) -> dict:
        return {
            "message": message,
            "token": create_access_token(user_id, group.id, membership.permissions),
            "group_id": group.id,
            "group_name": group.name,
            "permissions": membership.permissions,
        }

    # Group information

    def _current_group(self, context: GroupContext) -> Group:
        group = self.group_repo.get_by_id(context.group_id)
        if not group:
            raise NotFoundException("Group not found.")
        return group

    def _scoped_group(self, group_id: int, context: GroupContext) -> Group:
        """The path's group, which must be the token's group; anything else is not found"""
        if group_id != context.group_id:
            raise NotFoundException("Group not found.")
        return self._current_group(context)

    def get_group_information(self, context: GroupContext) -> dict:
        group = self._current_group(context)
        membership = self.membership_repo.get_membership(context.user_id, group.id)
        return {
            "id": group.id,
            "name": group.name,
            "description": group.description,
            "abbreviation": group.abbreviation,
            "member_count": len(self.membership_repo.get_active_members(group.id)),
            "member_number": membership.member_number if membership else None,
            "notifications_enabled": membership.notifications_enabled if membership else False,
        }

    def update_group(self, data: GroupUpdate, context: GroupContext) -> dict:
        """Update name/description. The abbreviation is fixed at creation so member numbers stay stable."""
        group = self._current_group(context)
        with transaction(self.db, "group update"):
            if data.name is not None:
                group.name = data.name
            if data.description is not None:
                group.description = data.description
            self.group_repo.update(group)
        return self.get_group_information(context)

    def reset_group_password(self, group_password: str, context: GroupContext) -> None:
        group = self._current_group(context)
        with transaction(self.db, "group password reset"):
            group.password_hash = get_password_hash(group_password)
            self.group_repo.update(group)
        logger.info("Group %s password reset by user %s", group.id, context.user_id)

    def fetch_join_code(self, group_id: int, context: GroupContext) -> str:
        return self._scoped_group(group_id, context).join_code

    def toggle_notifications(self, context: GroupContext) -> bool:
        membership = self.membership_repo.get_membership(context.user_id, context.group_id)
        if not membership:
            raise NotFoundException("You are not a member of this group.", code="NOT_A_MEMBER")
        with transaction(self.db, "notification toggle"):
            membership.notifications_enabled = not membership.notifications_enabled
            self.membership_repo.update(membership)
        return membership.notifications_enabled

    # Members

    def get_active_members(self, group_id: int, context: GroupContext) -> list[dict]:
        group = self._scoped_group(group_id, context)
        return [
            {
                "user_id": m.user_id,
                "full_name": m.user.full_name,
                "member_number": m.member_number,
            }
            for m in self.membership_repo.get_active_members(group.id)
        ]

    def search_members(
        self,
        context: GroupContext,
        full_name: str | None = None,
        email: str | None = None,
        page: int = 1,
    ) -> dict:
        limit = settings.PAGE_SIZE
        memberships, total = self.membership_repo.search_members(
            context.group_id,
            full_name=full_name.strip() if full_name else None,
            email=email.strip() if email else None,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {
            "members": [
                {
                    "user_id": m.user_id,
                    "full_name": m.user.full_name,
                    "email": m.user.email,
                    "phone_number": m.user.phone_number,
                    "member_number": m.member_number,
                    "status": m.status,
                    "permissions": m.permissions,
                }
                for m in memberships
            ],
            "total_pages": ceil(total / limit),
            "current_page": page,
        }

    def _check_manageable(self, group: Group, user_ids: set[int], context: GroupContext) -> None:
        if context.user_id in user_ids:
            raise ForbiddenException("You cannot change your own membership here.")
        if group.created_by_id in user_ids:
            raise ForbiddenException("The group creator cannot be removed or deactivated.")

    def set_member_status(
        self, user_id: int, status: MemberStatus, context: GroupContext
    ) -> GroupMembership:
        """Soft removal: an inactive member keeps their number but cannot switch into the group"""
        group = self._current_group(context)
        self._check_manageable(group, {user_id}, context)

        membership = self.membership_repo.get_membership(user_id, group.id)
        if not membership:
            raise NotFoundException("Member not found in this group.")

        with transaction(self.db, "member status update"):
            membership.status = status
            self.membership_repo.update(membership)
        logger.info("Member %s of group %s set %s", user_id, group.id, status.value)
        return membership

    def remove_member(self, user_id: int, context: GroupContext) -> int:
        """
        Remove one member from the group.

        Raises:
            ForbiddenException: If removing yourself or the group creator
            NotFoundException: If the user is not a member
        """
        return self.remove_members([user_id], context)

    def remove_members(self, user_ids: list[int], context: GroupContext) -> int:
        """
        Remove several members at once.

        Membership rows and the users' active-group pointers are cleared in one
        transaction. Their member numbers are never handed out again.

        Returns:
            Number of members removed
        """
        group = self._current_group(context)
        ids = set(user_ids)
        self._check_manageable(group, ids, context)

        with transaction(self.db, "member removal"):
            removed = self.membership_repo.delete_members(group.id, ids)
            if removed == 0:
                raise NotFoundException("Member not found in this group.")

        logger.info("Removed %d member(s) from group %s", removed, group.id)
        return removed
