from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from app.core.logging import get_logger
from app.core.mailer import Mailer, send_otp_email
from app.core.security import create_access_token, verify_password
from app.core.transaction import transaction
from app.models.group_membership import GroupMembership
from app.models.user import User
from app.repositories.group_membership_repository import GroupMembershipRepository
from app.repositories.user_repository import UserRepository
from app.services.otp_service import OTPService

logger = get_logger(__name__)


class AuthService:
    """Login and profile logic"""

    def __init__(self, db: Session, mailer: Mailer):
        self.db = db
        self.mailer = mailer
        self.user_repo = UserRepository(db)
        self.membership_repo = GroupMembershipRepository(db)
        self.otp_service = OTPService(db)

    def login(self, email: str, password: str) -> dict:
        """
        Check credentials and issue a token for the user's current group.

        Unverified users get a fresh OTP instead of a token; each such
        issuance counts against OTP_MAX_ATTEMPTS.

        Returns:
            {"otp_required": True, "user_id": ...} or
            {"otp_required": False, "token": ..., "user": {...}}

        Raises:
            NotFoundException: If no account has this email
            ValidationException: If the password is wrong or the user has no group
            ForbiddenException: If OTP attempts are exhausted or every membership is inactive
        """
        user = self.user_repo.get_by_email(email)
        if not user:
            raise NotFoundException("User does not exist.")

        if not verify_password(password, user.password_hash):
            raise ValidationException("Invalid login details.", code="INVALID_CREDENTIALS")

        if not user.verified:
            if user.otp_attempts >= settings.OTP_MAX_ATTEMPTS:
                raise ForbiddenException(
                    "You have exhausted your OTP attempts. Contact the admin.",
                    code="OTP_ATTEMPTS_EXHAUSTED",
                )
            with transaction(self.db, "login OTP issuance"):
                user.otp_attempts += 1
                code = self.otp_service.issue(user)
            send_otp_email(self.mailer, user.email, code)
            return {"otp_required": True, "user_id": user.id}

        membership = self._session_membership(user)

        with transaction(self.db, "login"):
            user.otp_attempts = 0
            user.current_group_id = membership.group_id
            self.user_repo.update(user)

        token = create_access_token(user.id, membership.group_id, membership.permissions)
        logger.info("User %s logged in to group %s", user.id, membership.group_id)
        return {
            "otp_required": False,
            "token": token,
            "user": {
                "user_id": user.id,
                "current_group_id": membership.group_id,
                "group_name": membership.group.name,
                "permissions": membership.permissions,
            },
        }

    def _session_membership(self, user: User) -> GroupMembership:
        """The current group's membership, or the first active one if that is gone or inactive"""
        memberships = self.membership_repo.get_user_memberships(user.id)
        if not memberships:
            raise ValidationException("No group found for your account.", code="NO_GROUP")

        current = next((m for m in memberships if m.group_id == user.current_group_id), None)
        if current and current.is_active:
            return current

        fallback = next((m for m in memberships if m.is_active), None)
        if not fallback:
            raise ForbiddenException(
                "Your membership is inactive. Contact the group admin.",
                code="MEMBER_INACTIVE",
            )
        return fallback

    def get_profile(self, user_id: int) -> dict:
        user = self.user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundException("User not found.")

        memberships = self.membership_repo.get_user_memberships(user.id)
        return {
            "id": user.id,
            "full_name": user.full_name,
            "email": user.email,
            "phone_number": user.phone_number,
            "bio": user.bio,
            "gender": user.gender,
            "verified": user.verified,
            "current_group_id": user.current_group_id,
            "groups": [
                {
                    "group_id": m.group_id,
                    "name": m.group.name,
                    "description": m.group.description,
                    "member_number": m.member_number,
                    "status": m.status,
                    "permissions": m.permissions,
                }
                for m in memberships
            ],
            "created_at": user.created_at,
            "updated_at": user.updated_at,
        }
