from datetime import datetime, timedelta, UTC

from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import (
    NotFoundException,
    OTPExpiredException,
    OTPInvalidException,
    OTPNotFoundException,
)
from app.core.logging import get_logger
from app.core.security import generate_otp, verify_password
from app.core.transaction import transaction
from app.models.otp_verification import OTPVerification
from app.models.user import User
from app.repositories.otp_repository import OTPRepository
from app.repositories.user_repository import UserRepository

logger = get_logger(__name__)


class OTPService:
    """Issues and confirms one-time email verification codes"""

    def __init__(self, db: Session):
        self.db = db
        self.otp_repo = OTPRepository(db)
        self.user_repo = UserRepository(db)

    def issue(self, user: User) -> str:
        """
        Replace any pending code for the user with a fresh one.

        Must run inside the caller's transaction; the returned plaintext code
        is only for delivery once that transaction has committed.

        Returns:
            The 6-digit code
        """
        self.otp_repo.delete_for_user(user.id)
        code, code_hash = generate_otp()
        self.otp_repo.create(
            OTPVerification(
                user_id=user.id,
                code_hash=code_hash,
                expires_at=datetime.now(UTC) + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
            )
        )
        return code

    def confirm(self, user_id: int, code: str) -> User:
        """
        Verify a code and mark the user as verified.

        An expired record is deleted before OTPExpiredException is raised, so
        the next attempt reports OTP_NOT_FOUND rather than a stale expiry.

        Raises:
            NotFoundException: If user doesn't exist
            OTPNotFoundException: If no code is pending
            OTPExpiredException: If the pending code has expired
            OTPInvalidException: If the code doesn't match
        """
        user = self.user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundException("User not found.")

        record = self.otp_repo.get_by_user(user_id)
        if not record:
            raise OTPNotFoundException("No OTP found. Please request a new one.")

        if record.is_expired(datetime.now(UTC)):
            with transaction(self.db, "expired OTP cleanup"):
                self.otp_repo.delete_for_user(user_id)
            raise OTPExpiredException(
                "OTP has expired. Login with your email to generate a new one."
            )

        if not verify_password(code, record.code_hash):
            raise OTPInvalidException("Invalid OTP.")

        with transaction(self.db, "OTP confirmation"):
            user.verified = True
            user.otp_attempts = 0
            self.user_repo.update(user)
            self.otp_repo.delete_for_user(user_id)

        logger.info("User %s verified their email", user_id)
        return user
