from sqlalchemy import delete
from sqlalchemy.orm import Session

from app.models.otp_verification import OTPVerification


class OTPRepository:
    """Repository for OTPVerification records"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_user(self, user_id: int) -> OTPVerification | None:
        return self.db.query(OTPVerification).filter(OTPVerification.user_id == user_id).first()

    def delete_for_user(self, user_id: int) -> None:
        self.db.execute(
            delete(OTPVerification)
            .where(OTPVerification.user_id == user_id)
            .execution_options(synchronize_session=False)
        )

    def create(self, record: OTPVerification) -> OTPVerification:
        self.db.add(record)
        self.db.flush()
        return record
