from sqlalchemy.orm import Session

from app.models.user import User


class UserRepository:
    """Repository for User model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> User | None:
        return self.db.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        """Case-insensitive lookup (emails are stored lower-cased)"""
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def exists_by_email_or_phone(self, email: str, phone_number: str) -> bool:
        return (
            self.db.query(User.id)
            .filter((User.email == email.strip().lower()) | (User.phone_number == phone_number))
            .first()
            is not None
        )

    def create(self, user: User) -> User:
        """Add user and flush to assign its ID. Caller commits."""
        self.db.add(user)
        self.db.flush()
        return user

    def update(self, user: User) -> User:
        self.db.flush()
        return user
