import os

# Settings are read at import time, so the environment must be in place first
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-group-api")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MAIL_BACKEND"] = "log"

import re
import pytest
from datetime import datetime, timedelta, UTC
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from jose import jwt

from app.database import get_db
from app.dependencies import get_mailer
from app.models.base import Base
from app.config import settings
from app.core.identifiers import abbreviate, format_member_number, generate_join_code
from app.core.security import get_password_hash
# Import all model classes to ensure they're registered with SQLAlchemy
from app.models.user import User
from app.models.group import Group
from app.models.group_membership import GroupMembership, MemberStatus
from app.models.otp_verification import OTPVerification
from app.models.payment import Payment, PaymentEntry
from app.models.records import Announcement, Constitution, Minutes, Expense
from app.models.permission import Permission, OWNER_PERMISSIONS, MEMBER_PERMISSIONS
from app.repositories.group_repository import GroupRepository
# Import FastAPI app AFTER model imports
from app.main import app

# Test database (SQLite in-memory for speed)
# Use StaticPool to ensure all connections share the same in-memory database
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

DEFAULT_PASSWORD = "password123"
GROUP_PASSWORD = "club-secret"


class FakeMailer:
    """Captures outgoing mail so tests can read OTP codes"""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to_email: str, subject: str, body: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP relay unavailable")
        self.sent.append((to_email, subject, body))

    def last_code_for(self, email: str) -> str | None:
        for to_email, _, body in reversed(self.sent):
            if to_email == email:
                return re.search(r"\b(\d{6})\b", body).group(1)
        return None


@pytest.fixture(scope="function")
def db_session():
    """Create fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def mailer():
    return FakeMailer()


@pytest.fixture(scope="function")
def client(db_session, mailer):
    """FastAPI test client with test database and captured mail"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def create_test_token(
    user_id: int,
    group_id: int,
    permissions=(Permission.USER,),
    expired: bool = False,
) -> str:
    """
    Generate valid JWT token for testing.

    Args:
        user_id: User ID to embed in 'sub' claim
        group_id: Group the token is scoped to
        permissions: Permissions held in that group
        expired: If True, create expired token

    Returns:
        Encoded JWT token
    """
    if expired:
        exp = datetime.now(UTC) - timedelta(minutes=5)
    else:
        exp = datetime.now(UTC) + timedelta(minutes=15)

    payload = {
        "sub": str(user_id),
        "group_id": group_id,
        "permissions": [Permission(p).value for p in permissions],
        "exp": exp,
        "iat": datetime.now(UTC),
    }

    token = jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")
    return token


def headers_for(user_id: int, group_id: int, permissions=(Permission.USER,)) -> dict:
    token = create_test_token(user_id, group_id, permissions)
    return {"Authorization": f"Bearer {token}"}


def create_user(
    db,
    email: str,
    full_name: str = "Test User",
    phone_number: str | None = None,
    password: str = DEFAULT_PASSWORD,
    verified: bool = True,
) -> User:
    user = User(
        email=email,
        full_name=full_name,
        phone_number=phone_number or f"+234{abs(hash(email)) % 10**10:010d}",
        password_hash=get_password_hash(password),
        verified=verified,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_group(db, owner: User, name: str = "Lagos Social Club", group_password: str = GROUP_PASSWORD) -> Group:
    """Group owned by ``owner``, who holds member number ABBR-001"""
    abbreviation = abbreviate(name)
    group = Group(
        name=name,
        description=f"{name} test group",
        password_hash=get_password_hash(group_password),
        join_code=generate_join_code(),
        abbreviation=abbreviation,
        member_counter=1,
        created_by_id=owner.id,
    )
    db.add(group)
    db.flush()
    db.add(
        GroupMembership(
            group_id=group.id,
            user_id=owner.id,
            member_number=format_member_number(abbreviation, 1),
            permissions=[p.value for p in OWNER_PERMISSIONS],
        )
    )
    owner.current_group_id = group.id
    db.commit()
    db.refresh(group)
    return group


def add_member(
    db,
    group: Group,
    user: User,
    permissions=MEMBER_PERMISSIONS,
    status: MemberStatus = MemberStatus.ACTIVE,
) -> GroupMembership:
    """Enroll through the atomic counter, exactly as joining does"""
    sequence, abbreviation = GroupRepository(db).allocate_member_sequence(group.id)
    membership = GroupMembership(
        group_id=group.id,
        user_id=user.id,
        member_number=format_member_number(abbreviation, sequence),
        status=status,
        permissions=[Permission(p).value for p in permissions],
    )
    db.add(membership)
    user.current_group_id = group.id
    db.commit()
    db.refresh(membership)
    return membership


@pytest.fixture
def owner(db_session):
    return create_user(db_session, "owner@example.com", full_name="Ada Owner", phone_number="+2348000000001")


@pytest.fixture
def group(db_session, owner):
    """Lagos Social Club (abbreviation LSC) owned by ``owner`` as LSC-001"""
    return create_group(db_session, owner)


@pytest.fixture
def owner_headers(owner, group):
    return headers_for(owner.id, group.id, OWNER_PERMISSIONS)


@pytest.fixture
def member(db_session, group):
    user = create_user(db_session, "member@example.com", full_name="Bola Member", phone_number="+2348000000002")
    add_member(db_session, group, user)
    return user


@pytest.fixture
def member_headers(member, group):
    return headers_for(member.id, group.id, MEMBER_PERMISSIONS)


@pytest.fixture
def other_owner(db_session):
    return create_user(db_session, "rival@example.com", full_name="Chidi Rival", phone_number="+2348000000003")


@pytest.fixture
def other_group(db_session, other_owner):
    return create_group(db_session, other_owner, name="Abuja Book Circle")


@pytest.fixture
def other_owner_headers(other_owner, other_group):
    return headers_for(other_owner.id, other_group.id, OWNER_PERMISSIONS)
