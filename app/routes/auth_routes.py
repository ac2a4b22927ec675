from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.core.mailer import Mailer
from app.database import get_db
from app.dependencies import get_mailer, require_permissions
from app.models.group_context import GroupContext
from app.schemas.auth_schemas import (
    LoginRequest,
    LoginResponse,
    OTPConfirmRequest,
    OTPRequiredResponse,
    UserProfileResponse,
)
from app.schemas.common import MessageResponse
from app.services.auth_service import AuthService
from app.services.otp_service import OTPService

# Endpoints that run bcrypt are plain def so they execute in the threadpool
public_router = APIRouter()
router = APIRouter()


@public_router.post(
    "/login",
    response_model=LoginResponse | OTPRequiredResponse,
    responses={202: {"model": OTPRequiredResponse, "description": "OTP confirmation required"}},
)
def login(
    data: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Log in with email and password.

    - Verified users get a token scoped to their current group
    - Unverified users get **202** and a fresh OTP by email
    """
    service = AuthService(db, mailer)
    result = service.login(data.email, data.password)

    if result["otp_required"]:
        response.status_code = status.HTTP_202_ACCEPTED
        return OTPRequiredResponse(
            message="Please verify your email with the OTP sent.",
            user_id=result["user_id"],
        )
    return LoginResponse(message="Logged In Successfully!", token=result["token"], user=result["user"])


@public_router.post("/confirm-otp", response_model=MessageResponse)
def confirm_otp(data: OTPConfirmRequest, db: Session = Depends(get_db)):
    """Confirm the emailed OTP and mark the account verified"""
    service = OTPService(db)
    service.confirm(data.user_id, data.otp)
    return {"message": "OTP verified successfully. You can now log in."}


@router.get("/user-profile", response_model=UserProfileResponse)
async def user_profile(
    context: GroupContext = Depends(require_permissions()),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Profile of the authenticated user with every group they belong to"""
    service = AuthService(db, mailer)
    return service.get_profile(context.user_id)
