from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.exceptions import ForbiddenException, UnauthorizedException
from app.core.mailer import Mailer, build_mailer
from app.core.security import decode_access_token
from app.models.group_context import GroupContext
from app.models.permission import Permission

# auto_error=False so a missing header maps to our 401 body
security = HTTPBearer(auto_error=False)


async def get_group_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> GroupContext:
    """
    FastAPI dependency to validate the JWT and build the group context.

    Flow:
    1. Extract token from Authorization: Bearer <token>
    2. Validate signature and expiry (fails closed on any error)
    3. Return user id, group id and that group's permissions

    Raises:
        UnauthorizedException: If no bearer token was sent (401)
        TokenInvalidException / TokenExpiredException: If the token is bad (403)
    """
    if credentials is None:
        raise UnauthorizedException("Please login to continue.")

    payload = decode_access_token(credentials.credentials)
    return GroupContext(
        user_id=payload["sub"],
        group_id=payload["group_id"],
        permissions=payload["permissions"],
    )


def require_permissions(*required: Permission):
    """
    Build a dependency admitting callers holding ANY of ``required``.

    With no arguments every valid token holder is admitted.

    Usage:
        @router.get("/manage-payments")
        async def manage_payments(
            context: GroupContext = Depends(require_permissions(Permission.ADMIN)),
        ): ...
    """

    async def check_permissions(
        context: GroupContext = Depends(get_group_context),
    ) -> GroupContext:
        if not context.has_any(required):
            raise ForbiddenException(
                "You don't have access to this action.", code="PERMISSION_DENIED"
            )
        return context

    return check_permissions


def get_mailer(request: Request) -> Mailer:
    """The mailer built at startup; tests override this dependency"""
    mailer = getattr(request.app.state, "mailer", None)
    if mailer is None:
        mailer = build_mailer()
        request.app.state.mailer = mailer
    return mailer
