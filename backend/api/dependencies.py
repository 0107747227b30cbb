from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from core.authorization import is_authorized
from core.errors import ForbiddenError, UnauthorizedError
from core.security import bearer_scheme, verify_token
from schemas.user_schema import CurrentUser
import logging

logger = logging.getLogger(__name__)


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing bearer token")

    payload = await verify_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Could not validate credentials")

    subject_id = payload["sub"]
    return CurrentUser(
        subject_id=subject_id,
        email=payload.get("email"),
        name=payload.get("name"),
        claims=payload,
        is_admin=is_authorized(subject_id, payload),
    )


async def admin_required(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current_user.is_admin:
        logger.warning(f"Admin access denied for {current_user.subject_id}")
        raise ForbiddenError("Admin access required")
    return current_user


def get_client_ip(request: Request) -> Optional[str]:
    # Behind a proxy the first forwarded address is the caller
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None
