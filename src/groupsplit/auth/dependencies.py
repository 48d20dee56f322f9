"""Authentication dependencies for FastAPI."""

from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .security import hash_token, validate_session_token_format
from ..core.errors import DomainError, ErrorCode
from ..db.models import GroupMember, User
from ..repositories.dependencies import (
    get_group_repository,
    get_member_repository,
    get_user_repository,
)
from ..repositories.sqlalchemy_impl import (
    SQLAlchemyGroupRepository,
    SQLAlchemyMemberRepository,
    SQLAlchemyUserRepository,
)
from ..utils.dates import utc_now

SESSION_COOKIE_NAME = "groupsplit_session"

# Security scheme for Bearer token; the session cookie is the fallback
security = HTTPBearer(auto_error=False)


def extract_session_token(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE_NAME)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    users: SQLAlchemyUserRepository = Depends(get_user_repository),
) -> User:
    """
    Get the current authenticated user from a session token.

    The token comes from the ``Authorization: Bearer`` header or the session
    cookie. Seeing a session refreshes its ``last_seen_at``.

    Raises:
        HTTPException: 401 if the token is missing, malformed or expired
    """
    token = extract_session_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    validate_session_token_format(token)

    now = utc_now()
    session = await users.get_active_session(hash_token(token), now)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    session.last_seen_at = now
    await users.commit()
    return session.user


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    users: SQLAlchemyUserRepository = Depends(get_user_repository),
) -> Optional[User]:
    """
    Get the current user, returning None if not authenticated.

    This dependency can be used for optional authentication.
    """
    try:
        return await get_current_user(request, credentials, users)
    except HTTPException:
        return None


async def get_current_membership(
    group_id: UUID,
    user: User = Depends(get_current_user),
    groups: SQLAlchemyGroupRepository = Depends(get_group_repository),
    members: SQLAlchemyMemberRepository = Depends(get_member_repository),
) -> GroupMember:
    """
    Get the caller's active membership in the group from the path.

    Raises:
        DomainError: GROUP_NOT_FOUND if the group does not exist,
            NOT_A_MEMBER if the caller is not an active member
    """
    if await groups.get_by_id(group_id) is None:
        raise DomainError(ErrorCode.GROUP_NOT_FOUND)

    membership = await members.get_active_for_user(group_id, user.id)
    if membership is None:
        raise DomainError(ErrorCode.NOT_A_MEMBER)
    return membership
