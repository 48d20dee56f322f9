"""Authentication API endpoints: magic-link sign-in, sessions and profile."""

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials

from ..auth.dependencies import (
    SESSION_COOKIE_NAME,
    extract_session_token,
    get_current_user,
    get_optional_user,
    security,
)
from ..auth.jwt_auth import MagicLinkManager, get_magic_link_manager
from ..auth.rate_limiter import AuthRateLimiter, get_rate_limiter
from ..auth.security import generate_session_token, hash_token
from ..config import get_config
from ..core.errors import DomainError, ErrorCode
from ..db.models import User
from ..repositories.dependencies import get_repository_container
from ..repositories.interfaces import RepositoryContainer
from ..services.email import EmailDeliveryError, Mailer, get_mailer
from ..utils.dates import utc_now
from ..utils.logging_config import get_logger
from .schemas import (
    LoginRequest,
    LoginResponse,
    ProblemDetails,
    ProfileUpdate,
    SessionResponse,
    UserResponse,
    VerifyRequest,
    VerifyResponse,
)

logger = get_logger("auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])
user_router = APIRouter(prefix="/api/user", tags=["user"])


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        202: {"description": "Sign-in link sent"},
        422: {"model": ProblemDetails, "description": "Invalid email address"},
        429: {"model": ProblemDetails, "description": "Too many requests"},
        500: {"model": ProblemDetails, "description": "Email could not be sent"},
    },
)
async def request_magic_link(
    request: Request,
    login_data: LoginRequest,
    repos: RepositoryContainer = Depends(get_repository_container),
    magic_links: MagicLinkManager = Depends(get_magic_link_manager),
    mailer: Mailer = Depends(get_mailer),
    rate_limiter: AuthRateLimiter = Depends(get_rate_limiter),
) -> LoginResponse:
    """
    Email a single-use sign-in link.

    The link points at the front end, which posts the token back to
    ``/api/auth/verify``.
    """
    rate_limiter.check_rate_limit(request, "login")

    config = get_config()
    email = login_data.email.strip().lower()

    token, jti, expires_at = magic_links.create_token(email)
    await repos.user.create_login_token(email, jti, expires_at)

    url = f"{config.app.frontend_url}/auth/verify?token={token}"
    try:
        await mailer.send_magic_link(email, url, magic_links.ttl_minutes)
    except EmailDeliveryError:
        await repos.rollback()
        raise DomainError(ErrorCode.EMAIL_SEND_FAILED)

    await repos.commit()
    logger.info(f"Magic link issued for {email}")

    return LoginResponse(message="Lien de connexion envoyé", expires_at=expires_at)


@router.post(
    "/verify",
    response_model=VerifyResponse,
    responses={
        200: {"description": "Session opened"},
        400: {"model": ProblemDetails, "description": "Invalid or expired link"},
        429: {"model": ProblemDetails, "description": "Too many attempts"},
    },
)
async def verify_magic_link(
    request: Request,
    response: Response,
    verify_data: VerifyRequest,
    repos: RepositoryContainer = Depends(get_repository_container),
    magic_links: MagicLinkManager = Depends(get_magic_link_manager),
    rate_limiter: AuthRateLimiter = Depends(get_rate_limiter),
) -> VerifyResponse:
    """
    Exchange a magic-link token for a session.

    Each link works once. The first successful sign-in creates the account.
    The session token is returned and also set as an httpOnly cookie.
    """
    rate_limiter.check_rate_limit(request, "verify")

    try:
        payload = magic_links.verify_token(verify_data.token)
    except DomainError:
        rate_limiter.record_auth_failure(request)
        raise

    email = payload["sub"]
    record = await repos.user.get_login_token(payload["jti"])
    if record is None or record.used_at is not None or record.email != email:
        rate_limiter.record_auth_failure(request)
        logger.warning(f"Rejected reused or unknown magic link for {email}")
        raise DomainError(ErrorCode.INVALID_TOKEN)

    now = utc_now()
    record.used_at = now

    user = await repos.user.get_or_create(email)

    config = get_config()
    session_token, token_hash = generate_session_token()
    expires_at = now + timedelta(days=config.app.session_ttl_days)
    await repos.user.create_session(user, token_hash, expires_at)
    await repos.commit()

    rate_limiter.record_auth_success(request)
    logger.info(f"User {user.id} signed in")

    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_token,
        max_age=config.app.session_ttl_days * 24 * 3600,
        httponly=True,
        secure=config.app.cookie_secure,
        samesite="lax",
    )

    return VerifyResponse(
        session_token=session_token,
        expires_at=expires_at,
        user=UserResponse.model_validate(user),
    )


@router.get("/session", response_model=SessionResponse)
async def get_session(user: Optional[User] = Depends(get_optional_user)) -> SessionResponse:
    """Tell the front end whether the caller is signed in."""
    if user is None:
        return SessionResponse(authenticated=False, user=None)
    return SessionResponse(authenticated=True, user=UserResponse.model_validate(user))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> Response:
    """End the current session. Succeeds even without one."""
    token = extract_session_token(request, credentials)
    if token:
        await repos.user.delete_session(hash_token(token))
        await repos.commit()

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return response


@user_router.patch(
    "/profile",
    response_model=UserResponse,
    responses={
        401: {"model": ProblemDetails, "description": "Authentication required"},
        422: {"model": ProblemDetails, "description": "Invalid name"},
    },
)
async def update_profile(
    profile: ProfileUpdate,
    user: User = Depends(get_current_user),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> UserResponse:
    """Set the display name of the signed-in user."""
    user.name = profile.name
    await repos.commit()
    return UserResponse.model_validate(user)
