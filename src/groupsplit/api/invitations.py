"""Invitation API endpoints.

Inviting someone creates a pending member right away, so expenses can be
shared with them before they sign up. Accepting the invitation links that
member to the account.
"""

from datetime import timedelta
from typing import Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, Response, status

from ..auth.dependencies import get_current_membership, get_current_user, get_optional_user
from ..config import get_config
from ..core.errors import DomainError, ErrorCode
from ..db.models import Group, GroupInvitation, GroupMember, User
from ..repositories.dependencies import get_repository_container
from ..repositories.interfaces import RepositoryContainer
from ..services.email import EmailDeliveryError, Mailer, get_mailer
from ..utils.dates import as_utc, utc_now
from ..utils.logging_config import get_logger
from .common import UNKNOWN_MEMBER_NAME, get_group_or_404
from .groups import initial_member_name
from .schemas import (
    AcceptInvitationResponse,
    GroupRef,
    InvitationDetails,
    InvitationListResponse,
    InvitationResponse,
    InviteMemberRequest,
    PendingInvitation,
    PendingInvitationListResponse,
    ProblemDetails,
)

logger = get_logger("api")

group_router = APIRouter(prefix="/api/groups/{group_id}/invitations", tags=["invitations"])
router = APIRouter(prefix="/api/invitations", tags=["invitations"])


def _inviter_name(invitation: GroupInvitation) -> str:
    if invitation.inviter is None:
        return UNKNOWN_MEMBER_NAME
    return invitation.inviter.name or invitation.inviter.email


def _invitation_response(invitation: GroupInvitation) -> InvitationResponse:
    inviter = invitation.inviter
    return InvitationResponse(
        id=invitation.id,
        email=invitation.email,
        invited_by=(inviter.name if inviter else None) or UNKNOWN_MEMBER_NAME,
        created_at=invitation.created_at,
        expires_at=invitation.expires_at,
    )


async def _send_invitation(
    mailer: Mailer, invitation: GroupInvitation, group: Group, inviter: User
) -> None:
    config = get_config()
    await mailer.send_invitation(
        invitation.email,
        inviter_name=inviter.name or inviter.email,
        group_name=group.name,
        invite_url=f"{config.app.frontend_url}/invite/{invitation.token}",
        ttl_days=config.app.invitation_ttl_days,
    )


async def _load_open_invitation(repos: RepositoryContainer, token: str) -> GroupInvitation:
    """An invitation that can still be answered."""
    invitation = await repos.invitation.get_by_token(token)
    if (
        invitation is None
        or invitation.accepted_at is not None
        or invitation.declined_at is not None
    ):
        raise DomainError(ErrorCode.INVITATION_NOT_FOUND)

    if as_utc(invitation.expires_at) <= utc_now():
        raise DomainError(ErrorCode.INVITATION_EXPIRED)
    return invitation


def _check_recipient(invitation: GroupInvitation, user: User) -> None:
    if invitation.email.lower() != user.email.lower():
        raise DomainError(
            ErrorCode.FORBIDDEN, detail="Cette invitation est destinée à une autre adresse"
        )


@group_router.post(
    "",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Invitation sent"},
        409: {"model": ProblemDetails, "description": "Already a member or already invited"},
        500: {"model": ProblemDetails, "description": "Email could not be sent"},
    },
)
async def invite_member(
    group_id: UUID,
    invite: InviteMemberRequest,
    membership: GroupMember = Depends(get_current_membership),
    user: User = Depends(get_current_user),
    repos: RepositoryContainer = Depends(get_repository_container),
    mailer: Mailer = Depends(get_mailer),
) -> InvitationResponse:
    """
    Invite someone by email.

    A pending member named after ``name`` (or the email's local part) joins
    the group immediately and takes part in the coefficient split.
    """
    group = await get_group_or_404(repos, group_id)
    email = invite.email.strip().lower()
    now = utc_now()

    if await repos.member.get_joined_by_email(group_id, email) is not None:
        raise DomainError(ErrorCode.ALREADY_MEMBER)

    if await repos.invitation.get_pending_for_email(group_id, email, now) is not None:
        raise DomainError(ErrorCode.ALREADY_INVITED)

    config = get_config()
    invitation = await repos.invitation.create(
        group_id=group_id,
        email=email,
        created_by=user.id,
        expires_at=now + timedelta(days=config.app.invitation_ttl_days),
    )

    # A pending member left behind by an expired invitation is reused
    if await repos.member.get_pending_by_email(group_id, email) is None:
        name = (invite.name or "").strip() or email.split("@")[0]
        await repos.member.create(group_id, name=name, email=email)
        await repos.member.recalculate_coefficients(group_id)

    try:
        await _send_invitation(mailer, invitation, group, user)
    except EmailDeliveryError:
        await repos.rollback()
        raise DomainError(ErrorCode.EMAIL_SEND_FAILED)

    await repos.commit()
    logger.info(f"Invitation {invitation.id} to group {group_id} sent by member {membership.id}")

    return _invitation_response(invitation)


@group_router.get("", response_model=InvitationListResponse)
async def list_invitations(
    group_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> InvitationListResponse:
    """Invitations that are still waiting for an answer."""
    invitations = await repos.invitation.list_pending(group_id, utc_now())
    return InvitationListResponse(invitations=[_invitation_response(i) for i in invitations])


@group_router.delete(
    "/{invitation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ProblemDetails, "description": "Invitation not found"}},
)
async def cancel_invitation(
    group_id: UUID,
    invitation_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> Response:
    """Withdraw an invitation together with its pending member."""
    invitation = await repos.invitation.get_by_id(group_id, invitation_id)
    if invitation is None:
        raise DomainError(ErrorCode.INVITATION_NOT_FOUND)

    pending = await repos.member.get_pending_by_email(group_id, invitation.email)
    if pending is not None:
        await repos.member.remove_pending(pending, utc_now())

    await repos.invitation.delete(invitation)
    await repos.member.recalculate_coefficients(group_id)
    await repos.commit()

    logger.info(f"Invitation {invitation_id} cancelled by member {membership.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@group_router.post(
    "/{invitation_id}/resend",
    response_model=InvitationResponse,
    responses={
        404: {"model": ProblemDetails, "description": "Invitation not found"},
        500: {"model": ProblemDetails, "description": "Email could not be sent"},
    },
)
async def resend_invitation(
    group_id: UUID,
    invitation_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    user: User = Depends(get_current_user),
    repos: RepositoryContainer = Depends(get_repository_container),
    mailer: Mailer = Depends(get_mailer),
) -> InvitationResponse:
    """Send an invitation again with a fresh link. The old link stops working."""
    group = await get_group_or_404(repos, group_id)
    invitation = await repos.invitation.get_by_id(group_id, invitation_id)
    if (
        invitation is None
        or invitation.accepted_at is not None
        or invitation.declined_at is not None
    ):
        raise DomainError(ErrorCode.INVITATION_NOT_FOUND)

    config = get_config()
    invitation.token = str(uuid4())
    invitation.expires_at = utc_now() + timedelta(days=config.app.invitation_ttl_days)

    try:
        await _send_invitation(mailer, invitation, group, user)
    except EmailDeliveryError:
        await repos.rollback()
        raise DomainError(ErrorCode.EMAIL_SEND_FAILED)

    await repos.commit()
    return _invitation_response(invitation)


@router.get("/pending", response_model=PendingInvitationListResponse)
async def list_my_invitations(
    user: User = Depends(get_current_user),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> PendingInvitationListResponse:
    """Open invitations addressed to the caller's email."""
    invitations = await repos.invitation.list_pending_for_user_email(user.email, utc_now())
    return PendingInvitationListResponse(
        invitations=[
            PendingInvitation(
                id=i.id,
                token=i.token,
                group=GroupRef(id=i.group.id, name=i.group.name),
                invited_by=(i.inviter.name if i.inviter else None) or UNKNOWN_MEMBER_NAME,
                created_at=i.created_at,
                expires_at=i.expires_at,
            )
            for i in invitations
        ]
    )


@router.get(
    "/{token}",
    response_model=InvitationDetails,
    responses={
        400: {"model": ProblemDetails, "description": "Invitation expired"},
        404: {"model": ProblemDetails, "description": "Invitation not found"},
    },
)
async def get_invitation(
    token: str,
    user: Optional[User] = Depends(get_optional_user),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> InvitationDetails:
    """
    Describe an invitation from its link. No sign-in needed.

    Signed-in callers also learn whether the invitation is addressed to them.
    """
    invitation = await _load_open_invitation(repos, token)
    return InvitationDetails(
        group=GroupRef(id=invitation.group.id, name=invitation.group.name),
        inviter_name=_inviter_name(invitation),
        expires_at=invitation.expires_at,
        is_for_current_user=(
            invitation.email.lower() == user.email.lower() if user is not None else None
        ),
    )


@router.post(
    "/{token}/accept",
    response_model=AcceptInvitationResponse,
    responses={
        403: {"model": ProblemDetails, "description": "Invitation is for someone else"},
        404: {"model": ProblemDetails, "description": "Invitation not found"},
        409: {"model": ProblemDetails, "description": "Already a member"},
    },
)
async def accept_invitation(
    token: str,
    user: User = Depends(get_current_user),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> AcceptInvitationResponse:
    """Join the group, taking over the pending member created by the invitation."""
    invitation = await _load_open_invitation(repos, token)
    _check_recipient(invitation, user)

    group_id = invitation.group_id
    if await repos.member.get_active_for_user(group_id, user.id) is not None:
        raise DomainError(ErrorCode.ALREADY_MEMBER)

    now = utc_now()
    member = await repos.member.get_pending_by_email(group_id, invitation.email)
    if member is None:
        await repos.member.create(
            group_id, name=initial_member_name(user), email=user.email, user_id=user.id
        )
    else:
        member.user_id = user.id
        member.name = initial_member_name(user)

    invitation.accepted_at = now
    await repos.member.recalculate_coefficients(group_id)
    await repos.commit()

    logger.info(f"User {user.id} joined group {group_id}")
    return AcceptInvitationResponse(group_id=group_id)


@router.post(
    "/{token}/decline",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        403: {"model": ProblemDetails, "description": "Invitation is for someone else"},
        404: {"model": ProblemDetails, "description": "Invitation not found"},
    },
)
async def decline_invitation(
    token: str,
    user: User = Depends(get_current_user),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> Response:
    """Turn an invitation down. Its pending member is removed from the group."""
    invitation = await _load_open_invitation(repos, token)
    _check_recipient(invitation, user)

    now = utc_now()
    invitation.declined_at = now

    pending = await repos.member.get_pending_by_email(invitation.group_id, invitation.email)
    if pending is not None:
        await repos.member.remove_pending(pending, now)
    await repos.member.recalculate_coefficients(invitation.group_id)
    await repos.commit()

    return Response(status_code=status.HTTP_204_NO_CONTENT)
