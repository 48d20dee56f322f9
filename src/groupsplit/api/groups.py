"""Group management API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from ..auth.dependencies import get_current_membership, get_current_user
from ..core.errors import DomainError, ErrorCode
from ..db.models import GroupMember, User
from ..repositories.dependencies import get_repository_container
from ..repositories.interfaces import RepositoryContainer
from ..utils.dates import utc_now
from ..utils.logging_config import get_logger
from .common import get_group_or_404, group_balances, group_detail
from .schemas import (
    GroupCreate,
    GroupDetail,
    GroupListResponse,
    GroupSummary,
    GroupUpdate,
    ProblemDetails,
)

logger = get_logger("api")

router = APIRouter(prefix="/api/groups", tags=["groups"])


def initial_member_name(user: User) -> str:
    """Name a new member after the account, falling back to the email's local part."""
    if user.name:
        return user.name
    return user.email.split("@")[0] or user.email


@router.get("", response_model=GroupListResponse)
async def list_groups(
    user: User = Depends(get_current_user),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> GroupListResponse:
    """
    List the groups the caller belongs to, newest first.

    Each entry carries the caller's current net balance in that group.
    """
    summaries = []
    for group, membership in await repos.group.list_for_user(user.id):
        balances = await group_balances(repos, group.id, membership.id)
        mine = next((b for b in balances if b.member_id == membership.id), None)
        summaries.append(
            GroupSummary(
                id=group.id,
                name=group.name,
                description=group.description,
                currency=group.currency,
                income_frequency=group.income_frequency,
                created_at=group.created_at,
                member_count=len(balances),
                my_balance=mine.net_balance if mine else 0,
                is_archived=group.archived_at is not None,
            )
        )
    return GroupListResponse(groups=summaries)


@router.post(
    "",
    response_model=GroupDetail,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Group created successfully"},
        422: {"model": ProblemDetails, "description": "Validation error"},
    },
)
async def create_group(
    group_data: GroupCreate,
    user: User = Depends(get_current_user),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> GroupDetail:
    """Create a group with the caller as its first member."""
    group = await repos.group.create(
        name=group_data.name,
        description=group_data.description or None,
        currency=group_data.currency.value,
        income_frequency=group_data.income_frequency.value,
        creator=user,
        creator_name=initial_member_name(user),
    )
    await repos.commit()
    logger.info(f"Group {group.id} created by user {user.id}")

    membership = await repos.member.get_active_for_user(group.id, user.id)
    return await group_detail(repos, group, membership)


@router.get(
    "/{group_id}",
    response_model=GroupDetail,
    responses={
        403: {"model": ProblemDetails, "description": "Not a member"},
        404: {"model": ProblemDetails, "description": "Group not found"},
    },
)
async def get_group(
    group_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> GroupDetail:
    """Get a group with its active members."""
    group = await get_group_or_404(repos, group_id)
    return await group_detail(repos, group, membership)


@router.patch(
    "/{group_id}",
    response_model=GroupDetail,
    responses={
        400: {"model": ProblemDetails, "description": "Blank name"},
        403: {"model": ProblemDetails, "description": "Not a member"},
    },
)
async def update_group(
    group_id: UUID,
    group_data: GroupUpdate,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> GroupDetail:
    """Rename a group or change its description."""
    group = await get_group_or_404(repos, group_id)

    if group_data.name is not None:
        name = group_data.name.strip()
        if not name:
            raise DomainError(ErrorCode.INVALID_NAME)
        group.name = name

    if "description" in group_data.model_fields_set:
        description = (group_data.description or "").strip()
        group.description = description or None

    await repos.commit()
    return await group_detail(repos, group, membership)


@router.delete(
    "/{group_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={403: {"model": ProblemDetails, "description": "Only the creator can delete"}},
)
async def delete_group(
    group_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> Response:
    """Delete a group and everything in it. Creator only."""
    group = await get_group_or_404(repos, group_id)
    if group.created_by != membership.user_id:
        raise DomainError(ErrorCode.NOT_AUTHORIZED)

    await repos.group.delete(group)
    await repos.commit()
    logger.info(f"Group {group_id} deleted by user {membership.user_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{group_id}/archive")
async def toggle_archive(
    group_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> dict:
    """Archive a group, or bring an archived group back."""
    group = await get_group_or_404(repos, group_id)
    group.archived_at = None if group.archived_at is not None else utc_now()
    await repos.commit()
    return {"is_archived": group.archived_at is not None}


@router.post(
    "/{group_id}/leave",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ProblemDetails, "description": "Caller is the only member"}},
)
async def leave_group(
    group_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> Response:
    """Leave a group. Past expenses keep the departed member's name."""
    if await repos.member.count_active(group_id) <= 1:
        raise DomainError(ErrorCode.CANNOT_LEAVE_ALONE)

    membership.left_at = utc_now()
    await repos.member.recalculate_coefficients(group_id)
    await repos.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
