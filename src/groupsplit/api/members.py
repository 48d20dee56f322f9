"""Group member API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from ..auth.dependencies import get_current_membership
from ..core.errors import DomainError, ErrorCode
from ..db.models import GroupMember
from ..repositories.dependencies import get_repository_container
from ..repositories.interfaces import RepositoryContainer
from ..utils.dates import utc_now
from ..utils.logging_config import get_logger
from .common import member_response, members_response
from .schemas import MemberListResponse, MemberResponse, MemberUpdate, ProblemDetails

logger = get_logger("api")

router = APIRouter(prefix="/api/groups/{group_id}/members", tags=["members"])


async def _member_view(
    repos: RepositoryContainer, group_id: UUID, member: GroupMember, current_member_id: UUID
) -> MemberResponse:
    members = await repos.member.list_active(group_id)
    total = sum(m.coefficient or 0 for m in members)
    return member_response(member, current_member_id, total, len(members))


async def _apply_update(
    repos: RepositoryContainer, group_id: UUID, member: GroupMember, update: MemberUpdate
) -> None:
    if update.name is not None:
        member.name = update.name

    if update.income is not None and update.income != member.income:
        member.income = update.income
        await repos.member.recalculate_coefficients(group_id)

    await repos.commit()


@router.get("", response_model=MemberListResponse)
async def list_members(
    group_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> MemberListResponse:
    """List active members in join order, with their share of costs."""
    members = await repos.member.list_active(group_id)
    return MemberListResponse(members=members_response(members, membership.id))


@router.get("/me", response_model=MemberResponse)
async def get_my_membership(
    group_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> MemberResponse:
    """Get the caller's own membership."""
    return await _member_view(repos, group_id, membership, membership.id)


@router.patch("/me", response_model=MemberResponse)
async def update_my_membership(
    group_id: UUID,
    update: MemberUpdate,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> MemberResponse:
    """Change the caller's name or declared income in this group."""
    await _apply_update(repos, group_id, membership, update)
    return await _member_view(repos, group_id, membership, membership.id)


@router.get(
    "/{member_id}",
    response_model=MemberResponse,
    responses={404: {"model": ProblemDetails, "description": "Member not found"}},
)
async def get_member(
    group_id: UUID,
    member_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> MemberResponse:
    """Get one active member."""
    member = await repos.member.get_active_by_id(group_id, member_id)
    if member is None:
        raise DomainError(ErrorCode.MEMBER_NOT_FOUND)
    return await _member_view(repos, group_id, member, membership.id)


@router.patch(
    "/{member_id}",
    response_model=MemberResponse,
    responses={404: {"model": ProblemDetails, "description": "Member not found"}},
)
async def update_member(
    group_id: UUID,
    member_id: UUID,
    update: MemberUpdate,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> MemberResponse:
    """
    Change a member's name or income.

    Any member may do this, so pending members' incomes can be filled in
    before they join. Changing an income recomputes every coefficient.
    """
    member = await repos.member.get_active_by_id(group_id, member_id)
    if member is None:
        raise DomainError(ErrorCode.MEMBER_NOT_FOUND)

    await _apply_update(repos, group_id, member, update)
    return await _member_view(repos, group_id, member, membership.id)


@router.delete(
    "/{member_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"model": ProblemDetails, "description": "Cannot remove this member"},
        404: {"model": ProblemDetails, "description": "Member not found"},
    },
)
async def remove_member(
    group_id: UUID,
    member_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> Response:
    """Remove a member. Their history stays, but they stop counting for balances."""
    member = await repos.member.get_active_by_id(group_id, member_id)
    if member is None:
        raise DomainError(ErrorCode.MEMBER_NOT_FOUND)

    if member.id == membership.id:
        raise DomainError(ErrorCode.CANNOT_REMOVE_SELF)

    if await repos.member.count_active(group_id) <= 1:
        raise DomainError(ErrorCode.CANNOT_REMOVE_LAST_MEMBER)

    member.left_at = utc_now()
    await repos.member.recalculate_coefficients(group_id)
    await repos.commit()

    logger.info(f"Member {member_id} removed from group {group_id} by {membership.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
