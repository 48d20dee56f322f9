"""Response builders shared by the group-scoped routers."""

from typing import List, Optional
from uuid import UUID

from ..core.errors import DomainError, ErrorCode
from ..db.models import Group, GroupMember
from ..repositories.interfaces import RepositoryContainer
from ..services.balances import MemberBalance, compute_balances
from ..services.coefficients import coefficient_percent
from .schemas import GroupDetail, MemberResponse

UNKNOWN_MEMBER_NAME = "Inconnu"


async def get_group_or_404(repos: RepositoryContainer, group_id: UUID) -> Group:
    group = await repos.group.get_by_id(group_id)
    if group is None:
        raise DomainError(ErrorCode.GROUP_NOT_FOUND)
    return group


def member_response(
    member: GroupMember,
    current_member_id: Optional[UUID],
    total_coefficient: int,
    member_count: int,
) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        user_id=member.user_id,
        name=member.name,
        email=member.email,
        income=member.income,
        coefficient=member.coefficient,
        coefficient_percent=coefficient_percent(
            member.coefficient, total_coefficient, member_count
        ),
        joined_at=member.joined_at,
        is_pending=member.user_id is None,
        is_current_user=member.id == current_member_id,
    )


def members_response(
    members: List[GroupMember], current_member_id: Optional[UUID]
) -> List[MemberResponse]:
    """Active members with their whole-percent share of costs."""
    total = sum(m.coefficient or 0 for m in members)
    return [member_response(m, current_member_id, total, len(members)) for m in members]


async def group_detail(
    repos: RepositoryContainer, group: Group, membership: GroupMember
) -> GroupDetail:
    members = await repos.member.list_active(group.id)
    return GroupDetail(
        id=group.id,
        name=group.name,
        description=group.description,
        currency=group.currency,
        income_frequency=group.income_frequency,
        created_by=group.created_by,
        created_at=group.created_at,
        archived_at=group.archived_at,
        is_archived=group.archived_at is not None,
        members=members_response(members, membership.id),
        my_member_id=membership.id,
        is_creator=group.created_by == membership.user_id,
    )


async def group_balances(
    repos: RepositoryContainer, group_id: UUID, current_member_id: Optional[UUID]
) -> List[MemberBalance]:
    """Current balances of a group, computed from all of its history."""
    members = await repos.member.list_all(group_id)
    expenses = await repos.expense.list_active(group_id)
    settlements = await repos.settlement.list_for_group(group_id)
    return compute_balances(members, expenses, settlements, current_member_id)


def member_name(member: Optional[GroupMember]) -> str:
    if member is None:
        return UNKNOWN_MEMBER_NAME
    return member.display_name
