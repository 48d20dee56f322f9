"""Balance and statistics API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from ..auth.dependencies import get_current_membership
from ..core.enums import StatsPeriod
from ..core.errors import DomainError, ErrorCode
from ..db.models import GroupMember
from ..repositories.dependencies import get_repository_container
from ..repositories.interfaces import RepositoryContainer
from ..services.balances import (
    compute_member_detail,
    compute_stats,
    total_expenses,
    verify_balance_integrity,
)
from ..utils.logging_config import get_logger
from .common import group_balances
from .schemas import BalanceEntry, BalancesResponse, MemberBalanceDetail, StatsResponse

logger = get_logger("api")

router = APIRouter(prefix="/api/groups/{group_id}", tags=["balances"])


@router.get("/balances", response_model=BalancesResponse)
async def get_balances(
    group_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> BalancesResponse:
    """Balances of all active members, biggest creditor first."""
    balances = await group_balances(repos, group_id, membership.id)

    is_valid = verify_balance_integrity(balances)
    if not is_valid:
        logger.warning(f"Balances of group {group_id} do not sum to zero")

    return BalancesResponse(
        balances=[BalanceEntry(**b.to_dict()) for b in balances],
        total_expenses=total_expenses(balances),
        is_valid=is_valid,
    )


@router.get("/balances/me", response_model=MemberBalanceDetail)
async def get_my_balance(
    group_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> MemberBalanceDetail:
    """The caller's balance with the expenses and settlements behind it."""
    detail = compute_member_detail(
        membership.id,
        await repos.member.list_all(group_id),
        await repos.expense.list_active(group_id),
        await repos.settlement.list_for_group(group_id),
    )
    if detail is None:
        raise DomainError(ErrorCode.MEMBER_NOT_FOUND)
    return MemberBalanceDetail(**detail)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    group_id: UUID,
    period: StatsPeriod = Query(StatsPeriod.ALL),
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> StatsResponse:
    """Spending totals for a period, per payer and per month."""
    stats = compute_stats(
        await repos.expense.list_active(group_id),
        await repos.member.list_all(group_id),
        period,
    )
    return StatsResponse(period=period.value, **stats)
