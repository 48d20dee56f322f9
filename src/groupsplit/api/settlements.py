"""Settlement (repayment) API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from ..auth.dependencies import get_current_membership
from ..core.enums import SettlementFilter
from ..core.errors import DomainError, ErrorCode
from ..db.models import GroupMember, Settlement
from ..repositories.dependencies import get_repository_container
from ..repositories.interfaces import RepositoryContainer
from ..services.settlements import calculate_optimal_settlements
from ..utils.dates import parse_cursor, to_iso
from ..utils.logging_config import get_logger
from .common import group_balances, member_name
from .schemas import (
    MemberRefWithCurrent,
    ProblemDetails,
    SettlementCreate,
    SettlementListResponse,
    SettlementResponse,
    SuggestedSettlement,
    SuggestedSettlementsResponse,
)

logger = get_logger("api")

router = APIRouter(prefix="/api/groups/{group_id}/settlements", tags=["settlements"])


def _settlement_response(settlement: Settlement, current_member_id: UUID) -> SettlementResponse:
    return SettlementResponse(
        id=settlement.id,
        group_id=settlement.group_id,
        from_member=MemberRefWithCurrent(
            id=settlement.from_member,
            name=member_name(settlement.sender),
            is_current_user=settlement.from_member == current_member_id,
        ),
        to_member=MemberRefWithCurrent(
            id=settlement.to_member,
            name=member_name(settlement.recipient),
            is_current_user=settlement.to_member == current_member_id,
        ),
        amount=settlement.amount,
        date=settlement.date,
        created_at=settlement.created_at,
    )


@router.get("", response_model=SettlementListResponse)
async def list_settlements(
    group_id: UUID,
    filter: SettlementFilter = Query(SettlementFilter.ALL),
    limit: int = Query(20, ge=1, le=100),
    cursor: str = Query(None, description="next_cursor of the previous page"),
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> SettlementListResponse:
    """
    List recorded settlements, newest first.

    ``sent`` and ``received`` narrow the list to the caller's own.
    """
    rows = await repos.settlement.list_page(
        group_id,
        member_id=membership.id,
        settlement_filter=filter,
        limit=limit + 1,
        before=parse_cursor(cursor),
    )

    has_more = len(rows) > limit
    rows = rows[:limit]

    return SettlementListResponse(
        settlements=[_settlement_response(s, membership.id) for s in rows],
        next_cursor=to_iso(rows[-1].created_at) if has_more and rows else None,
        has_more=has_more,
    )


@router.get("/suggested", response_model=SuggestedSettlementsResponse)
async def get_suggested_settlements(
    group_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> SuggestedSettlementsResponse:
    """The fewest transfers that would bring every balance to zero."""
    balances = await group_balances(repos, group_id, membership.id)
    suggestions = calculate_optimal_settlements(balances, membership.id)
    return SuggestedSettlementsResponse(
        suggestions=[SuggestedSettlement.model_validate(s) for s in suggestions]
    )


@router.post(
    "",
    response_model=SettlementResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Settlement recorded"},
        400: {"model": ProblemDetails, "description": "Invalid recipient"},
        422: {"model": ProblemDetails, "description": "Validation error"},
    },
)
async def create_settlement(
    group_id: UUID,
    settlement_data: SettlementCreate,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> SettlementResponse:
    """Record that the caller paid another member back."""
    recipient = await repos.member.get_active_by_id(group_id, settlement_data.to_member)
    if recipient is None:
        raise DomainError(ErrorCode.INVALID_RECIPIENT)

    if recipient.id == membership.id:
        raise DomainError(ErrorCode.SAME_MEMBER)

    settlement = await repos.settlement.create(
        group_id=group_id,
        from_member=membership.id,
        to_member=recipient.id,
        amount=settlement_data.amount,
        date=settlement_data.date,
    )
    await repos.commit()
    logger.info(
        f"Settlement {settlement.id}: {membership.id} -> {recipient.id} ({settlement.amount})"
    )

    return _settlement_response(settlement, membership.id)


@router.delete(
    "/{settlement_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        403: {"model": ProblemDetails, "description": "Only the sender can delete"},
        404: {"model": ProblemDetails, "description": "Settlement not found"},
    },
)
async def delete_settlement(
    group_id: UUID,
    settlement_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> Response:
    """Delete a settlement recorded by the caller."""
    settlement = await repos.settlement.get_by_id(group_id, settlement_id)
    if settlement is None:
        raise DomainError(ErrorCode.SETTLEMENT_NOT_FOUND)

    if settlement.from_member != membership.id:
        raise DomainError(ErrorCode.NOT_CREATOR)

    await repos.settlement.delete(settlement)
    await repos.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
