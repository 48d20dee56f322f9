"""Expense API endpoints."""

import base64
import binascii
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from ..auth.dependencies import get_current_membership
from ..core.errors import DomainError, ErrorCode
from ..db.models import Expense, GroupMember
from ..repositories.dependencies import get_repository_container
from ..repositories.interfaces import RepositoryContainer
from ..services.balances import active_coefficients
from ..services.shares import calculate_shares
from ..utils.dates import is_valid_date, parse_cursor, to_iso, utc_now
from ..utils.logging_config import get_logger
from .common import member_name
from .schemas import (
    ExpenseCreate,
    ExpenseDetail,
    ExpenseListItem,
    ExpenseListResponse,
    ExpenseParticipantDetail,
    ExpenseUpdate,
    MemberRef,
    MemberRefWithCurrent,
    ParticipantInput,
    ProblemDetails,
)

logger = get_logger("api")

router = APIRouter(prefix="/api/groups/{group_id}/expenses", tags=["expenses"])


def encode_cursor(expense: Expense) -> str:
    """Opaque keyset cursor: the date and creation time of the last expense."""
    raw = f"{expense.date}|{to_iso(expense.created_at)}"
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: Optional[str]) -> Optional[Tuple[str, datetime]]:
    """Position encoded by :func:`encode_cursor`, or None if unreadable."""
    if not cursor:
        return None
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None

    expense_date, _, created = raw.partition("|")
    created_at = parse_cursor(created)
    if not is_valid_date(expense_date) or created_at is None:
        return None
    return expense_date, created_at


async def _load_expense(repos: RepositoryContainer, group_id: UUID, expense_id: UUID) -> Expense:
    expense = await repos.expense.get_by_id(group_id, expense_id)
    if expense is None:
        raise DomainError(ErrorCode.EXPENSE_NOT_FOUND)
    return expense


def _validate_participants(
    participants: Sequence[ParticipantInput],
    active_ids: set,
    amount: int,
) -> List[Tuple[UUID, Optional[int]]]:
    if not participants:
        raise DomainError(ErrorCode.NO_PARTICIPANTS)

    seen = set()
    for p in participants:
        if p.member_id not in active_ids or p.member_id in seen:
            raise DomainError(ErrorCode.INVALID_PARTICIPANT)
        seen.add(p.member_id)

    custom_total = sum(p.custom_amount or 0 for p in participants)
    if custom_total > amount:
        raise DomainError(ErrorCode.CUSTOM_AMOUNTS_EXCEED_TOTAL)

    return [(p.member_id, p.custom_amount) for p in participants]


def _shares(expense: Expense, coefficients: Dict) -> Dict:
    return calculate_shares(expense.amount, expense.participants, coefficients)


def _list_item(
    expense: Expense, coefficients: Dict, current_member_id: UUID
) -> ExpenseListItem:
    my_share = None
    if any(p.member_id == current_member_id for p in expense.participants):
        my_share = _shares(expense, coefficients).get(current_member_id, 0)

    return ExpenseListItem(
        id=expense.id,
        group_id=expense.group_id,
        paid_by=MemberRef(id=expense.paid_by, name=member_name(expense.payer)),
        amount=expense.amount,
        description=expense.description,
        date=expense.date,
        created_by=MemberRef(id=expense.created_by, name=member_name(expense.creator)),
        created_at=expense.created_at,
        participant_count=len(expense.participants),
        my_share=my_share,
    )


def _detail(expense: Expense, coefficients: Dict, current_member_id: UUID) -> ExpenseDetail:
    shares = _shares(expense, coefficients)
    is_creator = expense.created_by == current_member_id

    return ExpenseDetail(
        id=expense.id,
        group_id=expense.group_id,
        paid_by=MemberRefWithCurrent(
            id=expense.paid_by,
            name=member_name(expense.payer),
            is_current_user=expense.paid_by == current_member_id,
        ),
        amount=expense.amount,
        description=expense.description,
        date=expense.date,
        created_by=MemberRefWithCurrent(
            id=expense.created_by,
            name=member_name(expense.creator),
            is_current_user=is_creator,
        ),
        created_at=expense.created_at,
        updated_at=expense.updated_at,
        participants=[
            ExpenseParticipantDetail(
                id=p.id,
                member_id=p.member_id,
                member_name=member_name(p.member),
                custom_amount=p.custom_amount,
                calculated_share=shares.get(p.member_id, 0),
                is_current_user=p.member_id == current_member_id,
            )
            for p in expense.participants
        ],
        can_edit=is_creator,
        can_delete=is_creator,
    )


@router.get("", response_model=ExpenseListResponse)
async def list_expenses(
    group_id: UUID,
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None, description="next_cursor of the previous page"),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    paid_by: Optional[UUID] = None,
    participant_id: Optional[UUID] = None,
    search: Optional[str] = Query(None, max_length=100),
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> ExpenseListResponse:
    """
    List expenses, most recent date first.

    Pages are cursor based: pass ``next_cursor`` back as ``cursor`` while
    ``has_more`` is true. An unreadable cursor restarts from the first page.
    """
    rows = await repos.expense.list_page(
        group_id,
        limit=limit + 1,
        after=decode_cursor(cursor),
        start_date=start_date if start_date and is_valid_date(start_date) else None,
        end_date=end_date if end_date and is_valid_date(end_date) else None,
        paid_by=paid_by,
        participant_id=participant_id,
        search=search.strip() if search else None,
    )

    has_more = len(rows) > limit
    rows = rows[:limit]

    coefficients = active_coefficients(await repos.member.list_active(group_id))
    return ExpenseListResponse(
        expenses=[_list_item(e, coefficients, membership.id) for e in rows],
        next_cursor=encode_cursor(rows[-1]) if has_more and rows else None,
        has_more=has_more,
    )


@router.post(
    "",
    response_model=ExpenseDetail,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Expense recorded"},
        400: {"model": ProblemDetails, "description": "Invalid payer or participants"},
        422: {"model": ProblemDetails, "description": "Validation error"},
    },
)
async def create_expense(
    group_id: UUID,
    expense_data: ExpenseCreate,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> ExpenseDetail:
    """Record an expense paid by one member and shared by the participants."""
    members = await repos.member.list_active(group_id)
    active_ids = {m.id for m in members}

    if expense_data.paid_by not in active_ids:
        raise DomainError(ErrorCode.INVALID_PAYER)

    participants = _validate_participants(
        expense_data.participants, active_ids, expense_data.amount
    )

    expense = await repos.expense.create(
        group_id=group_id,
        paid_by=expense_data.paid_by,
        amount=expense_data.amount,
        description=expense_data.description,
        date=expense_data.date,
        created_by=membership.id,
        participants=participants,
    )
    await repos.commit()
    logger.info(f"Expense {expense.id} of {expense.amount} recorded in group {group_id}")

    return _detail(expense, active_coefficients(members), membership.id)


@router.get(
    "/{expense_id}",
    response_model=ExpenseDetail,
    responses={404: {"model": ProblemDetails, "description": "Expense not found"}},
)
async def get_expense(
    group_id: UUID,
    expense_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> ExpenseDetail:
    """Get an expense with each participant's share."""
    expense = await _load_expense(repos, group_id, expense_id)
    coefficients = active_coefficients(await repos.member.list_active(group_id))
    return _detail(expense, coefficients, membership.id)


@router.patch(
    "/{expense_id}",
    response_model=ExpenseDetail,
    responses={
        400: {"model": ProblemDetails, "description": "Invalid payer or participants"},
        403: {"model": ProblemDetails, "description": "Only the creator can edit"},
        404: {"model": ProblemDetails, "description": "Expense not found"},
    },
)
async def update_expense(
    group_id: UUID,
    expense_id: UUID,
    expense_data: ExpenseUpdate,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> ExpenseDetail:
    """
    Edit an expense. Creator only.

    Omitted fields keep their value. A participant list, when given,
    replaces the current one.
    """
    expense = await _load_expense(repos, group_id, expense_id)
    if expense.created_by != membership.id:
        raise DomainError(ErrorCode.NOT_CREATOR)

    members = await repos.member.list_active(group_id)
    active_ids = {m.id for m in members}

    if expense_data.paid_by is not None and expense_data.paid_by not in active_ids:
        raise DomainError(ErrorCode.INVALID_PAYER)

    amount = expense_data.amount if expense_data.amount is not None else expense.amount

    participants = None
    if expense_data.participants is not None:
        participants = _validate_participants(expense_data.participants, active_ids, amount)
    elif sum(p.custom_amount or 0 for p in expense.participants) > amount:
        raise DomainError(ErrorCode.CUSTOM_AMOUNTS_EXCEED_TOTAL)

    if expense_data.paid_by is not None:
        expense.paid_by = expense_data.paid_by
    if expense_data.description is not None:
        expense.description = expense_data.description
    if expense_data.date is not None:
        expense.date = expense_data.date
    expense.amount = amount
    expense.updated_at = utc_now()

    if participants is not None:
        await repos.expense.replace_participants(expense, participants)

    await repos.commit()
    return _detail(expense, active_coefficients(members), membership.id)


@router.delete(
    "/{expense_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        403: {"model": ProblemDetails, "description": "Only the creator can delete"},
        404: {"model": ProblemDetails, "description": "Expense not found"},
    },
)
async def delete_expense(
    group_id: UUID,
    expense_id: UUID,
    membership: GroupMember = Depends(get_current_membership),
    repos: RepositoryContainer = Depends(get_repository_container),
) -> Response:
    """Delete an expense. Creator only; it disappears from balances."""
    expense = await _load_expense(repos, group_id, expense_id)
    if expense.created_by != membership.id:
        raise DomainError(ErrorCode.NOT_CREATOR)

    expense.deleted_at = utc_now()
    await repos.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
