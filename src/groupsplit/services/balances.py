"""Balance computation and group statistics.

Everything here works on already-loaded ORM objects (or anything shaped like
them) so the calculations stay independent of the session.
"""

from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Any, Dict, Hashable, Iterable, List, Optional

from ..core.enums import StatsPeriod
from ..utils.dates import utc_now
from .shares import calculate_shares, round_half_up


@dataclass
class MemberBalance:
    """Where one active member stands in a group."""

    member_id: Hashable
    member_name: str
    member_user_id: Optional[Hashable]
    total_paid: int = 0
    total_owed: int = 0
    balance: int = 0
    settlements_paid: int = 0
    settlements_received: int = 0
    net_balance: int = 0
    is_current_user: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def active_coefficients(members: Iterable[Any]) -> Dict[Hashable, int]:
    """Coefficient of each active member."""
    return {m.id: m.coefficient for m in members if m.left_at is None}


def compute_balances(
    members: Iterable[Any],
    expenses: Iterable[Any],
    settlements: Iterable[Any],
    current_member_id: Optional[Hashable] = None,
) -> List[MemberBalance]:
    """Balances of every active member, creditors first.

    A positive ``net_balance`` means the group owes the member money.
    Departed members, deleted expenses and amounts involving departed members
    are left out.

    Args:
        members: Group members with ``id``, ``name``, ``user_id``, ``coefficient``, ``left_at``
        expenses: Expenses with ``paid_by``, ``amount``, ``deleted_at``, ``participants``
        settlements: Settlements with ``from_member``, ``to_member``, ``amount``
        current_member_id: Flags the caller's own entry
    """
    members = [m for m in members if m.left_at is None]
    coefficients = active_coefficients(members)

    balances: Dict[Hashable, MemberBalance] = {
        m.id: MemberBalance(
            member_id=m.id,
            member_name=m.name,
            member_user_id=m.user_id,
            is_current_user=m.id == current_member_id,
        )
        for m in members
    }

    for expense in expenses:
        if expense.deleted_at is not None:
            continue

        payer = balances.get(expense.paid_by)
        if payer is not None:
            payer.total_paid += expense.amount

        shares = calculate_shares(expense.amount, expense.participants, coefficients)
        for member_id, share in shares.items():
            participant = balances.get(member_id)
            if participant is not None:
                participant.total_owed += share

    for settlement in settlements:
        sender = balances.get(settlement.from_member)
        if sender is not None:
            sender.settlements_paid += settlement.amount
        receiver = balances.get(settlement.to_member)
        if receiver is not None:
            receiver.settlements_received += settlement.amount

    result = list(balances.values())
    for b in result:
        b.balance = b.total_paid - b.total_owed
        # Paying someone back lowers what I owe; being paid lowers what I'm owed
        b.net_balance = b.balance + b.settlements_paid - b.settlements_received

    result.sort(key=lambda b: b.net_balance, reverse=True)
    return result


def verify_balance_integrity(balances: Iterable[MemberBalance]) -> bool:
    """Net balances of a closed group must sum to zero (1 cent tolerance)."""
    return abs(sum(b.net_balance for b in balances)) < 1


def total_expenses(balances: Iterable[MemberBalance]) -> int:
    return sum(b.total_paid for b in balances)


def compute_member_detail(
    member_id: Hashable,
    members: Iterable[Any],
    expenses: Iterable[Any],
    settlements: Iterable[Any],
) -> Optional[Dict[str, Any]]:
    """Balance of one member with the expenses and settlements behind it.

    Returns None when the member is not active.
    """
    members = list(members)
    expenses = list(expenses)
    settlements = list(settlements)

    balances = compute_balances(members, expenses, settlements, member_id)
    mine = next((b for b in balances if b.member_id == member_id), None)
    if mine is None:
        return None

    names = {m.id: m.name for m in members}
    coefficients = active_coefficients(members)

    my_expenses = []
    for expense in expenses:
        if expense.deleted_at is not None:
            continue
        if not any(p.member_id == member_id for p in expense.participants):
            continue
        shares = calculate_shares(expense.amount, expense.participants, coefficients)
        my_expenses.append(
            {
                "id": expense.id,
                "description": expense.description,
                "date": expense.date,
                "amount": expense.amount,
                "paid_by": {"id": expense.paid_by, "name": names.get(expense.paid_by)},
                "my_share": shares.get(member_id, 0),
                "is_payer": expense.paid_by == member_id,
            }
        )
    my_expenses.sort(key=lambda e: e["date"], reverse=True)

    my_settlements = []
    for settlement in settlements:
        if settlement.from_member == member_id:
            direction, other = "sent", settlement.to_member
        elif settlement.to_member == member_id:
            direction, other = "received", settlement.from_member
        else:
            continue
        my_settlements.append(
            {
                "id": settlement.id,
                "date": settlement.date,
                "amount": settlement.amount,
                "direction": direction,
                "other_member": {"id": other, "name": names.get(other)},
            }
        )
    my_settlements.sort(key=lambda s: s["date"], reverse=True)

    return {
        "balance": mine.to_dict(),
        "expenses": my_expenses,
        "settlements": my_settlements,
    }


def period_start(period: StatsPeriod, today: date) -> Optional[str]:
    """First date (YYYY-MM-DD) included in a stats period, None for all time."""
    if period == StatsPeriod.WEEK:
        return (today - timedelta(days=7)).isoformat()
    if period == StatsPeriod.MONTH:
        return today.replace(day=1).isoformat()
    if period == StatsPeriod.YEAR:
        return today.replace(month=1, day=1).isoformat()
    return None


def compute_stats(
    expenses: Iterable[Any],
    members: Iterable[Any],
    period: StatsPeriod = StatsPeriod.ALL,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Spending totals for a period, per payer and per month."""
    start = period_start(period, today or utc_now().date())
    names = {m.id: m.name for m in members}

    selected = [
        e
        for e in expenses
        if e.deleted_at is None and (start is None or e.date >= start)
    ]

    total = sum(e.amount for e in selected)
    count = len(selected)

    paid_by: Dict[Hashable, int] = {}
    for e in selected:
        paid_by[e.paid_by] = paid_by.get(e.paid_by, 0) + e.amount

    by_member = sorted(
        (
            {
                "member_id": member_id,
                "member_name": names.get(member_id),
                "total_paid": paid,
                "percentage": round_half_up(paid / total * 100) if total > 0 else 0,
            }
            for member_id, paid in paid_by.items()
        ),
        key=lambda row: row["total_paid"],
        reverse=True,
    )

    months: Dict[str, Dict[str, int]] = {}
    for e in selected:
        month = months.setdefault(e.date[:7], {"total": 0, "count": 0})
        month["total"] += e.amount
        month["count"] += 1

    by_month = [
        {"month": month, "total": data["total"], "count": data["count"]}
        for month, data in sorted(months.items(), reverse=True)
    ]

    return {
        "total_expenses": total,
        "expense_count": count,
        "average_expense": round_half_up(total / count) if count else 0,
        "by_member": by_member,
        "by_month": by_month,
    }
