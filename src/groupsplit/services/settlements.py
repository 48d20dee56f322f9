"""Suggesting the repayments that settle a group."""

from typing import Any, Dict, Hashable, Iterable, List, Optional

from ..utils.logging_config import get_logger

logger = get_logger("services")

# Rounding in share calculation may leave at most this many cents unbalanced
BALANCE_TOLERANCE_CENTS = 1


def _party(balance: Any, current_member_id: Optional[Hashable]) -> Dict[str, Any]:
    return {
        "id": balance.member_id,
        "name": balance.member_name,
        "is_current_user": (
            balance.member_id == current_member_id
            if current_member_id is not None
            else bool(getattr(balance, "is_current_user", False))
        ),
    }


def calculate_optimal_settlements(
    balances: Iterable[Any], current_member_id: Optional[Hashable] = None
) -> List[Dict[str, Any]]:
    """Greedy debt simplification.

    The largest creditor is matched with the largest debtor for the smaller
    of the two amounts; whoever reaches zero drops out and the next in line
    takes their place. This yields at most ``n - 1`` transfers, and applying
    them brings every net balance to zero.

    Args:
        balances: Objects with ``member_id``, ``member_name``, ``net_balance``
        current_member_id: Marks transfers involving the caller

    Returns:
        ``{"from": {...}, "to": {...}, "amount": cents}`` dicts
    """
    balances = list(balances)
    if len(balances) <= 1:
        return []

    total = sum(b.net_balance for b in balances)
    if abs(total) > BALANCE_TOLERANCE_CENTS:
        logger.warning(f"Balances do not sum to zero: {total}")

    creditors = sorted(
        ([b, b.net_balance] for b in balances if b.net_balance > 0),
        key=lambda entry: entry[1],
        reverse=True,
    )
    debtors = sorted(
        ([b, -b.net_balance] for b in balances if b.net_balance < 0),
        key=lambda entry: entry[1],
        reverse=True,
    )

    settlements: List[Dict[str, Any]] = []
    creditor_idx = 0
    debtor_idx = 0

    while creditor_idx < len(creditors) and debtor_idx < len(debtors):
        creditor = creditors[creditor_idx]
        debtor = debtors[debtor_idx]

        amount = min(creditor[1], debtor[1])
        if amount > 0:
            settlements.append(
                {
                    "from": _party(debtor[0], current_member_id),
                    "to": _party(creditor[0], current_member_id),
                    "amount": amount,
                }
            )

        creditor[1] -= amount
        debtor[1] -= amount

        if creditor[1] <= 0:
            creditor_idx += 1
        if debtor[1] <= 0:
            debtor_idx += 1

    return settlements
