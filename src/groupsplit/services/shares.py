"""Splitting an expense amount between its participants."""

import math
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, Mapping, Optional, Sequence


@dataclass(frozen=True)
class ShareInput:
    """A participant as seen by the share calculation."""

    member_id: Hashable
    custom_amount: Optional[int] = None


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    Python's ``round`` rounds halves to even; money splits here always round
    .5 upwards.
    """
    return int(math.floor(value + 0.5))


def _as_inputs(participants: Iterable[Any]) -> Sequence[ShareInput]:
    return [
        p if isinstance(p, ShareInput) else ShareInput(p.member_id, p.custom_amount)
        for p in participants
    ]


def calculate_shares(
    amount: int,
    participants: Iterable[Any],
    coefficients: Mapping[Hashable, int],
) -> Dict[Hashable, int]:
    """Compute how many cents each participant owes for an expense.

    Participants with a custom amount owe exactly that. The remainder is
    split between the others proportionally to their coefficients, or
    equally when all their coefficients are zero. The last of them absorbs
    the rounding difference so the shares add up to the expense amount.

    Args:
        amount: Expense amount in cents
        participants: Objects with ``member_id`` and ``custom_amount``
        coefficients: Member id to coefficient in basis points; missing ids count as 0

    Returns:
        Member id to share in cents, in participant order
    """
    inputs = _as_inputs(participants)
    shares: Dict[Hashable, int] = {}

    custom = [p for p in inputs if p.custom_amount is not None]
    fair = [p for p in inputs if p.custom_amount is None]

    custom_total = 0
    for p in custom:
        shares[p.member_id] = p.custom_amount
        custom_total += p.custom_amount

    remaining = amount - custom_total
    if not fair:
        return shares

    if remaining <= 0:
        for p in fair:
            shares[p.member_id] = 0
        return shares

    total_coefficient = sum(coefficients.get(p.member_id, 0) for p in fair)

    distributed = 0
    for index, p in enumerate(fair):
        if index == len(fair) - 1:
            share = remaining - distributed
        elif total_coefficient > 0:
            share = round_half_up(
                coefficients.get(p.member_id, 0) / total_coefficient * remaining
            )
        else:
            share = round_half_up(remaining / len(fair))
        shares[p.member_id] = share
        distributed += share

    return shares
