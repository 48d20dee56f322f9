"""Income-based cost coefficients for group members."""

from typing import Any, Dict, Hashable, Iterable

from .shares import round_half_up

FULL_COEFFICIENT = 10000


def compute_coefficients(members: Iterable[Any]) -> Dict[Hashable, int]:
    """Coefficient of each member in basis points, proportional to income.

    Members are objects with ``id`` and ``income``. When nobody has declared
    an income, everyone gets an equal part.
    """
    members = list(members)
    if not members:
        return {}

    total_income = sum(m.income or 0 for m in members)
    if total_income == 0:
        equal = round_half_up(FULL_COEFFICIENT / len(members))
        return {m.id: equal for m in members}

    return {
        m.id: round_half_up((m.income or 0) * FULL_COEFFICIENT / total_income)
        for m in members
    }


def recalculate_coefficients(members: Iterable[Any]) -> None:
    """Recompute and assign ``coefficient`` on each member in place."""
    members = list(members)
    for member_id, coefficient in compute_coefficients(members).items():
        for member in members:
            if member.id == member_id:
                member.coefficient = coefficient


def coefficient_percent(coefficient: int, total_coefficient: int, member_count: int) -> int:
    """Whole-percent share of a member among ``member_count`` active members."""
    if total_coefficient > 0:
        return round_half_up((coefficient or 0) / total_coefficient * 100)
    if member_count == 0:
        return 0
    return round_half_up(100 / member_count)
