"""Enums for the GroupSplit application."""

from enum import Enum


class Currency(str, Enum):
    """Currencies a group can be kept in."""

    EUR = "EUR"
    USD = "USD"
    GBP = "GBP"
    CHF = "CHF"


class IncomeFrequency(str, Enum):
    """How member incomes are expressed."""

    ANNUAL = "annual"
    MONTHLY = "monthly"


class StatsPeriod(str, Enum):
    """Time window for group statistics."""

    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


class SettlementFilter(str, Enum):
    """Which settlements to list for the current member."""

    ALL = "all"
    SENT = "sent"
    RECEIVED = "received"
