"""Locale-aware money formatting.

Amounts are stored as integer cents everywhere; these helpers are the only
place where they are turned back into major units for display.
"""

from decimal import Decimal

from babel.numbers import (
    UnknownCurrencyError,
    format_currency as babel_format_currency,
    format_decimal,
    validate_currency,
)

DEFAULT_LOCALE = "fr_FR"


class InvalidCurrencyError(ValueError):
    """Raised when a currency code is not known to the formatting engine."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid currency code: {currency!r}")


def _to_major_units(cents: int) -> Decimal:
    return Decimal(int(cents)) / Decimal(100)


def format_currency(cents: int, currency: str = "EUR", locale: str = DEFAULT_LOCALE) -> str:
    """Format an amount in cents for display, e.g. ``1050, "EUR"`` -> ``"10,50 €"``.

    Babel separates the amount and the symbol with a non-breaking space in
    the French locale.

    Raises:
        InvalidCurrencyError: If ``currency`` is not an ISO 4217 code Babel knows
    """
    code = (currency or "").upper()
    try:
        validate_currency(code)
    except UnknownCurrencyError as exc:
        raise InvalidCurrencyError(currency) from exc

    return babel_format_currency(_to_major_units(cents), code, locale=locale)


def format_cents(cents: int, locale: str = DEFAULT_LOCALE) -> str:
    """Format an amount in cents as a plain number with two decimals."""
    return format_decimal(_to_major_units(cents), format="#,##0.00", locale=locale)
