"""
Display formatting for amounts and timestamps in violation details.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN

SUPPORTED_CURRENCIES = ("INR", "USD", "EUR", "GBP", "JPY", "CAD", "AUD")

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "JPY": "¥",
    "CAD": "CA$",
    "AUD": "A$",
}

# Currencies quoted without minor units
ZERO_DECIMAL_CURRENCIES = {"JPY"}


def format_currency(amount, currency: str = "USD") -> str:
    """
    Format an amount the way it is shown to reviewers.

    >>> format_currency(Decimal("150000"))
    '$150,000.00'
    """
    currency = currency.upper()
    places = 0 if currency in ZERO_DECIMAL_CURRENCIES else 2
    value = Decimal(str(amount)).quantize(
        Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN
    )
    sign = "-" if value < 0 else ""
    body = f"{abs(value):,.{places}f}"
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{sign}{symbol}{body}"
    return f"{sign}{currency} {body}"


def format_timestamp(moment: datetime) -> str:
    zone = moment.tzname() or "UTC"
    return f"{moment:%Y-%m-%d %H:%M} {zone}"
