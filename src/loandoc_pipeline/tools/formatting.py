"""Number, money and date formatting shared by prompts, builders and verification."""

from __future__ import annotations

import calendar
import math
from datetime import date, datetime
from typing import Optional, Union

_ONES = ["", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
         "ten", "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen",
         "seventeen", "eighteen", "nineteen"]
_TENS = ["", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety"]
_SCALES = ((1_000_000_000_000, "trillion"), (1_000_000_000, "billion"), (1_000_000, "million"), (1_000, "thousand"))


def _bad(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def format_currency(amount: Optional[float]) -> str:
    """$1,250,000 (no cents, half-up like the statement tables)."""
    if _bad(amount):
        return "[Amount TBD]"
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.0f}"


def format_currency_detailed(amount: Optional[float]) -> str:
    if _bad(amount):
        return "[Amount TBD]"
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_percent(rate: Optional[float]) -> str:
    """Decimal rate to percent with three places: 0.0725 -> 7.250%."""
    if _bad(rate):
        return "[Rate TBD]"
    return f"{rate * 100:.3f}%"


def format_percent_short(rate: Optional[float]) -> str:
    if _bad(rate):
        return "[Rate TBD]"
    return f"{rate * 100:.2f}%"


def format_date(value: Optional[Union[date, datetime]]) -> str:
    if value is None:
        return "[Date TBD]"
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def _chunk(num: int) -> str:
    if num == 0:
        return ""
    if num < 20:
        return _ONES[num]
    if num < 100:
        return _TENS[num // 10] + ("-" + _ONES[num % 10] if num % 10 else "")
    rest = num % 100
    return _ONES[num // 100] + " hundred" + (" " + _chunk(rest) if rest else "")


def number_to_words(n: float) -> str:
    """Whole-dollar amount in words, as written on promissory notes."""
    n = int(n)
    if n == 0:
        return "zero"
    if n < 0:
        return "negative " + number_to_words(-n)

    if n >= 1_000 * _SCALES[0][0]:
        raise ValueError(f"Amount too large to write out: {n}")

    parts = []
    for size, word in _SCALES:
        count = (n // size) % 1000
        if count:
            parts.append(f"{_chunk(count)} {word}")
    remainder = n % 1000
    if remainder:
        parts.append(_chunk(remainder))
    return " ".join(parts)


def add_months(start: date, months: int) -> date:
    """Same day-of-month ``months`` later, clamped to the month's last day."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def compute_maturity_date(start: date, term_months: int) -> date:
    return add_months(start, term_months)


def compute_first_payment_date(closing: date) -> date:
    """First day of the month following closing."""
    return add_months(date(closing.year, closing.month, 1), 1)
