"""
Interval expressions for counter and date conditions.

Both parsers accept either a single comparison or a range:

    comments:5        comments:>=5      comments:<5      comments:3..*
    date:2020         date:>=2020-01    date:*..2020-06-30

and return a ``(lower, upper)`` pair of strings where an empty string means
"unbounded on this side". Invalid expressions return None and the tokenizer
drops the whole condition.

Counter bounds are inclusive on both sides (``count BETWEEN lower AND upper``).
Date bounds are half-open: ``lower <= date < upper``. A partial date denotes
the whole period it covers, so ``2020`` is ``("2020-01-01", "2021-01-01")``.
"""

import re
from datetime import date
from typing import Optional, Tuple

Interval = Tuple[str, str]

_COUNTER_RE = re.compile(r'^(?P<op>=|>=?|<=?)?(?P<value>\d+)$')
_COUNTER_RANGE_RE = re.compile(r'^(?P<start>\d+|\*)\.\.(?P<end>\d+|\*)$')

_DATE = r'\d{4}(?:-\d{2}(?:-\d{2})?)?'
_DATE_RE = re.compile(rf'^(?P<op>=|>=?|<=?)?(?P<date>{_DATE})$')
_DATE_RANGE_RE = re.compile(rf'^(?P<start>{_DATE}|\*)\.\.(?P<end>{_DATE}|\*)$')


# =============================================================================
# Counters
# =============================================================================

def parse_counter_expression(expr: str) -> Optional[Interval]:
    """Parse a counter expression into inclusive (lower, upper) bounds."""
    match = _COUNTER_RE.match(expr)
    if match:
        op, value = match.group('op'), int(match.group('value'))

        if op == '>=':
            return str(value), ''
        if op == '>':
            return str(value + 1), ''
        if op == '<=':
            return '', str(value)
        if op == '<':
            return '', str(value - 1)

        # '=' or no operator
        return str(value), str(value)

    match = _COUNTER_RANGE_RE.match(expr)
    if match:
        start, end = match.group('start'), match.group('end')
        if start == '*' and end == '*':
            return None
        return (
            '' if start == '*' else str(int(start)),
            '' if end == '*' else str(int(end)),
        )

    return None


# =============================================================================
# Dates
# =============================================================================

def _period(s: str) -> Optional[Tuple[date, date]]:
    """
    Resolve YYYY, YYYY-MM or YYYY-MM-DD into [first day, first day after).

    Returns None for dates that do not exist in the calendar.
    """
    parts = [int(p) for p in s.split('-')]
    try:
        if len(parts) == 1:
            return date(parts[0], 1, 1), date(parts[0] + 1, 1, 1)
        if len(parts) == 2:
            year, month = parts
            start = date(year, month, 1)
            if month == 12:
                return start, date(year + 1, 1, 1)
            return start, date(year, month + 1, 1)
        start = date(*parts)
        return start, date.fromordinal(start.toordinal() + 1)
    except (ValueError, OverflowError):
        return None


def is_valid_date(s: str) -> bool:
    return bool(s) and _period(s) is not None


def start_of(s: str) -> str:
    """First day of the period denoted by a (possibly partial) date."""
    return _period(s)[0].isoformat()


def end_of(s: str) -> str:
    """First day after the period denoted by a (possibly partial) date."""
    return _period(s)[1].isoformat()


def parse_date_expression(expr: str) -> Optional[Interval]:
    """Parse a date expression into half-open (lower, upper) bounds."""
    match = _DATE_RE.match(expr)
    if match:
        op, d = match.group('op'), match.group('date')
        if not is_valid_date(d):
            return None

        if op == '>=':
            return start_of(d), ''
        if op == '>':
            return end_of(d), ''
        if op == '<=':
            return '', end_of(d)
        if op == '<':
            return '', start_of(d)

        # '=' or no operator
        return start_of(d), end_of(d)

    match = _DATE_RANGE_RE.match(expr)
    if match:
        start, end = match.group('start'), match.group('end')
        if start == '*' and end == '*':
            return None

        # Any invalid date invalidates the whole range
        if (start != '*' and not is_valid_date(start)) or (end != '*' and not is_valid_date(end)):
            return None

        return (
            '' if start == '*' else start_of(start),
            '' if end == '*' else end_of(end),
        )

    return None
