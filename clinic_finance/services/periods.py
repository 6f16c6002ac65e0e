"""
Period Bucketing Service.

Computes calendar-aligned bucket boundaries for the chart aggregations:

- bucket_start: align a date to the start of its day, week (Monday) or month
- next_bucket: advance exactly one unit of the granularity
- compute_range: bucket-aligned range of the observed dates, or a trailing
  default window anchored on today when nothing was observed
- generate_buckets: the contiguous bucket sequence covering a range
- format_bucket_label: default display label for a bucket

All functions are pure; "today" can be injected for deterministic results.

Default trailing windows (no observed dates):
    day   -> last 7 days
    week  -> last 12 weeks (83 days back)
    month -> last 12 months

Usage:
    from clinic_finance.services.periods import compute_range, generate_buckets

    start, end = compute_range(Granularity.WEEK, [date(2024, 3, 7), date(2024, 3, 20)])
    buckets = generate_buckets(start, end, Granularity.WEEK)
    # [date(2024, 3, 4), date(2024, 3, 11), date(2024, 3, 18)]
"""

import calendar
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from clinic_finance.models.enums import Granularity
from clinic_finance.services.normalization import parse_calendar_date


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_DAY_WINDOW: int = 7
DEFAULT_WEEK_WINDOW_DAYS: int = 83
DEFAULT_MONTH_WINDOW: int = 12


# =============================================================================
# BUCKET ARITHMETIC
# =============================================================================

def _add_months(value: date, months: int) -> date:
    """Shift by whole calendar months, clamping the day to the target month."""
    month_index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def bucket_start(value: date, granularity: Granularity) -> date:
    """
    Align a date to the start of the bucket containing it.

    Weeks start on Monday: Sunday maps back 6 days, any other weekday maps
    back weekday-1 days (ISO numbering). Months start on the 1st.

    Args:
        value: Calendar date to align.
        granularity: Bucketing unit.

    Returns:
        The first date of the bucket.
    """
    granularity = Granularity(granularity)
    if granularity == Granularity.WEEK:
        return value - timedelta(days=value.weekday())
    if granularity == Granularity.MONTH:
        return value.replace(day=1)
    return value


def next_bucket(bucket: date, granularity: Granularity) -> date:
    """Advance by exactly one unit: 1 day, 7 days or 1 calendar month."""
    granularity = Granularity(granularity)
    if granularity == Granularity.WEEK:
        return bucket + timedelta(days=7)
    if granularity == Granularity.MONTH:
        return _add_months(bucket, 1)
    return bucket + timedelta(days=1)


# =============================================================================
# RANGE DERIVATION
# =============================================================================

def default_window(granularity: Granularity, today: Optional[date] = None) -> Tuple[date, date]:
    """
    Trailing window used when there are no observed dates.

    Args:
        granularity: Bucketing unit.
        today: Anchor date; defaults to the current local date.

    Returns:
        (start, end) with end == today.
    """
    granularity = Granularity(granularity)
    anchor = today or date.today()
    if granularity == Granularity.WEEK:
        return anchor - timedelta(days=DEFAULT_WEEK_WINDOW_DAYS), anchor
    if granularity == Granularity.MONTH:
        return _add_months(anchor.replace(day=1), -(DEFAULT_MONTH_WINDOW - 1)), anchor
    return anchor - timedelta(days=DEFAULT_DAY_WINDOW - 1), anchor


def compute_range(
    granularity: Granularity,
    data_dates: Iterable[object],
    today: Optional[date] = None,
) -> Tuple[date, date]:
    """
    Derive the active date range for a granularity.

    Entries that do not parse as calendar dates are ignored. When at least one
    date survives, the range is the observed range aligned to bucket starts.
    Otherwise the trailing default window anchored on today is returned.

    Args:
        granularity: Bucketing unit.
        data_dates: Observed dates (date objects or parseable strings).
        today: Anchor for the default window.

    Returns:
        (start, end) tuple.
    """
    parsed = [d for d in (parse_calendar_date(v) for v in data_dates) if d is not None]
    if not parsed:
        return default_window(granularity, today)
    return bucket_start(min(parsed), granularity), bucket_start(max(parsed), granularity)


def generate_buckets(start: date, end: date, granularity: Granularity) -> List[date]:
    """
    Generate the contiguous bucket sequence covering [start, end].

    Starts from bucket_start(start) and repeatedly applies next_bucket while
    the cursor is not past end. At least one bucket is always produced.
    """
    cursor = bucket_start(start, granularity)
    buckets = [cursor]
    cursor = next_bucket(cursor, granularity)
    while cursor <= end:
        buckets.append(cursor)
        cursor = next_bucket(cursor, granularity)
    return buckets


# =============================================================================
# LABELS
# =============================================================================

def format_bucket_label(bucket: date, granularity: Granularity) -> str:
    """
    Default display label for a bucket.

    Examples:
        day   -> "Mar 07"
        week  -> "Wk of Mar 04"
        month -> "Mar 2024"
    """
    granularity = Granularity(granularity)
    if granularity == Granularity.WEEK:
        return f"Wk of {bucket.strftime('%b %d')}"
    if granularity == Granularity.MONTH:
        return bucket.strftime('%b %Y')
    return bucket.strftime('%b %d')


__all__ = [
    'DEFAULT_DAY_WINDOW',
    'DEFAULT_WEEK_WINDOW_DAYS',
    'DEFAULT_MONTH_WINDOW',
    'bucket_start',
    'next_bucket',
    'default_window',
    'compute_range',
    'generate_buckets',
    'format_bucket_label',
]
