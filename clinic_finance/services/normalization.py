"""
Schema Normalization Service.

Reconciles the raw row shapes produced by the two ingestion sources into the
canonical field names used everywhere else. Each raw schema is described by a
declarative table mapping a raw field to a FieldRule (canonical field, default,
parser); normalize_rows applies a table uniformly, so the query service path and
the snapshot path canonicalize identically.

Raw schemas:
- Query service (pre-aggregated BigQuery result rows):
    QUERY_REVENUE_BY_DATE, QUERY_EXPENSE_BY_DATE, QUERY_PROCEDURE_REVENUE,
    QUERY_PHYSICIAN_REVENUE, QUERY_PHYSICIAN_EXPENSE, QUERY_DAILY_UTILIZATION
- Snapshots (raw CSV rows):
    SNAPSHOT_CLAIM, SNAPSHOT_LEDGER

Parsing rules:
- Dates become datetime.date; unparseable dates become None and rows that
  require a date are dropped (never raised)
- Numbers that are missing, blank, NaN or unparseable fall back to the default (0)
- Labels are stripped; blank labels fall back to the fixed label of the field
  ("Claims", "Expense", "Unassigned", "Unspecified CPT")
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS - Fallback labels
# =============================================================================

DEFAULT_REVENUE_TYPE: str = 'Claims'
DEFAULT_EXPENSE_CATEGORY: str = 'Expense'
DEFAULT_PHYSICIAN: str = 'Unassigned'
DEFAULT_PROCEDURE: str = 'Unspecified CPT'

# Accepted date spellings; anything without a full year, month and day is rejected
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}(?:[T ].*)?$")
US_DATE_PATTERN = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")


# =============================================================================
# PARSERS
# =============================================================================

def parse_calendar_date(value: Any) -> Optional[date]:
    """
    Parse a value into a calendar date.

    Accepts date/datetime/Timestamp objects and date-like strings
    ("2024-03-07", "2024-03-07T10:15:00Z", "03/07/2024"). Time of day is
    discarded.

    Args:
        value: Raw value from a source row.

    Returns:
        The calendar date, or None when the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if pd.isna(value):
            return None
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if ISO_DATE_PATTERN.match(text):
        parsed = pd.to_datetime(text, errors='coerce', format='ISO8601')
    elif US_DATE_PATTERN.match(text):
        parsed = pd.to_datetime(text, errors='coerce', format='%m/%d/%Y')
    else:
        return None
    if pd.isna(parsed):
        return None
    return parsed.date()


def parse_amount(value: Any) -> Optional[float]:
    """
    Parse a numeric field, returning None for missing or non-numeric values.

    Thousands separators in strings are tolerated. NaN and infinities are
    treated as missing so they never propagate into sums.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(',', '')
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_count(value: Any) -> Optional[int]:
    """Parse a count field (visits, payments) as a non-negative integer."""
    number = parse_amount(value)
    if number is None:
        return None
    return max(int(round(number)), 0)


def parse_label(value: Any) -> Optional[str]:
    """Parse a categorical label; blank and null-like values become None."""
    if value is None:
        return None
    if not isinstance(value, str):
        try:
            if pd.isna(value):
                return None
        except (TypeError, ValueError):
            pass
    text = str(value).strip()
    return text or None


# =============================================================================
# NORMALIZATION TABLES
# =============================================================================

@dataclass(frozen=True)
class FieldRule:
    """How one raw field maps onto the canonical schema."""
    canonical: str
    default: Any
    parser: Callable[[Any], Any]


NormalizationTable = Dict[str, FieldRule]


# Query service: rows are already grouped and summed by BigQuery

QUERY_REVENUE_BY_DATE: NormalizationTable = {
    'day': FieldRule('date', None, parse_calendar_date),
    'revenue_type': FieldRule('type', DEFAULT_REVENUE_TYPE, parse_label),
    'total_paid': FieldRule('amount', 0.0, parse_amount),
}

QUERY_EXPENSE_BY_DATE: NormalizationTable = {
    'day': FieldRule('date', None, parse_calendar_date),
    'category': FieldRule('category', DEFAULT_EXPENSE_CATEGORY, parse_label),
    'total_amount': FieldRule('amount', 0.0, parse_amount),
}

QUERY_PROCEDURE_REVENUE: NormalizationTable = {
    'cpt_code': FieldRule('name', DEFAULT_PROCEDURE, parse_label),
    'revenue': FieldRule('revenue', 0.0, parse_amount),
    'visits': FieldRule('visits', 0, parse_count),
}

QUERY_PHYSICIAN_REVENUE: NormalizationTable = {
    'physician': FieldRule('name', DEFAULT_PHYSICIAN, parse_label),
    'revenue': FieldRule('revenue', 0.0, parse_amount),
    'visits': FieldRule('visits', 0, parse_count),
}

# No default name: ledger rows without a physician carry no direct expense
QUERY_PHYSICIAN_EXPENSE: NormalizationTable = {
    'physician': FieldRule('name', None, parse_label),
    'expense': FieldRule('expense', 0.0, parse_amount),
}

QUERY_DAILY_UTILIZATION: NormalizationTable = {
    'day': FieldRule('date', None, parse_calendar_date),
    'visits': FieldRule('visits', 0, parse_count),
    'payments': FieldRule('payments', 0, parse_count),
}

# Snapshots: one row per claim line / ledger entry

SNAPSHOT_CLAIM: NormalizationTable = {
    'service_date': FieldRule('date', None, parse_calendar_date),
    'revenue_type': FieldRule('type', DEFAULT_REVENUE_TYPE, parse_label),
    'cpt_code': FieldRule('procedure', DEFAULT_PROCEDURE, parse_label),
    'physician': FieldRule('physician', DEFAULT_PHYSICIAN, parse_label),
    'visit_id': FieldRule('visit_id', None, parse_label),
    'paid_amount': FieldRule('amount', 0.0, parse_amount),
}

SNAPSHOT_LEDGER: NormalizationTable = {
    'posting_date': FieldRule('date', None, parse_calendar_date),
    'category': FieldRule('category', DEFAULT_EXPENSE_CATEGORY, parse_label),
    'physician': FieldRule('physician', None, parse_label),
    'amount': FieldRule('amount', 0.0, parse_amount),
}


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize_row(row: Mapping[str, Any], table: NormalizationTable) -> Dict[str, Any]:
    """
    Apply a normalization table to one raw row.

    Raw field names are matched case-insensitively after trimming. Fields
    missing from the row are treated like null values.

    Args:
        row: Raw row mapping.
        table: Normalization table for the row's schema.

    Returns:
        Dict keyed by canonical field names.
    """
    lookup = {str(key).strip().lower(): value for key, value in row.items()}
    normalized: Dict[str, Any] = {}
    for raw_field, rule in table.items():
        parsed = rule.parser(lookup.get(raw_field))
        normalized[rule.canonical] = rule.default if parsed is None else parsed
    return normalized


def normalize_rows(
    rows: Iterable[Any],
    table: NormalizationTable,
    required: Sequence[str] = (),
    schema_name: str = 'rows',
) -> List[Dict[str, Any]]:
    """
    Normalize a batch of raw rows, dropping malformed ones.

    A row is dropped when it is not a mapping or when any of the required
    canonical fields normalized to None (typically an unparseable date).
    Dropping never aborts the batch.

    Args:
        rows: Raw row mappings.
        table: Normalization table for the rows' schema.
        required: Canonical fields that must be present after parsing.
        schema_name: Name used in log messages.

    Returns:
        Normalized rows in input order.
    """
    normalized: List[Dict[str, Any]] = []
    dropped = 0
    for row in rows:
        if not isinstance(row, Mapping):
            dropped += 1
            continue
        record = normalize_row(row, table)
        if any(record.get(field) is None for field in required):
            dropped += 1
            continue
        normalized.append(record)

    if dropped:
        logger.debug(f"Dropped {dropped} malformed {schema_name} row(s)")
    return normalized


__all__ = [
    'DEFAULT_REVENUE_TYPE',
    'DEFAULT_EXPENSE_CATEGORY',
    'DEFAULT_PHYSICIAN',
    'DEFAULT_PROCEDURE',
    'FieldRule',
    'NormalizationTable',
    'QUERY_REVENUE_BY_DATE',
    'QUERY_EXPENSE_BY_DATE',
    'QUERY_PROCEDURE_REVENUE',
    'QUERY_PHYSICIAN_REVENUE',
    'QUERY_PHYSICIAN_EXPENSE',
    'QUERY_DAILY_UTILIZATION',
    'SNAPSHOT_CLAIM',
    'SNAPSHOT_LEDGER',
    'parse_calendar_date',
    'parse_amount',
    'parse_count',
    'parse_label',
    'normalize_row',
    'normalize_rows',
]
