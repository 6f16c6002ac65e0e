"""
Series Aggregation Service.

Buckets date-stamped, multi-series numeric records into contiguous calendar
buckets (day / week / month) for charting.

Algorithm Overview:
    1. Parse each record's date field; records with unparseable dates are dropped
    2. Derive the active range from the surviving dates (periods.compute_range),
       unless the caller supplies an explicit start and/or end
    3. Generate the bucket sequence and index each bucket start
    4. Discover series names in first-observed order (default "Value")
    5. Start every series as an all-zero array of length N (bucket count)
    6. Add each in-range record's value into its series at its bucket index;
       series named in mean_series are divided by their per-bucket record count
    7. Label every bucket through the label formatter

Guarantees:
    - labels, buckets and every series array have the same length N >= 1
    - the sum over all summed series equals the sum of values of the in-range records
    - output depends only on the inputs (today can be injected)
    - zero surviving records (and no explicit range) yield a single bucket for
      the current period with one all-zero "Value" series
    - an explicit range with nothing inside it still carries the all-zero
      "Value" series

Usage:
    from clinic_finance.services.aggregation import aggregate

    result = aggregate(dataset.revenue, Granularity.MONTH, series_field='type')
    result.series['Commercial']  # one value per month
"""

from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from clinic_finance.models.enums import Granularity
from clinic_finance.models.schemas import AggregationResult
from clinic_finance.services.normalization import (
    parse_amount,
    parse_calendar_date,
    parse_label,
)
from clinic_finance.services.periods import (
    bucket_start,
    compute_range,
    default_window,
    format_bucket_label,
    generate_buckets,
)


# =============================================================================
# CONSTANTS
# =============================================================================

# Series name used when a record carries no series label
DEFAULT_SERIES: str = 'Value'

LabelFormatter = Callable[[date, Granularity], str]


# =============================================================================
# HELPERS
# =============================================================================

def _field(record: Any, name: str) -> Any:
    """Read a field from a mapping or an attribute-style record."""
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _degenerate_result(
    granularity: Granularity,
    today: Optional[date],
    label_formatter: LabelFormatter,
) -> AggregationResult:
    _, anchor = default_window(granularity, today)
    bucket = bucket_start(anchor, granularity)
    return AggregationResult(
        labels=[label_formatter(bucket, granularity)],
        series={DEFAULT_SERIES: [0.0]},
        buckets=[bucket],
    )


# =============================================================================
# AGGREGATION
# =============================================================================

def aggregate(
    records: Iterable[Any],
    granularity: Granularity,
    date_field: str = 'date',
    value_field: str = 'amount',
    series_field: str = 'type',
    start: Optional[Any] = None,
    end: Optional[Any] = None,
    today: Optional[date] = None,
    label_formatter: LabelFormatter = format_bucket_label,
    mean_series: Iterable[str] = (),
) -> AggregationResult:
    """
    Bucket and sum records by date and by a secondary series dimension.

    Args:
        records: Canonical records or plain mappings.
        granularity: Bucketing unit (day, week, month).
        date_field: Name of the date field on each record.
        value_field: Name of the numeric field to sum; non-numeric values count as 0.
        series_field: Name of the field splitting records into series.
        start: Optional explicit range start; records before it are excluded.
        end: Optional explicit range end; records after it are excluded.
        today: Anchor of the default trailing window when nothing survives.
        label_formatter: Callable producing the display label of a bucket.
        mean_series: Series averaged per bucket instead of summed, for rates
            such as percentages. Buckets without records stay 0.

    Returns:
        AggregationResult with aligned labels, buckets and series.
    """
    granularity = Granularity(granularity)
    explicit_start = parse_calendar_date(start) if start is not None else None
    explicit_end = parse_calendar_date(end) if end is not None else None

    # Step 1: drop records whose date cannot be parsed
    surviving: List[Tuple[date, Any]] = []
    for record in records:
        parsed = parse_calendar_date(_field(record, date_field))
        if parsed is not None:
            surviving.append((parsed, record))

    if not surviving and explicit_start is None and explicit_end is None:
        return _degenerate_result(granularity, today, label_formatter)

    # Steps 2-3: range and bucket index
    derived_start, derived_end = compute_range(
        granularity, [d for d, _ in surviving], today=today
    )
    range_start = explicit_start or derived_start
    range_end = explicit_end or derived_end
    if range_end < range_start:
        range_end = range_start

    buckets = generate_buckets(range_start, range_end, granularity)
    index_by_bucket: Dict[date, int] = {bucket: i for i, bucket in enumerate(buckets)}

    # Steps 4-5: series in first-observed order, zero-filled
    series_arrays: Dict[str, np.ndarray] = {}
    for _, record in surviving:
        name = parse_label(_field(record, series_field)) or DEFAULT_SERIES
        if name not in series_arrays:
            series_arrays[name] = np.zeros(len(buckets), dtype=float)
    if not series_arrays:
        series_arrays[DEFAULT_SERIES] = np.zeros(len(buckets), dtype=float)
    averaged = set(mean_series)
    counts: Dict[str, np.ndarray] = {
        name: np.zeros(len(buckets), dtype=float)
        for name in series_arrays if name in averaged
    }

    # Step 6: accumulate
    for record_date, record in surviving:
        if explicit_start is not None and record_date < explicit_start:
            continue
        if explicit_end is not None and record_date > explicit_end:
            continue
        index = index_by_bucket.get(bucket_start(record_date, granularity))
        if index is None:
            continue
        name = parse_label(_field(record, series_field)) or DEFAULT_SERIES
        series_arrays[name][index] += parse_amount(_field(record, value_field)) or 0.0
        if name in counts:
            counts[name][index] += 1

    for name, count in counts.items():
        series_arrays[name] = np.divide(
            series_arrays[name], count,
            out=np.zeros_like(series_arrays[name]), where=count > 0,
        )

    # Step 7: labels
    return AggregationResult(
        labels=[label_formatter(bucket, granularity) for bucket in buckets],
        series={name: [float(v) for v in values] for name, values in series_arrays.items()},
        buckets=buckets,
    )


__all__ = [
    'DEFAULT_SERIES',
    'aggregate',
]
