"""
Tabular snapshot reader for the Clinic Finance backend.

Reads the flat CSV snapshots (claims and general ledger) used when the query
service is unavailable. Every cell is read as a stripped string so parsing
stays in one place (clinic_finance.services.normalization); empty cells are
kept as empty strings instead of being turned into NaN.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Union

import pandas as pd

logger = logging.getLogger(__name__)

SnapshotRows = List[Dict[str, Any]]
SnapshotReader = Callable[[str], Awaitable[SnapshotRows]]


def read_snapshot_rows(path: Union[str, Path]) -> SnapshotRows:
    """
    Read a CSV snapshot into a list of row dicts.

    Args:
        path: CSV file path.

    Returns:
        One dict per data row keyed by the stripped header names.

    Raises:
        FileNotFoundError: If the file does not exist.
        pandas.errors.ParserError: If the file is not valid CSV.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [str(col).strip() for col in df.columns]
    df = df.apply(lambda col: col.str.strip())
    logger.info(f"Read {len(df)} rows from snapshot {path}")
    return df.to_dict(orient='records')


async def read_snapshot(path: Union[str, Path]) -> SnapshotRows:
    """Async wrapper around read_snapshot_rows (file IO runs in a worker thread)."""
    return await asyncio.to_thread(read_snapshot_rows, path)


__all__ = [
    'SnapshotRows',
    'SnapshotReader',
    'read_snapshot_rows',
    'read_snapshot',
]
