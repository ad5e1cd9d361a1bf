"""
Tabular views of a decoded wafer map.

Declared bin counts (from the Bin catalog) and observed counts (from the die
grid) are reported side by side; divergence is data for the reviewer, not an
error.
"""
import logging
from typing import Optional

import numpy as np
import pandas as pd

from lotreview.core.config import PASS_QUALITY
from lotreview.core.models import BinStatistics, WaferMapDocument
from lotreview.enums import DefectKind, ReservedBin

logger = logging.getLogger(__name__)

DIE_COLUMNS = ['X', 'Y', 'BIN_CODE', 'DEFECT_TYPE']
BIN_COLUMNS = ['BIN_CODE', 'BIN_QUALITY', 'BIN_DESCRIPTION', 'DECLARED_COUNT', 'OBSERVED_COUNT', 'DELTA', 'DECLARED']


def die_grid_to_frame(document: WaferMapDocument) -> pd.DataFrame:
    """Returns one row per die, sorted row-major (Y, then X)."""
    if not document.die_grid:
        return pd.DataFrame(columns=DIE_COLUMNS)

    records = []
    for (x, y), code in document.die_grid.items():
        kind = DefectKind.from_code(code)
        records.append((x, y, code, kind.value if kind else ''))

    df = pd.DataFrame.from_records(records, columns=DIE_COLUMNS)
    df[['X', 'Y']] = df[['X', 'Y']].astype('int32')
    df.sort_values(by=['Y', 'X'], inplace=True)
    df.reset_index(drop=True, inplace=True)
    return df


def _declared_dimension(raw: Optional[str]) -> Optional[int]:
    try:
        value = int(str(raw).strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def die_grid_to_array(document: WaferMapDocument) -> np.ndarray:
    """
    Dense (rows, columns) array of bin codes, missing dies filled with 'FF'.

    The shape comes from the header when Rows/Columns are usable, otherwise
    from the observed extent of the grid. Dies outside the shape are ignored.
    """
    observed_rows, observed_cols = document.observed_extent()
    rows = _declared_dimension(document.declared_rows)
    cols = _declared_dimension(document.declared_columns)
    rows = observed_rows if rows is None else rows
    cols = observed_cols if cols is None else cols

    grid = np.full((rows, cols), ReservedBin.FILL.value, dtype=object)
    for (x, y), code in document.die_grid.items():
        if y < rows and x < cols:
            grid[y, x] = code
    return grid


def reconcile_bins(document: WaferMapDocument, statistics: BinStatistics) -> pd.DataFrame:
    """
    Declared vs observed counts per bin.

    One row per declared Bin in catalog order (duplicates included), followed
    by observed codes that have no declaration (DECLARED=False, declared count 0).
    """
    histogram = statistics.histogram
    records = []
    for bin_def in document.bins:
        observed = histogram.get(bin_def.code, 0)
        records.append({
            'BIN_CODE': bin_def.code,
            'BIN_QUALITY': bin_def.quality,
            'BIN_DESCRIPTION': bin_def.description,
            'DECLARED_COUNT': bin_def.count,
            'OBSERVED_COUNT': observed,
            'DELTA': observed - bin_def.count,
            'DECLARED': True,
        })

    declared_codes = {b.code for b in document.bins}
    for code, observed in histogram.items():
        if code in declared_codes:
            continue
        records.append({
            'BIN_CODE': code,
            'BIN_QUALITY': '',
            'BIN_DESCRIPTION': '',
            'DECLARED_COUNT': 0,
            'OBSERVED_COUNT': observed,
            'DELTA': observed,
            'DECLARED': False,
        })

    if not records:
        return pd.DataFrame(columns=BIN_COLUMNS)

    df = pd.DataFrame.from_records(records, columns=BIN_COLUMNS)
    mismatches = int((df['DELTA'] != 0).sum())
    if mismatches:
        logger.debug(f"{mismatches} bin(s) differ between declared and observed counts")
    return df


def calculate_yield(document: WaferMapDocument, statistics: BinStatistics) -> float:
    """Fraction of observed dies whose code is declared with 'Pass' quality."""
    if statistics.total_dies == 0:
        return 0.0

    pass_codes = {
        b.code for b in document.bins
        if b.quality and b.quality.strip().lower() == PASS_QUALITY.lower()
    }
    passing = sum(count for code, count in statistics.histogram.items() if code in pass_codes)
    return passing / statistics.total_dies
