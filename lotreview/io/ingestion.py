import logging
import os
import sqlite3
from dataclasses import dataclass, field
from typing import List, Optional, Union

from lotreview.analytics.bins import reconcile_bins
from lotreview.analytics.statistics import compute_statistics
from lotreview.core.config import ALLOWED_EXTENSIONS, MAX_FILE_SIZE
from lotreview.core.errors import DecodeError
from lotreview.core.models import BinStatistics, WaferMapDocument
from lotreview.io.decoder import parse_map
from lotreview.io.validation import validate_map
from lotreview.storage.lots import LotStore
from lotreview.utils.telemetry import track_performance

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """
    Result of the map ingestion process.
    Contains the decoded document, its statistics, the persisted lot id (when
    stored) and lists of any errors or warnings.
    """
    document: Optional[WaferMapDocument] = None
    statistics: Optional[BinStatistics] = None
    lot_pk: Optional[int] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors and self.document is not None


def _content_size(content: Union[str, bytes]) -> int:
    if isinstance(content, bytes):
        return len(content)
    return len(content.encode("utf-8"))


def _collect_warnings(document: WaferMapDocument, statistics: BinStatistics) -> List[str]:
    warnings = []

    bins_df = reconcile_bins(document, statistics)
    if not bins_df.empty:
        diverging = bins_df[bins_df['DECLARED'] & (bins_df['DELTA'] != 0)]
        for _, row in diverging.iterrows():
            warnings.append(
                f"Bin '{row['BIN_CODE']}' declares {row['DECLARED_COUNT']} dies but "
                f"{row['OBSERVED_COUNT']} were found."
            )

    observed_rows, observed_cols = document.observed_extent()
    declared = (document.declared_rows, document.declared_columns)
    if declared != (None, None) and declared != (str(observed_rows), str(observed_cols)):
        warnings.append(
            f"Header declares {declared[0]}x{declared[1]} grid; "
            f"die data covers {observed_rows}x{observed_cols}."
        )
    return warnings


def analyze_map(content: Union[str, bytes]) -> IngestionResult:
    """
    Validates, decodes and summarises a map without persisting anything.
    """
    result = IngestionResult()

    # Bytes go straight to the parser so the XML declaration picks the encoding
    validation = validate_map(content)
    if not validation.valid:
        result.errors.append(validation.error)
        logger.warning(f"Map rejected: {validation.error}")
        return result

    try:
        document = parse_map(content)
    except DecodeError as e:
        result.errors.append(str(e))
        logger.error(str(e))
        return result

    result.document = document
    result.statistics = compute_statistics(document)
    result.warnings.extend(_collect_warnings(document, result.statistics))
    for msg in result.warnings:
        logger.warning(msg)
    return result


@track_performance("Map Ingestion (Total)")
def ingest_map(
    content: Union[str, bytes],
    store: LotStore,
    filename: Optional[str] = None,
    description: Optional[str] = None,
    uploaded_by: Optional[str] = None,
) -> IngestionResult:
    """
    Validates, decodes and persists an uploaded map as a new pending lot.

    Any rejection (bad name, oversize, invalid or undecodable map, storage
    failure) is reported in ``errors`` and leaves nothing in the store.
    """
    if filename is not None:
        _, ext = os.path.splitext(filename)
        if ext.lower() not in ALLOWED_EXTENSIONS:
            msg = f"Rejected file: '{filename}'. Only G85 XML files ({', '.join(ALLOWED_EXTENSIONS)}) are allowed."
            logger.warning(msg)
            return IngestionResult(errors=[msg])

    size = _content_size(content)
    if size > MAX_FILE_SIZE:
        msg = f"Rejected file: '{filename or 'upload'}' is {size} bytes; limit is {MAX_FILE_SIZE}."
        logger.warning(msg)
        return IngestionResult(errors=[msg])

    result = analyze_map(content)
    if not result.success:
        return result

    try:
        result.lot_pk = store.save_lot(
            result.document,
            result.statistics,
            filename=filename,
            description=description,
            uploaded_by=uploaded_by,
            file_size=size,
        )
    except sqlite3.Error as e:
        msg = f"Storage error while saving '{filename or 'upload'}': {e}"
        result.errors.append(msg)
        logger.error(msg)
    except Exception as e:
        msg = f"Unexpected error while saving '{filename or 'upload'}': {e}"
        result.errors.append(msg)
        logger.exception(f"Critical error saving {filename}")

    return result
