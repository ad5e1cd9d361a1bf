"""
G85 Map Generator.

Rebuilds canonical map text from a ``WaferMapDocument``. Output is a dense
Rows x Columns grid: coordinates missing from the sparse die grid are written
with the reserved fill code.
"""
import logging
import xml.etree.ElementTree as ET
from typing import Mapping, Optional

from lotreview.core.config import (
    BIN_CODE_ATTR, BIN_COUNT_ATTR, BIN_DESCRIPTION_ATTR, BIN_QUALITY_ATTR, BIN_TAG,
    DEVICE_TAG, HEADER_ATTRIBUTES, MAP_ROOT_TAG, REFERENCE_DEVICE_ATTRIBUTES,
    REFERENCE_DEVICE_TAG, ROW_TAG, SUBSTRATE_ATTRIBUTES, XML_DECLARATION,
)
from lotreview.core.errors import EncodeError
from lotreview.core.models import WaferMapDocument
from lotreview.enums import ReservedBin

logger = logging.getLogger(__name__)


def _grid_dimension(header: Mapping[str, Optional[str]], name: str) -> int:
    raw = header.get(name)
    if raw is None:
        raise EncodeError(f"Failed to generate G85 file: header attribute '{name}' is missing")
    try:
        value = int(str(raw).strip())
    except ValueError as e:
        raise EncodeError(f"Failed to generate G85 file: '{name}' must be an integer, got {raw!r}") from e
    if value < 0:
        raise EncodeError(f"Failed to generate G85 file: '{name}' must be non-negative, got {value}")
    return value


def _ordered_header(header: Mapping[str, Optional[str]]):
    # Known attributes first in canonical order, then anything else the caller supplied
    names = list(HEADER_ATTRIBUTES) + [k for k in header if k not in HEADER_ATTRIBUTES]
    for name in names:
        value = header.get(name)
        if value is not None:
            yield name, str(value)


def build_row_payload(document: WaferMapDocument, y: int, columns: int) -> str:
    fill = ReservedBin.FILL.value
    grid = document.die_grid
    return "".join(grid.get((x, y), fill) for x in range(columns))


def generate_map(document: WaferMapDocument) -> str:
    """
    Generates G85 map text for a document.

    Raises:
        EncodeError: If header Rows/Columns are missing or not non-negative integers.
    """
    rows = _grid_dimension(document.header, "Rows")
    columns = _grid_dimension(document.header, "Columns")

    root = ET.Element(MAP_ROOT_TAG, {
        name: document.substrate_attributes.get(name) or ""
        for name in SUBSTRATE_ATTRIBUTES
    })

    ET.SubElement(root, DEVICE_TAG, dict(_ordered_header(document.header)))

    if document.reference_device is not None:
        x_attr, y_attr = REFERENCE_DEVICE_ATTRIBUTES
        ET.SubElement(root, REFERENCE_DEVICE_TAG, {
            x_attr: document.reference_device.x or "",
            y_attr: document.reference_device.y or "",
        })

    for bin_def in document.bins:
        ET.SubElement(root, BIN_TAG, {
            BIN_CODE_ATTR: bin_def.code or "",
            BIN_QUALITY_ATTR: bin_def.quality or "",
            BIN_DESCRIPTION_ATTR: bin_def.description or "",
            BIN_COUNT_ATTR: str(bin_def.count or 0),
        })

    for y in range(rows):
        row = ET.SubElement(root, ROW_TAG)
        row.text = build_row_payload(document, y, columns)

    ET.indent(root, space="  ")
    logger.debug(f"Generated map for lot {document.lot_id!r}: {rows}x{columns}")
    return f"{XML_DECLARATION}\n{ET.tostring(root, encoding='unicode')}"
