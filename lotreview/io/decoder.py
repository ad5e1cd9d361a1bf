"""
G85 Map Decoder.

Turns map text into a ``WaferMapDocument``. Decoding is permissive: once the
text parses as XML, missing substrate and header attributes become None,
missing bin and reference-device fields become "", missing elements become
empty collections and short rows simply yield fewer dies. Row text is used
exactly as written: whitespace is token data, not padding. Only text that
cannot be parsed at all raises ``DecodeError``.
"""
import logging
from typing import Dict, List, Optional, Tuple, Union
from xml.etree.ElementTree import Element, ParseError

from defusedxml import DefusedXmlException

from lotreview.core.config import (
    BIN_CODE_ATTR, BIN_COUNT_ATTR, BIN_DESCRIPTION_ATTR, BIN_QUALITY_ATTR, BIN_TAG,
    DEVICE_TAG, HEADER_ATTRIBUTES, REFERENCE_DEVICE_ATTRIBUTES, REFERENCE_DEVICE_TAG,
    ROW_TAG, SUBSTRATE_ATTRIBUTES, TOKEN_WIDTH,
)
from lotreview.core.errors import DecodeError
from lotreview.core.models import (
    BinDefinition, Coordinate, DefectEntry, ReferenceDevice, WaferMapDocument,
)
from lotreview.enums import DefectKind
from lotreview.io.markup import element_text, first_element, iter_elements, parse_markup

logger = logging.getLogger(__name__)


# --- Attribute Extractor ---

def _read_attributes(element: Optional[Element], names) -> Dict[str, Optional[str]]:
    if element is None:
        return {name: None for name in names}
    return {name: element.get(name) for name in names}


def extract_substrate_attributes(root: Element) -> Dict[str, Optional[str]]:
    """Reads the substrate attributes carried by the root element."""
    return _read_attributes(root, SUBSTRATE_ATTRIBUTES)


def extract_header(root: Element) -> Dict[str, Optional[str]]:
    """Reads the device attributes of the first Device element (all None if absent)."""
    return _read_attributes(first_element(root, DEVICE_TAG), HEADER_ATTRIBUTES)


def extract_reference_device(root: Element) -> Optional[ReferenceDevice]:
    element = first_element(root, REFERENCE_DEVICE_TAG)
    if element is None:
        return None
    x_attr, y_attr = REFERENCE_DEVICE_ATTRIBUTES
    return ReferenceDevice(x=element.get(x_attr, ""), y=element.get(y_attr, ""))


# --- Bin Catalog Builder ---

def _parse_count(raw: Optional[str]) -> int:
    # Lenient: absent or non-numeric declared counts read as 0
    if raw is None:
        return 0
    try:
        return int(raw.strip())
    except ValueError:
        return 0


def extract_bins(root: Element) -> List[BinDefinition]:
    """Reads Bin definitions in document order. Duplicate codes are kept."""
    return [
        BinDefinition(
            code=element.get(BIN_CODE_ATTR, ""),
            quality=element.get(BIN_QUALITY_ATTR, ""),
            description=element.get(BIN_DESCRIPTION_ATTR, ""),
            count=_parse_count(element.get(BIN_COUNT_ATTR)),
        )
        for element in iter_elements(root, BIN_TAG)
    ]


# --- Row Decoder ---

def decode_row(payload: str, y: int) -> List[Tuple[Coordinate, str]]:
    """
    Splits one row payload into ((x, y), code) pairs.

    The token at offset i lands at x = i // TOKEN_WIDTH. Decoding stops at the
    end of the payload; a trailing partial token is dropped.
    """
    usable = len(payload) - (len(payload) % TOKEN_WIDTH)
    return [
        ((i // TOKEN_WIDTH, y), payload[i:i + TOKEN_WIDTH])
        for i in range(0, usable, TOKEN_WIDTH)
    ]


def decode_rows(root: Element) -> Tuple[Dict[Coordinate, str], List[DefectEntry]]:
    """Decodes every Row element (y = document order) into the die grid and defect list."""
    die_grid: Dict[Coordinate, str] = {}
    defects: List[DefectEntry] = []

    for y, row in enumerate(iter_elements(root, ROW_TAG)):
        for (x, _), code in decode_row(element_text(row), y):
            die_grid[(x, y)] = code
            kind = DefectKind.from_code(code)
            if kind is not None:
                defects.append(DefectEntry(x=x, y=y, code=code, kind=kind))

    return die_grid, defects


def parse_map(text: Union[str, bytes]) -> WaferMapDocument:
    """
    Decodes G85 map text into a WaferMapDocument.

    Raises:
        DecodeError: If the text cannot be parsed as XML.
    """
    try:
        root = parse_markup(text)
    except (ParseError, DefusedXmlException, TypeError) as e:
        raise DecodeError(f"Failed to parse G85 file: {e}") from e

    die_grid, defects = decode_rows(root)
    document = WaferMapDocument(
        substrate_attributes=extract_substrate_attributes(root),
        header=extract_header(root),
        reference_device=extract_reference_device(root),
        bins=extract_bins(root),
        die_grid=die_grid,
        defects=defects,
    )
    logger.debug(f"Decoded map {document.lot_id!r}: {len(die_grid)} dies, {len(document.bins)} bins")
    return document
