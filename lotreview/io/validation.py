import logging
from xml.etree.ElementTree import ParseError

from defusedxml import DefusedXmlException

from lotreview.core.config import DEVICE_TAG, MAP_ROOT_TAG, ROW_TAG
from lotreview.core.models import ValidationResult
from lotreview.io.markup import first_element, local_name, parse_markup

logger = logging.getLogger(__name__)

INVALID_XML = "Invalid XML format"
WRONG_ROOT = f"Root element must be '{MAP_ROOT_TAG}'"
MISSING_DEVICE = f"Missing {DEVICE_TAG} element"
NO_ROWS = f"No {ROW_TAG} elements found"


def validate_map(text) -> ValidationResult:
    """
    Structural pre-check of a G85 map document. Never raises.

    Checks run in order and stop at the first failure:
    1. The text is well-formed XML.
    2. The root element is 'Map'.
    3. A 'Device' element exists.
    4. At least one 'Row' element exists.
    """
    try:
        root = parse_markup(text)
    except (ParseError, DefusedXmlException, TypeError) as e:
        logger.debug(f"Map text rejected as markup: {e}")
        return ValidationResult.failure(INVALID_XML)

    try:
        if local_name(root.tag) != MAP_ROOT_TAG:
            return ValidationResult.failure(WRONG_ROOT)

        if first_element(root, DEVICE_TAG) is None:
            return ValidationResult.failure(MISSING_DEVICE)

        if first_element(root, ROW_TAG) is None:
            return ValidationResult.failure(NO_ROWS)
    except Exception as e:
        logger.exception("Unexpected error while validating map")
        return ValidationResult.failure(str(e))

    return ValidationResult.ok()
