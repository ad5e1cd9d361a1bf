from datetime import datetime
import re
from typing import Optional, Union

from lotreview.core.config import REMOTE_FILENAME_PREFIX, REMOTE_FILENAME_EXTENSION


def sanitize_filename_part(value: str) -> str:
    """
    Makes a string safe for use inside a remote filename.
    Allows alphanumerics, hyphens and periods; everything else becomes '_'.
    """
    value = value.strip().replace(" ", "_")
    safe = "".join([c if c.isalnum() or c in ".-" else "_" for c in value])
    # Collapse runs created by sanitization
    safe = re.sub(r"_+", "_", safe).strip("_")
    return safe or "UNKNOWN"


def generate_remote_filename(
    lot_id: Union[str, int],
    timestamp: Optional[datetime] = None,
    prefix: str = REMOTE_FILENAME_PREFIX,
    extension: str = REMOTE_FILENAME_EXTENSION,
) -> str:
    """
    Generates the archive filename: [Prefix]_[LotId]_[YYYYMMDD]_[HHMMSS].ext
    Example: G85_LOT12345_20231026_141503.g85
    """
    stamp = timestamp or datetime.now()
    date_str = stamp.strftime("%Y%m%d")
    time_str = stamp.strftime("%H%M%S")
    return f"{prefix}_{sanitize_filename_part(str(lot_id))}_{date_str}_{time_str}.{extension}"
