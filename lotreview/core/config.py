"""
Configuration Module.

This module contains the constants of the G85 map format (element and
attribute names, token width) and the settings of the surrounding lot
pipeline: upload limits, storage location and the remote archive connection.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# --- Map Document Structure ---
MAP_ROOT_TAG = "Map"
DEVICE_TAG = "Device"
REFERENCE_DEVICE_TAG = "ReferenceDevice"
BIN_TAG = "Bin"
ROW_TAG = "Row"

# Root-level (substrate) attributes, in emission order
SUBSTRATE_ATTRIBUTES = (
    "SubstrateNumber",
    "SubstrateType",
    "SubstrateId",
    "FormatRevision",
)

# Device-level (header) attributes, in emission order
HEADER_ATTRIBUTES = (
    "BinType",
    "SupplierName",
    "LotId",
    "DeviceSizeX",
    "DeviceSizeY",
    "NullBin",
    "ProductId",
    "Rows",
    "Columns",
    "MapType",
    "OriginLocation",
    "Orientation",
    "WaferSize",
    "CreateDate",
    "LastModified",
)

REFERENCE_DEVICE_ATTRIBUTES = ("ReferenceDeviceX", "ReferenceDeviceY")

BIN_CODE_ATTR = "BinCode"
BIN_QUALITY_ATTR = "BinQuality"
BIN_DESCRIPTION_ATTR = "BinDescription"
BIN_COUNT_ATTR = "BinCount"

# Every die is encoded as a fixed-width token inside a Row payload
TOKEN_WIDTH = 2

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

# Bin quality that counts toward yield
PASS_QUALITY = "Pass"

# --- Upload Limits ---
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB
ALLOWED_EXTENSIONS = (".g85", ".xml")

# --- Storage ---
DEFAULT_DB_PATH = Path(os.environ.get("LOTREVIEW_DB_PATH", "lotreview.db"))

# --- Delivery ---
REMOTE_FILENAME_PREFIX = "G85"
REMOTE_FILENAME_EXTENSION = "g85"
DEFAULT_FTP_PORT = 21
DEFAULT_FTP_TIMEOUT = 30.0


@dataclass
class DeliverySettings:
    """Connection settings for the remote delivery archive."""
    host: str
    port: int = DEFAULT_FTP_PORT
    user: str = "anonymous"
    password: str = ""
    secure: bool = False
    remote_dir: Optional[str] = None
    timeout: float = DEFAULT_FTP_TIMEOUT

    @property
    def target_name(self) -> str:
        """Name recorded in delivery logs for this archive."""
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> "DeliverySettings":
        """
        Builds settings from the FTP_* environment variables.

        Raises:
            ValueError: If FTP_HOST is unset or a numeric variable is malformed.
        """
        host = os.environ.get("FTP_HOST", "").strip()
        if not host:
            raise ValueError("FTP_HOST must be set to deliver lots.")

        return cls(
            host=host,
            port=int(os.environ.get("FTP_PORT") or DEFAULT_FTP_PORT),
            user=os.environ.get("FTP_USER") or "anonymous",
            password=os.environ.get("FTP_PASSWORD", ""),
            secure=os.environ.get("FTP_SECURE", "").lower() == "true",
            remote_dir=os.environ.get("FTP_REMOTE_DIR") or None,
            timeout=float(os.environ.get("FTP_TIMEOUT") or DEFAULT_FTP_TIMEOUT),
        )
