"""
Enum Definitions Module.

This module contains Enumeration classes for the constant value sets of the
lot review domain: the bin codes that carry built-in meaning, the defect
classifications derived from them, and the lot / delivery lifecycle states.
Using enums instead of raw strings keeps classification logic in one place.
"""
from enum import Enum
from typing import Optional


class ReservedBin(Enum):
    """Bin codes with built-in semantic meaning. All other codes are opaque."""
    DEFECT = "EF"
    REFERENCE = "FA"
    FILL = "FF"

    @classmethod
    def values(cls) -> list[str]:
        """Returns the string values of all enum members."""
        return [item.value for item in cls]


class DefectKind(Enum):
    """Classification tag attached to reserved dies found while decoding."""
    DEFECT = "defect"
    REFERENCE = "reference"

    @classmethod
    def from_code(cls, code: str) -> Optional["DefectKind"]:
        """Maps a bin code to its defect classification, or None for ordinary codes."""
        if code == ReservedBin.DEFECT.value:
            return cls.DEFECT
        if code == ReservedBin.REFERENCE.value:
            return cls.REFERENCE
        return None


class LotStatus(Enum):
    """Review state of a persisted lot."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def values(cls) -> list[str]:
        """Returns the string values of all enum members."""
        return [item.value for item in cls]


class DeliveryOutcome(Enum):
    """Outcome recorded for each delivery attempt."""
    SUCCESS = "success"
    FAILED = "failed"
