"""
Domain Models for Wafer Map Review.

A ``WaferMapDocument`` is the decoded form of one G85 map: substrate and
device metadata, the declared bin catalog and the sparse die grid. Documents
are immutable values; every decode builds a fresh one and nothing mutates it
afterwards.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from lotreview.core.config import HEADER_ATTRIBUTES, SUBSTRATE_ATTRIBUTES
from lotreview.enums import DefectKind

Coordinate = Tuple[int, int]


def _freeze(mapping: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


def empty_substrate_attributes() -> Dict[str, Optional[str]]:
    return {name: None for name in SUBSTRATE_ATTRIBUTES}


def empty_header() -> Dict[str, Optional[str]]:
    return {name: None for name in HEADER_ATTRIBUTES}


@dataclass(frozen=True)
class BinDefinition:
    """One declared entry of the bin catalog. ``count`` is the declared count; absent text fields read as ""."""
    code: str
    quality: str = ""
    description: str = ""
    count: int = 0


@dataclass(frozen=True)
class ReferenceDevice:
    """Coordinate offsets of the reference device, kept as literal strings."""
    x: str = ""
    y: str = ""


@dataclass(frozen=True)
class DefectEntry:
    """A die carrying one of the reserved classification codes."""
    x: int
    y: int
    code: str
    kind: DefectKind

    @property
    def coordinate(self) -> Coordinate:
        return (self.x, self.y)


@dataclass(frozen=True)
class WaferMapDocument:
    """
    Decoded wafer map.

    ``die_grid`` is sparse: rows shorter than the declared ``Columns`` simply
    have fewer entries. ``defects`` is the subset of ``die_grid`` holding the
    reserved ``EF`` / ``FA`` codes.
    """
    substrate_attributes: Mapping[str, Optional[str]] = field(default_factory=empty_substrate_attributes)
    header: Mapping[str, Optional[str]] = field(default_factory=empty_header)
    reference_device: Optional[ReferenceDevice] = None
    bins: Tuple[BinDefinition, ...] = ()
    die_grid: Mapping[Coordinate, str] = field(default_factory=dict)
    defects: Tuple[DefectEntry, ...] = ()

    def __post_init__(self):
        # Frozen dataclass: bypass __setattr__ to store read-only views
        object.__setattr__(self, 'substrate_attributes', _freeze(self.substrate_attributes))
        object.__setattr__(self, 'header', _freeze(self.header))
        object.__setattr__(self, 'die_grid', _freeze(self.die_grid))
        object.__setattr__(self, 'bins', tuple(self.bins))
        object.__setattr__(self, 'defects', tuple(self.defects))

    @property
    def lot_id(self) -> Optional[str]:
        return self.header.get("LotId")

    @property
    def declared_rows(self) -> Optional[str]:
        return self.header.get("Rows")

    @property
    def declared_columns(self) -> Optional[str]:
        return self.header.get("Columns")

    def observed_extent(self) -> Tuple[int, int]:
        """Returns (rows, columns) actually covered by the die grid."""
        if not self.die_grid:
            return (0, 0)
        max_x = max(x for x, _ in self.die_grid)
        max_y = max(y for _, y in self.die_grid)
        return (max_y + 1, max_x + 1)


@dataclass(frozen=True)
class BinStatistics:
    """Observed die counts for a document. Computed on demand, never stored on it."""
    total_dies: int
    defect_count: int
    reference_count: int
    histogram: Mapping[str, int]

    def __post_init__(self):
        object.__setattr__(self, 'histogram', _freeze(self.histogram))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_dies": self.total_dies,
            "defect_count": self.defect_count,
            "reference_count": self.reference_count,
            "histogram": dict(self.histogram),
        }


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of the structural pre-check. ``error`` holds the first failure only."""
    valid: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def failure(cls, reason: str) -> "ValidationResult":
        return cls(valid=False, error=reason)
