from typing import Dict

from lotreview.core.models import BinStatistics, WaferMapDocument
from lotreview.enums import ReservedBin


def compute_statistics(document: WaferMapDocument) -> BinStatistics:
    """
    Single pass over the die grid producing observed counts.

    Every code lands in the histogram, reserved ones included. The result
    depends only on the grid contents, so repeated calls compare equal.
    """
    total = 0
    defects = 0
    references = 0
    histogram: Dict[str, int] = {}

    for code in document.die_grid.values():
        total += 1
        if code == ReservedBin.DEFECT.value:
            defects += 1
        elif code == ReservedBin.REFERENCE.value:
            references += 1
        histogram[code] = histogram.get(code, 0) + 1

    return BinStatistics(
        total_dies=total,
        defect_count=defects,
        reference_count=references,
        histogram=histogram,
    )
