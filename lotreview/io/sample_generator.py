import numpy as np
from datetime import datetime
from typing import Dict, Tuple

from lotreview.core.models import BinDefinition, DefectEntry, ReferenceDevice, WaferMapDocument
from lotreview.enums import DefectKind, ReservedBin

# --- BIN DEFINITIONS FOR SAMPLE GENERATION ---
# (code, quality, description, relative weight among on-wafer dies)
SAMPLE_BINS = [
    ("01", "Pass", "Good Die", 0.86),
    ("02", "Fail", "Open/Short", 0.05),
    ("03", "Fail", "Leakage", 0.04),
    ("04", "Fail", "Parametric", 0.03),
    (ReservedBin.DEFECT.value, "Fail", "Visual Defect", 0.02),
]


def generate_sample_document(
    rows: int = 20,
    columns: int = 20,
    seed: int = 55,
    lot_id: str = "SAMPLE-LOT",
) -> WaferMapDocument:
    """
    Generates a synthetic round wafer for demonstration and tests.

    Dies whose centre lies outside the inscribed circle carry the fill code;
    the centre die is the reference device ('FA'). Declared bin counts match
    the generated dies.

    Args:
        rows: Number of grid rows
        columns: Number of grid columns
        seed: Seed for the random bin assignment
        lot_id: LotId written to the header
    """
    rng = np.random.RandomState(seed)

    codes = [b[0] for b in SAMPLE_BINS]
    weights = np.array([b[3] for b in SAMPLE_BINS])
    weights = weights / weights.sum()

    # Normalised distance of each die centre from the wafer centre
    ys, xs = np.mgrid[0:rows, 0:columns]
    cx, cy = (columns - 1) / 2, (rows - 1) / 2
    rx, ry = max(columns / 2, 0.5), max(rows / 2, 0.5)
    on_wafer = ((xs - cx) / rx) ** 2 + ((ys - cy) / ry) ** 2 <= 1.0

    assigned = rng.choice(codes, size=(rows, columns), p=weights)
    grid = np.where(on_wafer, assigned, ReservedBin.FILL.value)

    ref_x, ref_y = columns // 2, rows // 2
    reference = None
    if rows and columns:
        grid[ref_y, ref_x] = ReservedBin.REFERENCE.value
        reference = ReferenceDevice(x=str(ref_x), y=str(ref_y))

    die_grid: Dict[Tuple[int, int], str] = {}
    defects = []
    for y in range(rows):
        for x in range(columns):
            code = str(grid[y, x])
            die_grid[(x, y)] = code
            kind = DefectKind.from_code(code)
            if kind is not None:
                defects.append(DefectEntry(x=x, y=y, code=code, kind=kind))

    observed = {code: int((grid == code).sum()) for code in codes}
    bins = [BinDefinition(code, quality, description, observed[code]) for code, quality, description, _ in SAMPLE_BINS]

    created = datetime(2024, 1, 1).strftime("%Y%m%d%H%M%S")
    header = {
        "BinType": "ASCII",
        "SupplierName": "Sample Fab",
        "LotId": lot_id,
        "DeviceSizeX": "5.0",
        "DeviceSizeY": "5.0",
        "NullBin": ReservedBin.FILL.value,
        "ProductId": "SAMPLE-PRODUCT",
        "Rows": str(rows),
        "Columns": str(columns),
        "MapType": "Array",
        "OriginLocation": "0",
        "Orientation": "0",
        "WaferSize": "200",
        "CreateDate": created,
        "LastModified": created,
    }

    return WaferMapDocument(
        substrate_attributes={
            "SubstrateNumber": "1",
            "SubstrateType": "Wafer",
            "SubstrateId": f"{lot_id}-01",
            "FormatRevision": "SEMI G85 0703",
        },
        header=header,
        reference_device=reference,
        bins=bins,
        die_grid=die_grid,
        defects=defects,
    )
