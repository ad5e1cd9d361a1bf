"""
Excel Export Logic.
Builds the multi-sheet lot review workbook (summary, bin reconciliation,
die list and wafer map) using xlsxwriter.
"""
import io
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import pandas as pd

from lotreview.analytics.bins import calculate_yield, die_grid_to_array, die_grid_to_frame, reconcile_bins
from lotreview.analytics.statistics import compute_statistics
from lotreview.core.models import BinStatistics, WaferMapDocument
from lotreview.enums import ReservedBin
from lotreview.utils.telemetry import track_performance

# --- THEME CONFIG ---
THEME_COLOR_PRIMARY = '#1F497D'       # Dark Blue (Headers)
THEME_COLOR_ACCENT = '#C0504D'        # Red (Mismatch)
FONT_MAIN = 'Calibri'

SUMMARY_SHEET = 'Lot Summary'
BINS_SHEET = 'Bin Summary'
DIES_SHEET = 'Die List'
MAP_SHEET = 'Wafer Map'

logger = logging.getLogger(__name__)


def _define_formats(workbook) -> Dict[str, Any]:
    """Defines the styling formats used in the lot report."""
    base_fmt = {'font_name': FONT_MAIN, 'font_size': 11, 'border': 0}

    return {
        'title': workbook.add_format({**base_fmt, 'bold': True, 'font_size': 18, 'font_color': THEME_COLOR_PRIMARY, 'valign': 'vcenter'}),
        'subtitle': workbook.add_format({**base_fmt, 'bold': True, 'font_size': 12, 'font_color': '#595959'}),
        'header': workbook.add_format({
            **base_fmt, 'bold': True, 'text_wrap': True, 'valign': 'top',
            'fg_color': THEME_COLOR_PRIMARY, 'font_color': 'white',
            'border': 1, 'align': 'center'
        }),
        'label': workbook.add_format({**base_fmt, 'bold': True, 'border': 1}),
        'cell': workbook.add_format({**base_fmt, 'border': 1}),
        'int': workbook.add_format({**base_fmt, 'num_format': '#,##0', 'border': 1, 'align': 'center'}),
        'percent': workbook.add_format({**base_fmt, 'num_format': '0.0%', 'border': 1, 'align': 'center'}),
        'mismatch': workbook.add_format({'bg_color': '#FFC7CE', 'font_color': '#9C0006'}),
        'meta_label': workbook.add_format({**base_fmt, 'bold': True, 'font_color': '#7F7F7F', 'font_size': 8}),
        'meta_value': workbook.add_format({**base_fmt, 'font_color': '#000000', 'font_size': 8}),

        # Wafer Map cells
        'die': workbook.add_format({**base_fmt, 'font_size': 8, 'border': 1, 'align': 'center'}),
        'die_defect': workbook.add_format({**base_fmt, 'font_size': 8, 'border': 1, 'align': 'center', 'bg_color': '#FFC7CE', 'font_color': '#9C0006'}),
        'die_reference': workbook.add_format({**base_fmt, 'font_size': 8, 'border': 1, 'align': 'center', 'bg_color': '#D9E1F2', 'font_color': THEME_COLOR_PRIMARY}),
        'die_fill': workbook.add_format({**base_fmt, 'font_size': 8, 'border': 1, 'align': 'center', 'font_color': '#BFBFBF'}),
    }


def _auto_fit_columns(worksheet, df: pd.DataFrame, start_col: int = 0, padding: int = 2):
    """Adjusts column widths based on content."""
    for i, col in enumerate(df.columns):
        max_len = max(
            df[col].fillna('').astype(str).str.len().max() if not df[col].empty else 0,
            len(str(col))
        )
        worksheet.set_column(start_col + i, start_col + i, max_len + padding)


def _write_table(writer, sheet_name: str, df: pd.DataFrame, formats, start_row: int = 0):
    df.to_excel(writer, sheet_name=sheet_name, startrow=start_row, index=False)
    worksheet = writer.sheets[sheet_name]
    for col_num, value in enumerate(df.columns):
        worksheet.write(start_row, col_num, value, formats['header'])
    _auto_fit_columns(worksheet, df)
    return worksheet


# --- SHEET 1: LOT SUMMARY ---
def _create_summary_sheet(writer, formats, document: WaferMapDocument, statistics: BinStatistics, source_filename: str):
    workbook = writer.book
    sheet = workbook.add_worksheet(SUMMARY_SHEET)
    sheet.hide_gridlines(2)

    sheet.write('A1', 'GENERATED:', formats['meta_label'])
    sheet.write('B1', datetime.now().strftime("%Y-%m-%d %H:%M:%S"), formats['meta_value'])
    sheet.write('A2', 'SOURCE:', formats['meta_label'])
    sheet.write('B2', source_filename, formats['meta_value'])
    sheet.merge_range('A4:D4', f"Wafer Lot Review: {document.lot_id or 'Unknown Lot'}", formats['title'])

    kpis = [
        ("Total Dies", statistics.total_dies, formats['int']),
        ("Defect Dies (EF)", statistics.defect_count, formats['int']),
        ("Reference Dies (FA)", statistics.reference_count, formats['int']),
        ("Yield (Pass Bins)", calculate_yield(document, statistics), formats['percent']),
    ]
    row = 5
    sheet.write(row, 0, 'Key Metrics', formats['subtitle'])
    for label, value, fmt in kpis:
        row += 1
        sheet.write(row, 0, label, formats['label'])
        sheet.write(row, 1, value, fmt)

    row += 2
    sheet.write(row, 0, 'Substrate', formats['subtitle'])
    for name, value in document.substrate_attributes.items():
        row += 1
        sheet.write(row, 0, name, formats['label'])
        sheet.write(row, 1, value or '', formats['cell'])

    row += 2
    sheet.write(row, 0, 'Device Header', formats['subtitle'])
    for name, value in document.header.items():
        if value is None:
            continue
        row += 1
        sheet.write(row, 0, name, formats['label'])
        sheet.write(row, 1, value, formats['cell'])

    sheet.set_column(0, 0, 24)
    sheet.set_column(1, 1, 28)


# --- SHEET 2: BIN RECONCILIATION ---
def _create_bins_sheet(writer, formats, document: WaferMapDocument, statistics: BinStatistics):
    bins_df = reconcile_bins(document, statistics)
    sheet = _write_table(writer, BINS_SHEET, bins_df, formats)
    if not bins_df.empty:
        delta_col = bins_df.columns.get_loc('DELTA')
        sheet.conditional_format(1, delta_col, len(bins_df), delta_col, {
            'type': 'cell', 'criteria': '!=', 'value': 0, 'format': formats['mismatch'],
        })


# --- SHEET 3: DIE LIST ---
def _create_die_list_sheet(writer, formats, document: WaferMapDocument):
    dies_df = die_grid_to_frame(document)
    sheet = _write_table(writer, DIES_SHEET, dies_df, formats)
    sheet.freeze_panes(1, 0)


# --- SHEET 4: WAFER MAP ---
def _create_wafer_map_sheet(writer, formats, document: WaferMapDocument):
    """Dense grid view: one cell per die, row/column indices on the edges."""
    grid = die_grid_to_array(document)
    sheet = writer.book.add_worksheet(MAP_SHEET)
    cell_formats = {
        ReservedBin.DEFECT.value: formats['die_defect'],
        ReservedBin.REFERENCE.value: formats['die_reference'],
        ReservedBin.FILL.value: formats['die_fill'],
    }

    rows, cols = grid.shape
    for x in range(cols):
        sheet.write(0, x + 1, x, formats['header'])
    for y in range(rows):
        sheet.write(y + 1, 0, y, formats['header'])
        for x in range(cols):
            code = str(grid[y, x])
            sheet.write(y + 1, x + 1, code, cell_formats.get(code, formats['die']))

    sheet.set_column(0, cols, 4)
    sheet.freeze_panes(1, 1)


@track_performance("Lot Report Export")
def generate_lot_report(
    document: WaferMapDocument,
    statistics: Optional[BinStatistics] = None,
    source_filename: str = "Sample Data",
) -> bytes:
    """
    Generates the lot review workbook and returns it as bytes.
    """
    statistics = statistics or compute_statistics(document)
    output_buffer = io.BytesIO()

    with pd.ExcelWriter(output_buffer, engine='xlsxwriter') as writer:
        formats = _define_formats(writer.book)
        _create_summary_sheet(writer, formats, document, statistics, source_filename)
        _create_bins_sheet(writer, formats, document, statistics)
        _create_die_list_sheet(writer, formats, document)
        _create_wafer_map_sheet(writer, formats, document)

    logger.info(f"Lot report generated for {document.lot_id!r}")
    return output_buffer.getvalue()
