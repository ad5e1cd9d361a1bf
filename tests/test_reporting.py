import pytest
import pandas as pd
from io import BytesIO
from lotreview.analytics.statistics import compute_statistics
from lotreview.io.decoder import parse_map
from lotreview.io.exporters.excel import generate_lot_report
from tests.create_test_data import SAMPLE_MAP, build_map


@pytest.fixture
def sample_document():
    return parse_map(SAMPLE_MAP)


def test_generate_lot_report_structure(sample_document):
    """
    Tests that the generated Excel report has the expected sheets.
    """
    report_bytes = generate_lot_report(sample_document, source_filename="LOT42.g85")

    assert isinstance(report_bytes, bytes)
    assert len(report_bytes) > 0

    with pd.ExcelFile(BytesIO(report_bytes), engine='openpyxl') as xls:
        assert xls.sheet_names == ['Lot Summary', 'Bin Summary', 'Die List', 'Wafer Map']


def test_bin_summary_content(sample_document):
    report_bytes = generate_lot_report(sample_document, compute_statistics(sample_document))
    bins_df = pd.read_excel(BytesIO(report_bytes), sheet_name='Bin Summary', engine='openpyxl')

    assert bins_df['BIN_CODE'].astype(str).tolist()[:3] == ['01', '02', 'EF']
    good = bins_df[bins_df['BIN_CODE'].astype(str) == '01'].iloc[0]
    assert good['DECLARED_COUNT'] == 6
    assert good['OBSERVED_COUNT'] == 5


def test_die_list_content(sample_document):
    report_bytes = generate_lot_report(sample_document)
    dies_df = pd.read_excel(BytesIO(report_bytes), sheet_name='Die List', engine='openpyxl')

    assert len(dies_df) == 12
    assert list(dies_df.columns) == ['X', 'Y', 'BIN_CODE', 'DEFECT_TYPE']


def test_summary_lists_lot_metadata(sample_document):
    report_bytes = generate_lot_report(sample_document)
    summary = pd.read_excel(BytesIO(report_bytes), sheet_name='Lot Summary', header=None, engine='openpyxl')
    labels = summary[0].dropna().astype(str).tolist()

    assert 'Total Dies' in labels
    assert 'LotId' in labels
    assert 'SubstrateId' in labels


def test_wafer_map_sheet_mirrors_grid(sample_document):
    report_bytes = generate_lot_report(sample_document)
    wafer = pd.read_excel(BytesIO(report_bytes), sheet_name='Wafer Map', header=None, engine='openpyxl')

    assert wafer.shape == (4, 5)
    assert wafer.iloc[0, 1:].tolist() == [0, 1, 2, 3]
    assert wafer.iloc[1:, 0].tolist() == [0, 1, 2]
    assert wafer.iloc[1, 1:].tolist() == ['FF', '01', '01', 'FF']
    assert wafer.iloc[2, 1:].tolist() == ['01', 'FA', '02', 'EF']


def test_wafer_map_sheet_fills_missing_dies():
    document = parse_map(build_map(["01"], "2", "2"))
    report_bytes = generate_lot_report(document)
    wafer = pd.read_excel(BytesIO(report_bytes), sheet_name='Wafer Map', header=None, engine='openpyxl')

    assert wafer.iloc[1, 1:].tolist() == ['01', 'FF']
    assert wafer.iloc[2, 1:].tolist() == ['FF', 'FF']


def test_report_for_map_with_only_ordinary_dies():
    document = parse_map(build_map(["0102", "0303"], "2", "2"))
    report_bytes = generate_lot_report(document)
    dies_df = pd.read_excel(BytesIO(report_bytes), sheet_name='Die List', engine='openpyxl')

    assert len(dies_df) == 4
    assert dies_df['DEFECT_TYPE'].isna().all()
