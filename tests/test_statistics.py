import numpy as np
import pandas as pd
import pytest
from lotreview.analytics.bins import calculate_yield, die_grid_to_array, die_grid_to_frame, reconcile_bins
from lotreview.analytics.statistics import compute_statistics
from lotreview.core.models import WaferMapDocument
from lotreview.io.decoder import parse_map
from tests.create_test_data import SAMPLE_MAP, build_map


@pytest.fixture
def two_by_two():
    return parse_map(build_map(["EF01", "FA01"], row_count="2", column_count="2"))


def test_statistics_example(two_by_two):
    stats = compute_statistics(two_by_two)
    assert stats.total_dies == 4
    assert stats.defect_count == 1
    assert stats.reference_count == 1
    assert dict(stats.histogram) == {"EF": 1, "01": 2, "FA": 1}


def test_statistics_is_deterministic(two_by_two):
    first = compute_statistics(two_by_two)
    second = compute_statistics(two_by_two)
    assert first == second
    assert first.to_dict() == second.to_dict()
    assert list(first.histogram.items()) == list(second.histogram.items())


def test_statistics_empty_document():
    stats = compute_statistics(WaferMapDocument())
    assert stats.total_dies == 0
    assert stats.defect_count == 0
    assert stats.reference_count == 0
    assert dict(stats.histogram) == {}


def test_declared_counts_are_not_reconciled():
    doc = parse_map(build_map(["0101"], bins=[("01", "Pass", "Good", 10)]))
    stats = compute_statistics(doc)
    assert stats.histogram["01"] == 2
    assert doc.bins[0].count == 10


def test_to_dict_is_plain():
    stats = compute_statistics(parse_map(SAMPLE_MAP))
    as_dict = stats.to_dict()
    assert type(as_dict["histogram"]) is dict
    assert as_dict["total_dies"] == 12
    assert as_dict["defect_count"] == 1
    assert as_dict["reference_count"] == 1


class TestReconcileBins:
    def test_declared_and_observed_side_by_side(self):
        doc = parse_map(SAMPLE_MAP)
        df = reconcile_bins(doc, compute_statistics(doc))

        declared = df[df['DECLARED']].set_index('BIN_CODE')
        assert declared.loc['01', 'DECLARED_COUNT'] == 6
        assert declared.loc['01', 'OBSERVED_COUNT'] == 5
        assert declared.loc['01', 'DELTA'] == -1
        assert declared.loc['EF', 'DELTA'] == 0

    def test_undeclared_codes_are_listed(self):
        doc = parse_map(SAMPLE_MAP)
        df = reconcile_bins(doc, compute_statistics(doc))
        undeclared = df[~df['DECLARED']]
        assert set(undeclared['BIN_CODE']) == {"FF", "FA"}
        assert (undeclared['DECLARED_COUNT'] == 0).all()

    def test_keeps_catalog_order(self):
        doc = parse_map(build_map(["0203"], bins=[("03", "Fail", "C", 1), ("02", "Fail", "B", 1)]))
        df = reconcile_bins(doc, compute_statistics(doc))
        assert df['BIN_CODE'].tolist() == ["03", "02"]

    def test_empty(self):
        df = reconcile_bins(WaferMapDocument(), compute_statistics(WaferMapDocument()))
        assert df.empty
        assert 'DELTA' in df.columns


def test_die_grid_to_frame_sorted_row_major():
    doc = parse_map(build_map(["EF01", "FA02"]))
    df = die_grid_to_frame(doc)
    assert df[['X', 'Y']].values.tolist() == [[0, 0], [1, 0], [0, 1], [1, 1]]
    assert df['BIN_CODE'].tolist() == ["EF", "01", "FA", "02"]
    assert df['DEFECT_TYPE'].tolist()[:3] == ["defect", "", "reference"]


def test_die_grid_to_frame_empty():
    df = die_grid_to_frame(WaferMapDocument())
    assert df.empty
    assert list(df.columns) == ['X', 'Y', 'BIN_CODE', 'DEFECT_TYPE']


def test_die_grid_to_array_uses_declared_shape():
    doc = parse_map(build_map(["01", "0203"], row_count="3", column_count="2"))
    grid = die_grid_to_array(doc)
    assert grid.shape == (3, 2)
    assert grid[0].tolist() == ["01", "FF"]
    assert grid[1].tolist() == ["02", "03"]
    assert grid[2].tolist() == ["FF", "FF"]


def test_die_grid_to_array_falls_back_to_observed_extent():
    doc = parse_map(build_map(["010203"]))
    grid = die_grid_to_array(doc)
    assert grid.shape == (1, 3)
    assert isinstance(grid, np.ndarray)


def test_calculate_yield():
    doc = parse_map(SAMPLE_MAP)
    # 5 of 12 dies are in the 'Pass' bin
    assert calculate_yield(doc, compute_statistics(doc)) == pytest.approx(5 / 12)


def test_calculate_yield_empty_document():
    doc = WaferMapDocument()
    assert calculate_yield(doc, compute_statistics(doc)) == 0.0
