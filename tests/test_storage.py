import pytest
from lotreview.analytics.statistics import compute_statistics
from lotreview.core.errors import LotNotFoundError
from lotreview.enums import DeliveryOutcome
from lotreview.io.decoder import parse_map
from lotreview.storage.lots import LotStore
from tests.create_test_data import SAMPLE_MAP, build_map


@pytest.fixture
def store(tmp_path):
    lot_store = LotStore(tmp_path / "lots.db")
    lot_store.init_db()
    return lot_store


def _save(store, text=SAMPLE_MAP, **kwargs):
    document = parse_map(text)
    return store.save_lot(document, compute_statistics(document), **kwargs)


def test_load_document_rebuilds_decoded_map(store):
    original = parse_map(SAMPLE_MAP)
    lot_pk = store.save_lot(original, compute_statistics(original), filename="LOT42.g85")

    loaded = store.load_document(lot_pk)
    assert loaded == original


def test_load_document_without_reference_device(store):
    lot_pk = _save(store, build_map(["0102"], "1", "2"))
    assert store.load_document(lot_pk).reference_device is None


def test_die_records_flag_defects(store):
    lot_pk = _save(store)
    with store.get_connection() as conn:
        rows = conn.execute(
            "SELECT bin_code, is_defect, defect_type FROM dies WHERE lot_pk = ? AND defect_type IS NOT NULL ORDER BY bin_code",
            (lot_pk,),
        ).fetchall()
    assert [tuple(r) for r in rows] == [("EF", 1, "defect"), ("FA", 0, "reference")]


def test_get_unknown_lot(store):
    with pytest.raises(LotNotFoundError):
        store.get_lot(999)


def test_update_status(store):
    lot_pk = _save(store)
    store.update_status(lot_pk, "approved", approved_by="admin")
    lot = store.get_lot(lot_pk)
    assert lot["status"] == "approved"
    assert lot["approved_by"] == "admin"
    assert lot["approved_at"] is not None

    store.update_status(lot_pk, "rejected", approved_by="admin")
    lot = store.get_lot(lot_pk)
    assert lot["status"] == "rejected"
    assert lot["approved_by"] is None


def test_update_status_rejects_unknown_values(store):
    lot_pk = _save(store)
    with pytest.raises(ValueError):
        store.update_status(lot_pk, "shipped")
    with pytest.raises(LotNotFoundError):
        store.update_status(lot_pk + 1, "approved")


def test_list_lots_filters_and_paginates(store):
    first = _save(store, build_map(["01"], "1", "1", lot_id="ALPHA"))
    second = _save(store, build_map(["01"], "1", "1", lot_id="BETA"))
    third = _save(store, build_map(["01"], "1", "1", lot_id="ALPHA-2"))
    store.update_status(second, "approved")

    rows, total = store.list_lots()
    assert total == 3
    assert [r["id"] for r in rows] == [third, second, first]

    rows, total = store.list_lots(status="approved")
    assert total == 1 and rows[0]["lot_id"] == "BETA"

    rows, total = store.list_lots(search="ALPHA", page=2, limit=1)
    assert total == 2
    assert [r["id"] for r in rows] == [first]


def test_delete_lot_removes_everything(store):
    lot_pk = _save(store)
    store.append_delivery_log(lot_pk, "archive:21", DeliveryOutcome.FAILED, error_message="refused")
    store.delete_lot(lot_pk)

    assert store.count_records(lot_pk) == {"dies": 0, "bins": 0, "delivery_logs": 0}
    with pytest.raises(LotNotFoundError):
        store.get_lot(lot_pk)
    with pytest.raises(LotNotFoundError):
        store.delete_lot(lot_pk)


def test_delivery_history_newest_first(store):
    lot_pk = _save(store)
    store.append_delivery_log(lot_pk, "archive:21", DeliveryOutcome.FAILED, filename="a.g85", error_message="timeout")
    store.append_delivery_log(lot_pk, "archive:21", DeliveryOutcome.SUCCESS, filename="b.g85")

    history = store.get_delivery_history(lot_pk)
    assert [h["status"] for h in history] == ["success", "failed"]
    assert history[1]["error_message"] == "timeout"
