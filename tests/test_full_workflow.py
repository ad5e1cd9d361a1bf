import pytest
import pandas as pd
from io import BytesIO
from lotreview.delivery.service import DeliveryService
from lotreview.io.decoder import parse_map
from lotreview.io.exporters.excel import generate_lot_report
from lotreview.io.exporters.g85 import generate_map
from lotreview.io.ingestion import ingest_map
from lotreview.io.sample_generator import generate_sample_document
from lotreview.storage.lots import LotStore


class RecordingTransport:
    target_name = "archive.test:21"

    def __init__(self):
        self.uploads = {}

    def upload(self, remote_name, payload):
        self.uploads[remote_name] = payload


def test_full_workflow_upload_review_deliver(tmp_path):
    """
    Tests the complete workflow:
    1. Generate a sample map (simulating an upload)
    2. Ingest it into the lot store
    3. Approve the lot and export the review workbook
    4. Deliver it and verify the archived map
    """
    store = LotStore(tmp_path / "lots.db")
    store.init_db()

    # 1. Upload
    sample = generate_sample_document(16, 16, seed=11, lot_id="WF-0016")
    upload_text = generate_map(sample)

    # 2. Ingest
    result = ingest_map(upload_text, store, filename="WF-0016.g85", uploaded_by="engineer")
    assert result.success, result.errors
    assert result.warnings == []
    assert result.statistics.total_dies == 256

    # 3. Review
    store.update_status(result.lot_pk, "approved", approved_by="lead")
    report = generate_lot_report(store.load_document(result.lot_pk), source_filename="WF-0016.g85")
    with pd.ExcelFile(BytesIO(report), engine='openpyxl') as xls:
        assert 'Bin Summary' in xls.sheet_names

    # 4. Deliver
    transport = RecordingTransport()
    delivery = DeliveryService(store, transport).deliver(result.lot_pk)
    assert delivery.filename.startswith("G85_WF-0016_")

    archived = parse_map(transport.uploads[delivery.filename].decode("utf-8"))
    assert dict(archived.die_grid) == dict(sample.die_grid)
    assert archived.bins == sample.bins
    assert archived.header["LotId"] == "WF-0016"
    assert store.get_lot(result.lot_pk)["delivered"] == 1
