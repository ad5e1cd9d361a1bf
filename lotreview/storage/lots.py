"""
SQLite persistence for uploaded lots.

A lot is stored as one ``lots`` row plus one ``dies`` row per die-grid entry
and one ``bins`` row per declared bin. Writes that touch several tables run
in a single transaction so a failure never leaves a partial lot behind.
Delivery attempts are appended to ``delivery_logs`` and never updated.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from lotreview.core.config import DEFAULT_DB_PATH
from lotreview.core.errors import LotNotFoundError
from lotreview.core.models import (
    BinDefinition, BinStatistics, DefectEntry, ReferenceDevice, WaferMapDocument,
)
from lotreview.enums import DefectKind, DeliveryOutcome, LotStatus

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS lots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        filename TEXT,
        description TEXT,
        uploaded_by TEXT,
        file_size INTEGER,
        substrate_number TEXT,
        substrate_type TEXT,
        substrate_id TEXT,
        lot_id TEXT,
        product_id TEXT,
        wafer_size TEXT,
        rows_count TEXT,
        columns_count TEXT,
        total_dies INTEGER NOT NULL DEFAULT 0,
        defect_count INTEGER NOT NULL DEFAULT 0,
        reference_count INTEGER NOT NULL DEFAULT 0,
        substrate_json TEXT NOT NULL,
        header_json TEXT NOT NULL,
        reference_json TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        approved_by TEXT,
        approved_at TEXT,
        delivered INTEGER NOT NULL DEFAULT 0,
        delivered_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS dies (
        lot_pk INTEGER NOT NULL,
        x_coord INTEGER NOT NULL,
        y_coord INTEGER NOT NULL,
        bin_code TEXT NOT NULL,
        is_defect INTEGER NOT NULL DEFAULT 0,
        defect_type TEXT,
        FOREIGN KEY (lot_pk) REFERENCES lots(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS bins (
        lot_pk INTEGER NOT NULL,
        position INTEGER NOT NULL,
        bin_code TEXT,
        bin_quality TEXT,
        bin_description TEXT,
        bin_count INTEGER NOT NULL DEFAULT 0,
        FOREIGN KEY (lot_pk) REFERENCES lots(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS delivery_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        lot_pk INTEGER NOT NULL,
        filename TEXT,
        target_name TEXT NOT NULL,
        status TEXT NOT NULL,
        error_message TEXT,
        attempted_at TEXT NOT NULL,
        FOREIGN KEY (lot_pk) REFERENCES lots(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_dies_lot ON dies(lot_pk)",
    "CREATE INDEX IF NOT EXISTS idx_bins_lot ON bins(lot_pk)",
    "CREATE INDEX IF NOT EXISTS idx_delivery_logs_lot ON delivery_logs(lot_pk)",
)


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


class LotStore:
    """Lot repository backed by a SQLite file."""

    def __init__(self, db_path: Union[str, Path] = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)

    @contextmanager
    def get_connection(self):
        """Connection scoped to one transaction: commit on success, rollback on error."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self):
        """Initialize database schema."""
        with self.get_connection() as conn:
            for statement in SCHEMA:
                conn.execute(statement)

    # --- Lots ---

    def save_lot(
        self,
        document: WaferMapDocument,
        statistics: BinStatistics,
        filename: Optional[str] = None,
        description: Optional[str] = None,
        uploaded_by: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> int:
        """Persists a decoded map atomically and returns the new lot's primary key."""
        substrate = document.substrate_attributes
        header = document.header
        reference = None
        if document.reference_device is not None:
            reference = json.dumps({"x": document.reference_device.x, "y": document.reference_device.y})

        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO lots (
                    filename, description, uploaded_by, file_size,
                    substrate_number, substrate_type, substrate_id,
                    lot_id, product_id, wafer_size, rows_count, columns_count,
                    total_dies, defect_count, reference_count,
                    substrate_json, header_json, reference_json, status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    filename, description, uploaded_by, file_size,
                    substrate.get("SubstrateNumber"), substrate.get("SubstrateType"), substrate.get("SubstrateId"),
                    header.get("LotId"), header.get("ProductId"), header.get("WaferSize"),
                    header.get("Rows"), header.get("Columns"),
                    statistics.total_dies, statistics.defect_count, statistics.reference_count,
                    json.dumps(dict(substrate)), json.dumps(dict(header)), reference,
                    LotStatus.PENDING.value, _now(),
                ),
            )
            lot_pk = cursor.lastrowid

            die_rows = []
            for (x, y), code in document.die_grid.items():
                kind = DefectKind.from_code(code)
                die_rows.append((
                    lot_pk, x, y, code,
                    int(kind is DefectKind.DEFECT),
                    kind.value if kind else None,
                ))
            conn.executemany(
                "INSERT INTO dies (lot_pk, x_coord, y_coord, bin_code, is_defect, defect_type) VALUES (?, ?, ?, ?, ?, ?)",
                die_rows,
            )

            conn.executemany(
                "INSERT INTO bins (lot_pk, position, bin_code, bin_quality, bin_description, bin_count) VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (lot_pk, position, b.code, b.quality, b.description, b.count)
                    for position, b in enumerate(document.bins)
                ],
            )

        logger.info(f"Saved lot {lot_pk} ({header.get('LotId')}): {len(die_rows)} dies, {len(document.bins)} bins")
        return lot_pk

    def get_lot(self, lot_pk: int) -> Dict[str, Any]:
        """
        Returns the lot record as a dict.

        Raises:
            LotNotFoundError: If no lot has this id.
        """
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM lots WHERE id = ?", (lot_pk,)).fetchone()
        if row is None:
            raise LotNotFoundError(f"Lot {lot_pk} not found")
        return dict(row)

    def list_lots(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Returns one page of lots (newest first) and the total number of matches."""
        clauses = []
        params: List[Any] = []
        if status and status != "all":
            clauses.append("status = ?")
            params.append(status)
        if search:
            clauses.append("(lot_id LIKE ? OR product_id LIKE ? OR filename LIKE ?)")
            params.extend([f"%{search}%"] * 3)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        page = max(page, 1)
        with self.get_connection() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM lots {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM lots {where} ORDER BY id DESC LIMIT ? OFFSET ?",
                params + [limit, (page - 1) * limit],
            ).fetchall()
        return [dict(r) for r in rows], total

    def update_status(self, lot_pk: int, status: str, approved_by: Optional[str] = None):
        """
        Moves a lot to 'pending', 'approved' or 'rejected'.

        Raises:
            ValueError: Unknown status.
            LotNotFoundError: If no lot has this id.
        """
        new_status = LotStatus(status)
        approved = new_status is LotStatus.APPROVED
        with self.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE lots SET status = ?, approved_by = ?, approved_at = ? WHERE id = ?",
                (new_status.value, approved_by if approved else None, _now() if approved else None, lot_pk),
            )
            if cursor.rowcount == 0:
                raise LotNotFoundError(f"Lot {lot_pk} not found")
        logger.info(f"Lot {lot_pk} {new_status.value}")

    def delete_lot(self, lot_pk: int):
        """Removes a lot with its dies, bins and delivery logs in one transaction."""
        with self.get_connection() as conn:
            for table in ("dies", "bins", "delivery_logs"):
                conn.execute(f"DELETE FROM {table} WHERE lot_pk = ?", (lot_pk,))
            cursor = conn.execute("DELETE FROM lots WHERE id = ?", (lot_pk,))
            if cursor.rowcount == 0:
                raise LotNotFoundError(f"Lot {lot_pk} not found")
        logger.info(f"Deleted lot {lot_pk}")

    def count_records(self, lot_pk: int) -> Dict[str, int]:
        """Number of dies, bins and delivery log rows held for a lot."""
        with self.get_connection() as conn:
            return {
                table: conn.execute(f"SELECT COUNT(*) FROM {table} WHERE lot_pk = ?", (lot_pk,)).fetchone()[0]
                for table in ("dies", "bins", "delivery_logs")
            }

    def load_document(self, lot_pk: int) -> WaferMapDocument:
        """Rebuilds the WaferMapDocument of a persisted lot."""
        lot = self.get_lot(lot_pk)
        with self.get_connection() as conn:
            bin_rows = conn.execute(
                "SELECT bin_code, bin_quality, bin_description, bin_count FROM bins WHERE lot_pk = ? ORDER BY position",
                (lot_pk,),
            ).fetchall()
            die_rows = conn.execute(
                "SELECT x_coord, y_coord, bin_code FROM dies WHERE lot_pk = ? ORDER BY y_coord, x_coord",
                (lot_pk,),
            ).fetchall()

        die_grid = {}
        defects = []
        for row in die_rows:
            x, y, code = row["x_coord"], row["y_coord"], row["bin_code"]
            die_grid[(x, y)] = code
            kind = DefectKind.from_code(code)
            if kind is not None:
                defects.append(DefectEntry(x=x, y=y, code=code, kind=kind))

        reference = None
        if lot["reference_json"]:
            ref = json.loads(lot["reference_json"])
            reference = ReferenceDevice(x=ref.get("x"), y=ref.get("y"))

        return WaferMapDocument(
            substrate_attributes=json.loads(lot["substrate_json"]),
            header=json.loads(lot["header_json"]),
            reference_device=reference,
            bins=[
                BinDefinition(
                    code=r["bin_code"], quality=r["bin_quality"],
                    description=r["bin_description"], count=r["bin_count"],
                )
                for r in bin_rows
            ],
            die_grid=die_grid,
            defects=defects,
        )

    # --- Delivery ---

    def mark_delivered(self, lot_pk: int):
        with self.get_connection() as conn:
            conn.execute("UPDATE lots SET delivered = 1, delivered_at = ? WHERE id = ?", (_now(), lot_pk))

    def append_delivery_log(
        self,
        lot_pk: int,
        target_name: str,
        outcome: DeliveryOutcome,
        filename: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> int:
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO delivery_logs (lot_pk, filename, target_name, status, error_message, attempted_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (lot_pk, filename, target_name, outcome.value, error_message, _now()),
            )
            return cursor.lastrowid

    def get_delivery_history(self, lot_pk: int) -> List[Dict[str, Any]]:
        """Delivery attempts for a lot, newest first."""
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM delivery_logs WHERE lot_pk = ? ORDER BY id DESC",
                (lot_pk,),
            ).fetchall()
        return [dict(r) for r in rows]
