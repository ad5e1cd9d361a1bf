"""
Delivery of approved lots to the remote archive.

A delivery regenerates the map text from the persisted lot and hands it to a
transport. Every attempt that passes the approval gate leaves exactly one
entry in the lot's delivery log, successful or not.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from lotreview.core.errors import DeliveryError, EncodeError
from lotreview.enums import DeliveryOutcome, LotStatus
from lotreview.io.exporters.g85 import generate_map
from lotreview.io.naming import generate_remote_filename
from lotreview.storage.lots import LotStore
from lotreview.utils.telemetry import track_performance

logger = logging.getLogger(__name__)


class Transport(Protocol):
    target_name: str

    def upload(self, remote_name: str, payload: bytes) -> None:
        ...


@dataclass
class DeliveryResult:
    lot_pk: int
    filename: str
    target_name: str
    delivered_at: datetime


class DeliveryService:
    """Ties the lot store, the map generator and a transport together."""

    def __init__(self, store: LotStore, transport: Transport):
        self.store = store
        self.transport = transport

    @track_performance("Lot Delivery")
    def deliver(self, lot_pk: int, timestamp: Optional[datetime] = None) -> DeliveryResult:
        """
        Generates and uploads the map of an approved lot.

        Raises:
            LotNotFoundError: Unknown lot.
            DeliveryError: Lot not approved (nothing logged), generation failed
                (logged, no transfer attempted) or the upload failed (logged).
        """
        lot = self.store.get_lot(lot_pk)
        if lot["status"] != LotStatus.APPROVED.value:
            raise DeliveryError(f"Lot {lot_pk} must be approved before delivery (status: {lot['status']})")

        stamp = timestamp or datetime.now()
        filename = generate_remote_filename(lot["lot_id"] or f"LOT{lot_pk}", stamp)
        target = self.transport.target_name

        try:
            content = generate_map(self.store.load_document(lot_pk))
        except EncodeError as e:
            self._log_failure(lot_pk, target, filename, e)
            raise DeliveryError(str(e)) from e

        try:
            self.transport.upload(filename, content.encode("utf-8"))
        except Exception as e:
            self._log_failure(lot_pk, target, filename, e)
            raise DeliveryError(f"Upload of {filename} to {target} failed: {e}") from e

        self.store.append_delivery_log(lot_pk, target, DeliveryOutcome.SUCCESS, filename=filename)
        self.store.mark_delivered(lot_pk)
        logger.info(f"Delivered lot {lot_pk} as {filename} to {target}")
        return DeliveryResult(lot_pk=lot_pk, filename=filename, target_name=target, delivered_at=stamp)

    def _log_failure(self, lot_pk: int, target: str, filename: str, error: Exception):
        logger.error(f"Delivery of lot {lot_pk} to {target} failed: {error}")
        self.store.append_delivery_log(
            lot_pk, target, DeliveryOutcome.FAILED, filename=filename, error_message=str(error),
        )
