from __future__ import annotations

import threading
from typing import Any, List, Optional, Sequence

from ..domain.models import DeliveryStop
from ..domain.normalize import StopIdGenerator
from ..logging import get_logger
from .batch import BatchOrchestrator, BatchReport, ProgressObserver
from .export import export_stops
from .extraction import ExtractionClient
from .reconcile import StopCollection


LOG = get_logger("service")


class RouteScanService:
    """High-level service coordinating batch extraction and the stop collection.

    One ingest runs at a time; the batch is merged into the collection only
    after every image has been attempted.
    """

    def __init__(
        self,
        client: ExtractionClient,
        *,
        collection: Optional[StopCollection] = None,
        ids: Optional[StopIdGenerator] = None,
        unparsed_last: bool = False,
    ) -> None:
        self.client = client
        self.collection = collection if collection is not None else StopCollection(unparsed_last=unparsed_last)
        self.orchestrator = BatchOrchestrator(client, ids=ids)
        self._ingest_lock = threading.Lock()

    def ingest(
        self,
        images: Sequence[Any],
        *,
        on_progress: Optional[ProgressObserver] = None,
        cancel: Optional[threading.Event] = None,
    ) -> BatchReport:
        with self._ingest_lock:
            report = self.orchestrator.run(images, on_progress=on_progress, cancel=cancel)
            self.collection.merge(report.stops)
        LOG.info(
            "Ingest complete: %d/%d image(s) failed; collection holds %d stop(s)",
            report.failed,
            report.total,
            len(self.collection),
        )
        return report

    def stops(self) -> List[DeliveryStop]:
        return self.collection.snapshot()

    def remove(self, stop_id: str) -> bool:
        return self.collection.remove(stop_id)

    def reset(self) -> None:
        self.collection.reset()

    def export(self, out_dir: str) -> str:
        return export_stops(self.stops(), out_dir)

    def close(self) -> None:
        self.client.close()
