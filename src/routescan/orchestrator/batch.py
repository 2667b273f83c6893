"""Sequential batch driver: one extraction call per image, failures isolated."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..domain.models import DeliveryStop
from ..domain.normalize import StopIdGenerator, normalize_stops
from ..logging import get_logger
from .errors import ExtractionError
from .extraction import ExtractionClient
from .images import as_image_source, source_name

LOG = get_logger("batch")

ProgressObserver = Callable[[int, int], None]

STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass
class ImageOutcome:
    index: int
    name: str
    status: str
    stop_count: int = 0
    error_kind: Optional[str] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "status": self.status,
            "stop_count": self.stop_count,
            "error_kind": self.error_kind,
            "error": self.error,
        }


@dataclass
class BatchReport:
    total: int
    stops: List[DeliveryStop] = field(default_factory=list)
    outcomes: List[ImageOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def attempted(self) -> int:
        return sum(1 for o in self.outcomes if o.status != STATUS_SKIPPED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == STATUS_FAILED)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == STATUS_OK)

    def summary(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "stop_count": len(self.stops),
            "images": [o.as_dict() for o in self.outcomes],
        }


class BatchOrchestrator:
    """Drive the extraction client over images strictly one at a time.

    Progress is reported as ``(current, total)`` with a 1-based index right
    before each image is handled, so observers see true completion order.
    """

    def __init__(self, client: ExtractionClient, *, ids: Optional[StopIdGenerator] = None) -> None:
        self.client = client
        self.ids = ids or StopIdGenerator()

    def _process_one(self, source: Any) -> List[DeliveryStop]:
        payload = as_image_source(source).load()
        raw = self.client.extract(payload)
        return normalize_stops(raw, ids=self.ids)

    def run(
        self,
        images: Sequence[Any],
        *,
        on_progress: Optional[ProgressObserver] = None,
        cancel: Optional[threading.Event] = None,
    ) -> BatchReport:
        total = len(images)
        report = BatchReport(total=total)
        LOG.info(f"Starting batch of {total} image(s)")
        if total == 0 and on_progress is not None:
            on_progress(0, 0)

        t0 = time.perf_counter()
        for i, source in enumerate(images):
            name = source_name(source)
            if cancel is not None and cancel.is_set():
                LOG.warning(f"Batch cancelled before image {i + 1}/{total}; skipping the rest")
                report.cancelled = True
                report.outcomes.extend(
                    ImageOutcome(index=j, name=source_name(s), status=STATUS_SKIPPED)
                    for j, s in enumerate(images[i:], start=i)
                )
                # Skipped images still count as handled.
                if on_progress is not None:
                    on_progress(total, total)
                break

            if on_progress is not None:
                on_progress(i + 1, total)
            try:
                stops = self._process_one(source)
            except ExtractionError as exc:
                LOG.error(f"Image {i + 1}/{total} ({name}) failed: {exc.kind}: {exc}")
                report.outcomes.append(
                    ImageOutcome(index=i, name=name, status=STATUS_FAILED, error_kind=exc.kind, error=exc.message)
                )
                continue
            except Exception as exc:
                LOG.exception(f"Image {i + 1}/{total} ({name}) failed unexpectedly: {exc}")
                report.outcomes.append(
                    ImageOutcome(index=i, name=name, status=STATUS_FAILED, error_kind=type(exc).__name__, error=str(exc))
                )
                continue

            report.stops.extend(stops)
            report.outcomes.append(ImageOutcome(index=i, name=name, status=STATUS_OK, stop_count=len(stops)))
            LOG.debug(f"Image {i + 1}/{total} ({name}) contributed {len(stops)} stop(s)")

        LOG.info(
            "Batch finished in %.2fs: attempted=%d failed=%d stops=%d",
            time.perf_counter() - t0,
            report.attempted,
            report.failed,
            len(report.stops),
        )
        return report
