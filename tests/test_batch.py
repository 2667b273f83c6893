import os
import sys
import threading
from typing import Dict, List

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from routescan.domain.models import ImagePayload
from routescan.orchestrator.batch import BatchOrchestrator
from routescan.orchestrator.errors import EmptyServiceResponse, ServiceError
from routescan.orchestrator.extraction import ExtractionClient
from routescan.orchestrator.images import DataUrlImage
from routescan.orchestrator.service import RouteScanService


class _ScriptedClient(ExtractionClient):
    """Returns canned candidates per image name, or raises the scripted error."""

    def __init__(self, script: Dict[str, object]) -> None:
        self.script = script
        self.calls: List[str] = []

    def extract(self, image: ImagePayload):
        self.calls.append(image.name)
        result = self.script[image.name]
        if isinstance(result, Exception):
            raise result
        return result


def _image(name: str) -> ImagePayload:
    return ImagePayload(name=name, mime_type="image/png", data=b"\x89PNG fake")


def test_partial_failure_keeps_other_images_and_reports_progress():
    client = _ScriptedClient(
        {
            "one.png": [{"stopNumber": "1", "address": "Rua A", "cep": "01310100", "city": "SP"}],
            "two.png": ServiceError("The extraction service could not be reached."),
            "three.png": [{"stopNumber": "3", "address": "Rua C", "cep": "", "city": "SP"}],
        }
    )
    progress = []
    report = BatchOrchestrator(client).run(
        [_image("one.png"), _image("two.png"), _image("three.png")],
        on_progress=lambda cur, total: progress.append((cur, total)),
    )

    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert client.calls == ["one.png", "two.png", "three.png"]
    assert [s.stop_number for s in report.stops] == ["1", "3"]
    assert report.attempted == 3
    assert report.failed == 1
    assert report.succeeded == 2
    failed = report.outcomes[1]
    assert (failed.name, failed.status, failed.error_kind) == ("two.png", "failed", "ServiceError")


def test_unexpected_client_exception_is_isolated():
    client = _ScriptedClient({"a.png": RuntimeError("boom"), "b.png": [{"stopNumber": "2", "address": "X"}]})
    report = BatchOrchestrator(client).run([_image("a.png"), _image("b.png")])
    assert len(report.stops) == 1
    assert report.outcomes[0].error_kind == "RuntimeError"


def test_invalid_image_fails_before_calling_the_service():
    client = _ScriptedClient({"ok.png": [{"stopNumber": "1", "address": "Rua A"}]})
    sources = [
        DataUrlImage(name="broken.png", data_url="not-a-data-url"),
        DataUrlImage(name="ok.png", data_url=_image("ok.png").data_url()),
    ]
    report = BatchOrchestrator(client).run(sources)
    assert client.calls == ["ok.png"]
    assert report.outcomes[0].error_kind == "InvalidImageFormat"
    assert len(report.stops) == 1


def test_empty_batch_reports_zero_progress():
    progress = []
    report = BatchOrchestrator(_ScriptedClient({})).run([], on_progress=lambda c, t: progress.append((c, t)))
    assert progress == [(0, 0)]
    assert report.attempted == 0 and report.stops == []


def test_cancel_skips_remaining_images():
    cancel = threading.Event()
    client = _ScriptedClient({"a.png": [{"stopNumber": "1", "address": "A"}], "b.png": [], "c.png": []})

    seen = []

    def _observer(current: int, total: int) -> None:
        seen.append((current, total))
        if current == 1:
            cancel.set()

    report = BatchOrchestrator(client).run(
        [_image("a.png"), _image("b.png"), _image("c.png")], on_progress=_observer, cancel=cancel
    )
    assert client.calls == ["a.png"]
    assert seen == [(1, 3), (3, 3)]
    assert report.cancelled is True
    assert report.attempted == 1
    assert [o.status for o in report.outcomes] == ["ok", "skipped", "skipped"]


def test_file_paths_are_loaded_inside_the_guard(tmp_path):
    good = tmp_path / "shot.png"
    good.write_bytes(b"\x89PNG fake")
    missing = tmp_path / "missing.png"
    client = _ScriptedClient({"shot.png": [{"stopNumber": "4", "address": "Rua D"}]})
    report = BatchOrchestrator(client).run([str(missing), good])
    assert report.outcomes[0].error_kind == "InvalidImageFormat"
    assert [s.stop_number for s in report.stops] == ["4"]


def test_two_screenshots_of_the_same_stop_reconcile_to_the_first():
    client = _ScriptedClient(
        {
            "first.png": [{"stopNumber": "5", "address": "Rua A, 10", "cep": "01310100", "city": "SP"}],
            "second.png": [{"stopNumber": "5", "address": "rua a, 10", "cep": "", "city": "SP"}],
        }
    )
    service = RouteScanService(client)
    report = service.ingest([_image("first.png"), _image("second.png")])

    stops = service.stops()
    assert len(report.stops) == 2
    assert len(stops) == 1
    assert stops[0].address == "Rua A, 10"
    assert stops[0].cep == "01310-100"


def test_successive_ingests_accumulate_without_duplicates():
    client = _ScriptedClient(
        {
            "p1.png": [
                {"stopNumber": "2", "address": "Rua B", "cep": "", "city": "SP"},
                {"stopNumber": "1", "address": "Rua A", "cep": "", "city": "SP"},
            ],
            "p2.png": [
                {"stopNumber": "2", "address": "RUA B ", "cep": "", "city": "SP"},
                {"stopNumber": "3", "address": "Rua C", "cep": "", "city": "SP"},
            ],
            "empty.png": EmptyServiceResponse("The extraction service returned an empty response."),
        }
    )
    service = RouteScanService(client)
    service.ingest([_image("p1.png")])
    first_ids = [s.id for s in service.stops()]
    service.ingest([_image("p2.png"), _image("empty.png")])

    stops = service.stops()
    assert [s.stop_number for s in stops] == ["1", "2", "3"]
    assert [s.id for s in stops[:2]] == first_ids
