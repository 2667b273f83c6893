import os
import re
import sys
from datetime import datetime
from pathlib import Path

import pytest
from openpyxl import load_workbook

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from routescan.domain.models import DeliveryStop
from routescan.orchestrator.export import HEADERS, SHEET_TITLE, export_filename, export_stops


STOPS = [
    DeliveryStop(id="s-1", stop_number="1", address="Rua Augusta, 500", cep="01305-000", city="São Paulo"),
    DeliveryStop(id="s-2", stop_number="2", address="Av. Paulista, 1000", cep="01310-100", city="São Paulo"),
]


def test_export_writes_mapped_columns(tmp_path: Path) -> None:
    path = export_stops(STOPS, str(tmp_path / "out"))
    assert os.path.isfile(path)
    assert re.fullmatch(r"RouteScan_Export_\d+\.xlsx", os.path.basename(path))

    ws = load_workbook(path)[SHEET_TITLE]
    rows = [list(r) for r in ws.iter_rows(values_only=True)]
    assert rows[0] == list(HEADERS)
    assert rows[1] == ["1", "Rua Augusta, 500", "01305-000", "São Paulo"]
    assert rows[2] == ["2", "Av. Paulista, 1000", "01310-100", "São Paulo"]


def test_export_filename_uses_epoch_millis() -> None:
    when = datetime(2024, 5, 1, 12, 0, 0)
    assert export_filename(when) == f"RouteScan_Export_{int(when.timestamp() * 1000)}.xlsx"


def test_export_refuses_empty_collection(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        export_stops([], str(tmp_path))
