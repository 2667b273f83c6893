"""Spreadsheet export of the canonical stop list."""

from __future__ import annotations

import io
import os
from datetime import datetime
from typing import List, Optional, Sequence

from openpyxl import Workbook

from ..domain.models import DeliveryStop
from ..logging import get_logger

LOG = get_logger("export")

SHEET_TITLE = "Lista de Entregas"
HEADERS = ("ORDEM", "ENDEREÇO", "CEP", "CIDADE")


def stops_to_rows(stops: Sequence[DeliveryStop]) -> List[List[str]]:
    return [[s.stop_number, s.address, s.cep, s.city] for s in stops]


def build_workbook(stops: Sequence[DeliveryStop]) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(list(HEADERS))
    for row in stops_to_rows(stops):
        ws.append(row)
    return wb


def workbook_bytes(stops: Sequence[DeliveryStop]) -> bytes:
    buffer = io.BytesIO()
    build_workbook(stops).save(buffer)
    return buffer.getvalue()


def export_filename(now: Optional[datetime] = None) -> str:
    """Return ``RouteScan_Export_<epoch-ms>.xlsx``."""
    ts = int((now or datetime.now()).timestamp() * 1000)
    return f"RouteScan_Export_{ts}.xlsx"


def export_stops(stops: Sequence[DeliveryStop], out_dir: str, *, now: Optional[datetime] = None) -> str:
    """Write the stops to a timestamped .xlsx in out_dir and return its path."""
    if not stops:
        raise ValueError("No stops to export")
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, export_filename(now))
    build_workbook(stops).save(path)
    LOG.info(f"Exported {len(stops)} stop(s) to {path}")
    return path
