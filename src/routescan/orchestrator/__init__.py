"""Extraction, batch orchestration and reconciliation for route screenshots."""

from .errors import (
    EmptyServiceResponse,
    ExtractionError,
    InvalidImageFormat,
    MalformedResponse,
    ServiceError,
)
from .recovery import recover_json
from .images import DataUrlImage, ImageFile, parse_data_url
from .extraction import (
    ExtractionClient,
    OpenAIExtractionClient,
    OpenRouterExtractionClient,
    VisionExtractionClient,
    build_extraction_client,
)
from .batch import BatchOrchestrator, BatchReport, ImageOutcome
from .reconcile import StopCollection, dedup_key, merge, sort_key
from .export import export_stops, workbook_bytes
from .service import RouteScanService

__all__ = [
    "EmptyServiceResponse",
    "ExtractionError",
    "InvalidImageFormat",
    "MalformedResponse",
    "ServiceError",
    "recover_json",
    "DataUrlImage",
    "ImageFile",
    "parse_data_url",
    "ExtractionClient",
    "OpenAIExtractionClient",
    "OpenRouterExtractionClient",
    "VisionExtractionClient",
    "build_extraction_client",
    "BatchOrchestrator",
    "BatchReport",
    "ImageOutcome",
    "StopCollection",
    "dedup_key",
    "merge",
    "sort_key",
    "export_stops",
    "workbook_bytes",
    "RouteScanService",
]
