from __future__ import annotations

from typing import Any, List, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ...logging import get_logger
from ..export import export_filename, workbook_bytes
from ..images import DataUrlImage
from ..service import RouteScanService


LOG = get_logger("frontend")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _stops_payload(service: RouteScanService) -> dict:
    stops = service.stops()
    return {"items": [s.to_dict() for s in stops], "total": len(stops)}


def _parse_images(body: Any) -> List[DataUrlImage]:
    if not isinstance(body, dict) or not isinstance(body.get("images"), list):
        raise HTTPException(status_code=400, detail="Body must be an object with an 'images' list")
    sources: List[DataUrlImage] = []
    for idx, entry in enumerate(body["images"]):
        if not isinstance(entry, dict) or not isinstance(entry.get("data_url"), str):
            raise HTTPException(status_code=400, detail=f"images[{idx}].data_url must be a string")
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            name = f"image-{idx + 1}"
        sources.append(DataUrlImage(name=name, data_url=entry["data_url"]))
    return sources


def create_app(service: RouteScanService, *, allow_origins: Optional[List[str]] = None) -> Starlette:
    """Create a Starlette app exposing the stop collection as a JSON API."""

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "stops": len(service.collection)})

    async def list_stops(_: Request) -> JSONResponse:
        return JSONResponse(_stops_payload(service))

    async def upload_images(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
        sources = _parse_images(body)
        LOG.info("Received %d image(s) for extraction", len(sources))
        report = await run_in_threadpool(service.ingest, sources)
        return JSONResponse({"report": report.summary(), **_stops_payload(service)})

    async def remove_stop(request: Request) -> JSONResponse:
        stop_id = request.path_params["stop_id"]
        if not service.remove(stop_id):
            raise HTTPException(status_code=404, detail=f"Stop {stop_id} not found")
        return JSONResponse({"removed": stop_id, **_stops_payload(service)})

    async def reset_stops(_: Request) -> JSONResponse:
        service.reset()
        return JSONResponse(_stops_payload(service))

    async def export_xlsx(_: Request) -> Response:
        stops = service.stops()
        if not stops:
            raise HTTPException(status_code=409, detail="No stops to export")
        content = await run_in_threadpool(workbook_bytes, stops)
        filename = export_filename()
        LOG.info("Serving export %s with %d stop(s)", filename, len(stops))
        return Response(
            content,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/stops", list_stops, methods=["GET"]),
        Route("/api/stops", reset_stops, methods=["DELETE"]),
        Route("/api/stops/{stop_id}", remove_stop, methods=["DELETE"]),
        Route("/api/images", upload_images, methods=["POST"]),
        Route("/api/export", export_xlsx, methods=["GET"]),
    ]

    middleware = []
    if allow_origins:
        middleware.append(
            Middleware(CORSMiddleware, allow_origins=allow_origins, allow_methods=["*"], allow_headers=["*"])
        )
    return Starlette(routes=routes, middleware=middleware)
