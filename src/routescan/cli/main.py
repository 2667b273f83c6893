from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Sequence

from ..config import load_export_dir, load_sort_policy
from ..logging import get_logger
from ..orchestrator import (
    MalformedResponse,
    RouteScanService,
    build_extraction_client,
    recover_json,
)
from ..paths import expand_abs

LOG = get_logger("cli-main")


def _build_service(ns: argparse.Namespace) -> RouteScanService:
    script_dir = os.getcwd()
    client = build_extraction_client(ns.backend, model=ns.model, script_dir=script_dir)
    unparsed_last = bool(ns.unparsed_last) or load_sort_policy(script_dir)
    return RouteScanService(client, unparsed_last=unparsed_last)


def _add_backend_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--backend", choices=["openai", "openrouter"], help="Extraction backend (defaults to env/.env)")
    p.add_argument("--model", help="Override the model name for the selected backend")
    p.add_argument(
        "--unparsed-last",
        action="store_true",
        help="Sort non-numeric stop labels after numeric ones instead of as 0",
    )


def _handle_scan(ns: argparse.Namespace) -> int:
    try:
        service = _build_service(ns)
    except (RuntimeError, ValueError) as exc:
        LOG.error(str(exc))
        return 2

    def _progress(current: int, total: int) -> None:
        LOG.info(f"Reading {current} of {total}")

    try:
        report = service.ingest([expand_abs(p) for p in ns.images], on_progress=_progress)
        stops = service.stops()
        out = {"report": report.summary(), "stops": [s.to_dict() for s in stops]}
        if stops and not ns.no_export:
            out_dir = expand_abs(ns.export_dir) if ns.export_dir else load_export_dir(os.getcwd())
            out["export_path"] = service.export(out_dir)
        elif not stops:
            LOG.warning("No stops extracted; nothing to export")
    finally:
        service.close()

    print(json.dumps(out, ensure_ascii=False, indent=2))
    return 0 if stops else 1


def _handle_recover(ns: argparse.Namespace) -> int:
    path = expand_abs(ns.file)
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as exc:
        LOG.error(f"Could not read {path}: {exc}")
        return 2
    try:
        payload = recover_json(text)
    except MalformedResponse as exc:
        LOG.error(str(exc))
        return 1
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def _handle_serve(ns: argparse.Namespace) -> int:
    from ..orchestrator.frontend import create_app
    import uvicorn

    try:
        service = _build_service(ns)
    except (RuntimeError, ValueError) as exc:
        LOG.error(str(exc))
        return 2

    allow_origins = ns.allow_origins
    if allow_origins and len(allow_origins) == 1 and allow_origins[0] == "*":
        allow_origins = ["*"]
    app = create_app(service, allow_origins=allow_origins)
    try:
        uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
    finally:
        service.close()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="routescan",
        description="Extract delivery stops from route screenshots and export them as a spreadsheet.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Extract stops from one or more screenshots and export them.")
    scan.add_argument("images", nargs="+", help="Screenshot files (JPG/PNG/WEBP)")
    scan.add_argument("--export-dir", help="Output directory for the spreadsheet (default: var/exports)")
    scan.add_argument("--no-export", action="store_true", help="Print the stops without writing a spreadsheet")
    _add_backend_args(scan)
    scan.set_defaults(handler=_handle_scan)

    recover = subparsers.add_parser("recover", help="Recover the JSON payload from a saved model response.")
    recover.add_argument("file", help="Text file containing the raw model response")
    recover.set_defaults(handler=_handle_recover)

    serve = subparsers.add_parser("serve", help="Run the stop collection JSON API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8001)
    serve.add_argument("--log-level", default="info")
    serve.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )
    _add_backend_args(serve)
    serve.set_defaults(handler=_handle_serve)

    args = parser.parse_args(provided)
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
