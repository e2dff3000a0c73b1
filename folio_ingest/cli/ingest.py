# =============================================================================
# folio_ingest/cli/ingest.py - Ingestion CLI
# =============================================================================
#
# Operator entry point for the ingestion pipeline.
#
# Supported subcommands:
#
#   worker    - Run the worker pool until SIGINT/SIGTERM
#   submit    - Copy a file into the upload directory, create its document
#               record and enqueue it
#   reingest  - Queue a fresh attempt for an existing document
#   reprocess - Re-queue documents a crashed run left in processing
#   status    - Show a document record and/or a job's state
#   stats     - Show queue counters and the number of stored vectors
#
# Configuration comes from config/config.yaml overlaid with environment
# variables / .env (see folio_ingest/config/loader.py).
#
# Usage examples:
#   python -m folio_ingest.cli worker
#   python -m folio_ingest.cli submit --file ~/cv.pdf --category resume
#   python -m folio_ingest.cli status --document-id 12 --job-id 40
#   python -m folio_ingest.cli reprocess --min-age-seconds 600
#   python -m folio_ingest.cli stats
# =============================================================================

"""Command-line interface for the folio-ingest pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import Any

from folio_ingest.config.loader import load_config, settings_from_config
from folio_ingest.config.settings import Settings
from folio_ingest.main import running_runtime
from folio_ingest.utils.errors import FolioIngestError
from folio_ingest.utils.logging import configure_logging


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_worker(app_settings: Settings) -> int:
    """Run workers until a termination signal arrives."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers.
            pass

    async with running_runtime(app_settings, run_workers=True) as runtime:
        if runtime.queue.is_degraded:
            print("Error: job broker unreachable; nothing to work on.", file=sys.stderr)
            return 1
        print(
            f"Worker pool running ({app_settings.worker_concurrency} workers, "
            f"backend={app_settings.queue_backend}). Ctrl-C to stop."
        )
        await stop_event.wait()
        print("Stopping: waiting for in-flight jobs...")
    return 0


async def _handle_submit(args: argparse.Namespace, app_settings: Settings) -> int:
    """Submit one file.  The memory backend processes it before exiting."""
    in_process = app_settings.queue_backend.lower() == "memory"
    async with running_runtime(
        app_settings, run_workers=in_process, drain_waiting=in_process
    ) as runtime:
        document, job_id = await runtime.submit_file(
            args.file,
            original_name=args.name,
            category=args.category,
            tags=args.tags,
        )
        print(f"Document {document.id} ({document.original_name}) queued as job {job_id}")
    if in_process or job_id.startswith("inline_"):
        async with running_runtime(app_settings) as runtime:
            final = await runtime.get_document(document.id)
        print(f"Final status: {final.status.value}")
    return 0


async def _handle_reingest(args: argparse.Namespace, app_settings: Settings) -> int:
    in_process = app_settings.queue_backend.lower() == "memory"
    async with running_runtime(
        app_settings, run_workers=in_process, drain_waiting=in_process
    ) as runtime:
        job_id = await runtime.reingest(args.document_id)
    print(f"Document {args.document_id} re-queued as job {job_id}")
    return 0


async def _handle_reprocess(args: argparse.Namespace, app_settings: Settings) -> int:
    """Re-enqueue documents left in ``processing`` by a crashed run."""
    in_process = app_settings.queue_backend.lower() == "memory"
    async with running_runtime(
        app_settings, run_workers=in_process, drain_waiting=in_process
    ) as runtime:
        requeued = await runtime.reprocess_stuck(
            min_age_seconds=args.min_age_seconds, limit=args.limit
        )
    if not requeued:
        print("No stuck documents found.")
        return 0
    for document_id, job_id in requeued:
        print(f"Document {document_id} re-queued as job {job_id}")
    return 0


async def _handle_status(args: argparse.Namespace, app_settings: Settings) -> int:
    if args.document_id is None and args.job_id is None:
        print("Error: pass --document-id and/or --job-id", file=sys.stderr)
        return 2

    output: dict[str, Any] = {}
    async with running_runtime(app_settings) as runtime:
        if args.document_id is not None:
            document = await runtime.get_document(args.document_id)
            output["document"] = document.model_dump(
                mode="json", exclude={"content_text"}
            )
            output["document"]["stored_vectors"] = len(
                await runtime.vector_repository.get_by_document(args.document_id)
            )
        if args.job_id is not None:
            status = await runtime.get_job_status(args.job_id)
            output["job"] = status.model_dump(mode="json")

    print(json.dumps(output, indent=2))
    return 0


async def _handle_stats(app_settings: Settings) -> int:
    async with running_runtime(app_settings) as runtime:
        stats = await runtime.get_queue_stats()
        vectors = await runtime.vector_repository.count()

    print("Queue Statistics")
    print("=" * 40)
    print(f"  Status:     {stats.status}")
    if stats.note:
        print(f"  Note:       {stats.note}")
    print(f"  Waiting:    {stats.waiting}")
    print(f"  Active:     {stats.active}")
    print(f"  Delayed:    {stats.delayed}")
    print(f"  Completed:  {stats.completed}")
    print(f"  Failed:     {stats.failed}")
    print(f"  Total:      {stats.total}")
    print(f"\n  Stored vectors: {vectors}")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m folio_ingest.cli",
        description="Run and inspect the folio-ingest document pipeline.",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Path to the YAML config file (default: config/config.yaml)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        dest="json_logs",
        help="Emit JSON log lines regardless of APP_ENV",
    )
    subparsers = parser.add_subparsers(dest="command", help="Pipeline commands")

    # -- worker --
    subparsers.add_parser("worker", help="Run the worker pool until interrupted")

    # -- submit --
    submit_parser = subparsers.add_parser("submit", help="Submit a file for ingestion")
    submit_parser.add_argument("--file", required=True, help="Path to a .txt, .docx or .pdf file")
    submit_parser.add_argument("--name", default=None, help="Original file name to record")
    submit_parser.add_argument("--category", default=None, help="Portfolio category label")
    submit_parser.add_argument(
        "--tag", action="append", dest="tags", default=None, help="Tag (repeatable)"
    )

    # -- reingest --
    reingest_parser = subparsers.add_parser("reingest", help="Re-run ingestion for a document")
    reingest_parser.add_argument("--document-id", required=True, type=int, dest="document_id")

    # -- reprocess --
    reprocess_parser = subparsers.add_parser(
        "reprocess", help="Re-queue documents stuck in processing"
    )
    reprocess_parser.add_argument(
        "--min-age-seconds",
        type=float,
        default=0.0,
        dest="min_age_seconds",
        help="Skip documents whose last status change is newer than this (default: 0)",
    )
    reprocess_parser.add_argument("--limit", type=int, default=100)

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show document and/or job status")
    status_parser.add_argument("--document-id", type=int, default=None, dest="document_id")
    status_parser.add_argument("--job-id", default=None, dest="job_id")

    # -- stats --
    subparsers.add_parser("stats", help="Show queue counters")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse, load settings, dispatch, exit with its code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = settings_from_config(load_config(args.config))
    configure_logging(app_settings.log_level, json_output=args.json_logs)

    handlers = {
        "worker": lambda: _handle_worker(app_settings),
        "submit": lambda: _handle_submit(args, app_settings),
        "reingest": lambda: _handle_reingest(args, app_settings),
        "reprocess": lambda: _handle_reprocess(args, app_settings),
        "status": lambda: _handle_status(args, app_settings),
        "stats": lambda: _handle_stats(app_settings),
    }

    try:
        exit_code = asyncio.run(handlers[args.command]())
    except FolioIngestError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
