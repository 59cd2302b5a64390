"""Standalone CLI for ingesting documents and querying the knowledge base.

Usage::

    python -m bankdocs.cli ingest --source local --source jira

    python -m bankdocs.cli ask "What is the wire transfer approval threshold?" \\
        --department Treasury --kind Policy

    python -m bankdocs.cli sources

    python -m bankdocs.cli stats

Components are built with :func:`bankdocs.main.build_components`, so the CLI
and the API share one object graph.  With the in-memory store a fresh
process starts empty; ``ask --ingest`` runs an ingestion first.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

from bankdocs.config.settings import Settings
from bankdocs.models.ingestion import IngestionRun, RunStatus
from bankdocs.utils.errors import BankDocsError

# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _print_run(run: IngestionRun) -> None:
    print(f"Run {run.id}: {run.status.value}")
    print(f"  Documents processed: {run.total_processed}")
    print(f"  Documents failed:    {run.total_failed}")
    for name, detail in run.per_source_detail.items():
        print(
            f"    {name:<12} {detail.status.value:<20} "
            f"processed={detail.processed} failed={detail.failed} passages={detail.passages}"
        )
        for error in detail.errors:
            print(f"      ! {error}")
    for error in run.errors:
        print(f"  ! {error}")


def _build_filters(args: argparse.Namespace) -> dict[str, Any] | None:
    filters: dict[str, Any] = {}
    if getattr(args, "department", None):
        filters["department"] = args.department
    if getattr(args, "kind", None):
        filters["document_kind"] = args.kind
    return filters or None


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_ingest(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Run one ingestion to completion and print its outcome."""
    service = components["ingestion_service"]
    sources = args.source or None
    print(f"Ingesting sources: {', '.join(sources or service.source_names) or '(none)'}")

    run = await service.trigger_ingestion(source_filter=sources, wait=True)
    _print_run(run)
    return 0 if run.status in (RunStatus.COMPLETED, RunStatus.PARTIALLY_COMPLETED) else 1


async def _handle_ask(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Answer a question, optionally ingesting first."""
    if args.ingest:
        run = await components["ingestion_service"].trigger_ingestion(wait=True)
        print(f"Ingestion {run.status.value}: {run.total_processed} documents")
        print()

    answer = await components["answer_service"].ask(
        args.query,
        filters=_build_filters(args),
        max_results=args.max_results,
        min_score=args.min_score,
    )

    print(answer.answer_text)
    if answer.sources:
        print()
        print("Retrieved passages:")
        for source in answer.sources:
            print(f"  {source.score:.3f}  {source.title}  ({source.passage_id})")
    print(f"\n({answer.latency_ms:.0f} ms)")
    return 0


async def _handle_sources(components: dict[str, Any]) -> int:
    """Print each configured loader and whether it is reachable."""
    loaders = components["ingestion_service"].loaders
    if not loaders:
        print("No sources configured.")
        return 1

    print("Configured sources")
    print("=" * 40)
    for loader in loaders:
        available = await loader.is_available()
        print(f"  {loader.name:<12} {'available' if available else 'unavailable'}")
    return 0


async def _handle_stats(components: dict[str, Any]) -> int:
    """Display passage store statistics."""
    store = components["passage_store"]
    if not store.is_available():
        print("Passage store not available.")
        return 1

    stats = await store.get_stats()
    print("Passage Store Statistics")
    print("=" * 40)
    print(f"  Backend:          {store.get_provider_name()}")
    print(f"  Total passages:   {stats.total_passages}")
    print(f"  Total sources:    {stats.total_sources}")
    if stats.passages_by_kind:
        print("\n  Passages by kind:")
        for kind, count in sorted(stats.passages_by_kind.items()):
            print(f"    {kind:<15} {count}")
    return 0


async def run_command(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Dispatch *args* to its handler and close shared resources afterwards."""
    try:
        if args.command == "ingest":
            return await _handle_ingest(args, components)
        if args.command == "ask":
            return await _handle_ask(args, components)
        if args.command == "sources":
            return await _handle_sources(components)
        if args.command == "stats":
            return await _handle_stats(components)
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2
    except BankDocsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2
    finally:
        http_client = components.get("http_client")
        if http_client is not None:
            await http_client.aclose()


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the bankdocs CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m bankdocs.cli",
        description="Ingest banking reference documents and ask questions about them.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- ingest --
    ingest_parser = subparsers.add_parser("ingest", help="Run one ingestion")
    ingest_parser.add_argument(
        "--source",
        action="append",
        metavar="NAME",
        help="Restrict to this source (repeatable; default: all configured)",
    )

    # -- ask --
    ask_parser = subparsers.add_parser("ask", help="Ask a question")
    ask_parser.add_argument("query", help="Natural-language question")
    ask_parser.add_argument("--department", help="Only search this department")
    ask_parser.add_argument(
        "--kind",
        choices=["Policy", "Procedure", "ReferenceData", "General"],
        help="Only search this document kind",
    )
    ask_parser.add_argument("--max-results", type=int, dest="max_results", default=None)
    ask_parser.add_argument("--min-score", type=float, dest="min_score", default=None)
    ask_parser.add_argument(
        "--ingest",
        action="store_true",
        help="Run an ingestion before answering (useful with the memory store)",
    )

    # -- sources --
    subparsers.add_parser("sources", help="Show configured sources and their availability")

    # -- stats --
    subparsers.add_parser("stats", help="Show passage store statistics")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse arguments, build components, run the handler."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    # Deferred: importing main builds the FastAPI app.
    from bankdocs.main import build_components

    app_settings = Settings()
    components = build_components(app_settings)
    sys.exit(asyncio.run(run_command(args, components)))
