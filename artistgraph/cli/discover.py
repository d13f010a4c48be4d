"""Command-line interface for artistgraph.

Usage::

    python -m artistgraph.cli run-batch --limit 100 --source both --providers discogs,spotify
    python -m artistgraph.cli run-batch --batches 5 --json
    python -m artistgraph.cli enrich-artists --limit 25 --providers musicbrainz
    python -m artistgraph.cli discover "Carl Craig" --max-relationships 20
    python -m artistgraph.cli import-tracks tracks.jsonl --source archive
    python -m artistgraph.cli quota-status --json

Log lines go to stderr so ``--json`` output on stdout stays parseable.
Ctrl-C during ``run-batch`` stops cooperatively: items already processed
are written and the printed cursor points at the first unprocessed track.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from artistgraph.config.loader import load_config
from artistgraph.config.settings import Settings
from artistgraph.models.entities import TrackRecord, TrackSource
from artistgraph.models.pipeline import (
    ArtistBatchRequest,
    ArtistBatchSummary,
    BatchRequest,
    BatchSource,
    BatchSummary,
    DiscoverArtistRequest,
    DiscoverArtistResult,
)
from artistgraph.utils.errors import ArtistGraphError
from artistgraph.utils.logging import configure_logging

_IMPORT_CHUNK_SIZE = 500


def _provider_list(raw: str) -> list[str]:
    return [name.strip() for name in raw.split(",") if name.strip()]


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _print_samples(samples: list[Any]) -> None:
    if not samples:
        return
    print("\n  Sample relationships:")
    for sample in samples:
        print(f"    {sample.source} -[{sample.type} {sample.strength:.1f}]-> {sample.target}")


def _print_errors(errors: list[str]) -> None:
    if not errors:
        return
    print(f"\n  Errors ({len(errors)}):")
    for error in errors[:20]:
        print(f"    - {error}")
    if len(errors) > 20:
        print(f"    ... {len(errors) - 20} more")


def _print_batch_summary(summary: BatchSummary) -> None:
    print("Track batch")
    print("=" * 40)
    print(f"  Tracks processed:       {summary.tracks_processed}")
    print(f"  Artists found:          {summary.artists_found}")
    print(f"  Relationships found:    {summary.relationships_discovered}")
    print(f"  Relationships saved:    {summary.relationships_saved}")
    print(f"  Credits created:        {summary.credits_created}")
    print(f"  Labels linked:          {summary.labels_linked}")
    print(f"  Invalid names:          {summary.invalid_names}")
    print(f"  Deferred calls:         {summary.quota_deferred}")
    if summary.cancelled:
        print("  Cancelled:              yes")
    cursor = summary.next_batch
    print(f"  Next batch:             offset={cursor.offset} limit={cursor.limit} source={cursor.source.value}")
    _print_samples(summary.sample_relationships)
    _print_errors(summary.errors)


def _print_artist_summary(summary: ArtistBatchSummary) -> None:
    print("Artist batch")
    print("=" * 40)
    print(f"  Artists processed:      {summary.artists_processed}")
    print(f"  Artists enriched:       {summary.artists_enriched}")
    print(f"  Relationships found:    {summary.relationships_discovered}")
    print(f"  Relationships saved:    {summary.relationships_saved}")
    print(f"  Labels linked:          {summary.labels_linked}")
    print(f"  Next offset:            {summary.next_offset}")
    _print_samples(summary.sample_relationships)
    _print_errors(summary.errors)


def _print_discover_result(result: DiscoverArtistResult) -> None:
    print(f"{result.artist_name} ({result.artist_id})")
    print("=" * 40)
    for provider, provider_id in sorted(result.external_ids.items()):
        print(f"  {provider}: {provider_id}")
    print(f"  Relationships found:    {result.relationships_discovered}")
    print(f"  Relationships saved:    {result.relationships_saved}")
    print(f"  Labels linked:          {result.labels_linked}")
    _print_samples(result.relationships)
    _print_errors(result.errors)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _with_components(app_settings: Settings, handler: Any) -> int:
    """Build and initialise components, run *handler*, always clean up."""
    from artistgraph.main import build_components, close_components, initialize_components

    components = build_components(app_settings, load_config(settings=app_settings))
    try:
        await initialize_components(components)
        return await handler(components)
    finally:
        await close_components(components)


async def _handle_run_batch(args: argparse.Namespace, app_settings: Settings) -> int:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except NotImplementedError:
        pass

    async def _run(components: dict[str, Any]) -> int:
        orchestrator = components["orchestrator"]
        request = BatchRequest(
            limit=args.limit,
            offset=args.offset,
            source=BatchSource(args.source),
            providers=_provider_list(args.providers),
        )
        summaries: list[BatchSummary] = []
        for _ in range(args.batches):
            summary = await orchestrator.run_track_batch(request, cancel_event=cancel_event)
            summaries.append(summary)
            if summary.cancelled or summary.tracks_processed < request.limit:
                break
            request = request.model_copy(update={"offset": summary.next_batch.offset})

        if args.json:
            print(json.dumps([s.model_dump(mode="json") for s in summaries], indent=2))
        else:
            for summary in summaries:
                _print_batch_summary(summary)
                print()
        return 0

    return await _with_components(app_settings, _run)


async def _handle_enrich_artists(args: argparse.Namespace, app_settings: Settings) -> int:
    async def _run(components: dict[str, Any]) -> int:
        request = ArtistBatchRequest(
            limit=args.limit,
            offset=args.offset,
            providers=_provider_list(args.providers),
        )
        summary = await components["orchestrator"].run_artist_batch(request)
        if args.json:
            print(summary.model_dump_json(indent=2))
        else:
            _print_artist_summary(summary)
        return 0

    return await _with_components(app_settings, _run)


async def _handle_discover(args: argparse.Namespace, app_settings: Settings) -> int:
    async def _run(components: dict[str, Any]) -> int:
        request = DiscoverArtistRequest(
            artist_name=args.artist,
            providers=_provider_list(args.providers),
            max_relationships=args.max_relationships,
            include_producers=not args.no_producers,
            include_labels=not args.no_labels,
        )
        result = await components["orchestrator"].discover_artist(request)
        if args.json:
            print(result.model_dump_json(indent=2))
        else:
            _print_discover_result(result)
        return 0

    return await _with_components(app_settings, _run)


def read_track_lines(path: Path, source: TrackSource) -> tuple[list[TrackRecord], list[str]]:
    """Parse a JSON Lines file of ``{track_id, artist, title, created_at}`` rows.

    Returns the parsed records and one message per rejected line.
    """
    records: list[TrackRecord] = []
    rejected: list[str] = []
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                row = json.loads(line)
                row["track_id"] = str(row["track_id"])
                row["source"] = source
                records.append(TrackRecord.model_validate(row))
            except (json.JSONDecodeError, KeyError, TypeError, ValidationError) as exc:
                rejected.append(f"line {lineno}: {exc}")
    return records, rejected


async def _handle_import_tracks(args: argparse.Namespace, app_settings: Settings) -> int:
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1
    records, rejected = read_track_lines(path, TrackSource(args.source))

    from artistgraph.providers.storage.sqlite_track_store import SQLiteTrackStore

    store = SQLiteTrackStore(db_path=app_settings.database_path)
    await store.initialize()
    added = 0
    for start in range(0, len(records), _IMPORT_CHUNK_SIZE):
        added += await store.add_tracks(records[start : start + _IMPORT_CHUNK_SIZE])

    report = {"read": len(records), "added": added, "rejected": rejected}
    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print(f"Imported {added} of {len(records)} tracks into {args.source}")
        _print_errors(rejected)
    return 0


async def _handle_quota_status(args: argparse.Namespace, app_settings: Settings) -> int:
    async def _run(components: dict[str, Any]) -> int:
        states = components["quota_manager"].status()
        if args.json:
            print(json.dumps([s.model_dump(mode="json") for s in states], indent=2))
            return 0
        if not states:
            print("No provider requests recorded yet.")
            return 0
        print("Provider quota")
        print("=" * 40)
        for state in states:
            flag = " (exhausted)" if state.exhausted else ""
            print(
                f"  {state.provider:<12} today {state.requests_used_today}/{state.daily_ceiling}"
                f"  minute {state.requests_used_this_minute}/{state.per_minute_ceiling}{flag}"
            )
        return 0

    return await _with_components(app_settings, _run)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the artistgraph CLI."""
    parser = argparse.ArgumentParser(
        prog="artistgraph",
        description="Discover and enrich artist relationships.",
    )
    parser.add_argument("--quiet", "-q", action="store_true", help="Only log warnings and errors")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- run-batch --
    batch = subparsers.add_parser("run-batch", help="Process pages of tracks")
    batch.add_argument("--limit", type=int, default=100, help="Tracks per batch (default: 100)")
    batch.add_argument("--offset", type=int, default=0, help="Starting offset (default: 0)")
    batch.add_argument(
        "--source",
        choices=[s.value for s in BatchSource],
        default=BatchSource.BOTH.value,
        help="Track table(s) to read (default: both)",
    )
    batch.add_argument(
        "--providers",
        default="discogs,spotify",
        help="Comma-separated providers; empty string disables enrichment",
    )
    batch.add_argument(
        "--batches", type=int, default=1, help="Consecutive batches to run (default: 1)"
    )
    batch.add_argument("--json", action="store_true", help="Print summaries as JSON")

    # -- enrich-artists --
    artists = subparsers.add_parser("enrich-artists", help="Enrich stored artist profiles")
    artists.add_argument("--limit", type=int, default=25)
    artists.add_argument("--offset", type=int, default=0)
    artists.add_argument("--providers", default="discogs,spotify")
    artists.add_argument("--json", action="store_true")

    # -- discover --
    discover = subparsers.add_parser("discover", help="Discover relationships for one artist")
    discover.add_argument("artist", help="Artist name")
    discover.add_argument("--providers", default="discogs,spotify")
    discover.add_argument("--max-relationships", type=int, default=50, dest="max_relationships")
    discover.add_argument("--no-producers", action="store_true", dest="no_producers")
    discover.add_argument("--no-labels", action="store_true", dest="no_labels")
    discover.add_argument("--json", action="store_true")

    # -- import-tracks --
    importer = subparsers.add_parser("import-tracks", help="Load tracks from a JSON Lines file")
    importer.add_argument("file", help="Path to a .jsonl file")
    importer.add_argument(
        "--source",
        choices=[s.value for s in TrackSource],
        default=TrackSource.LIVE.value,
        help="Target table (default: live)",
    )
    importer.add_argument("--json", action="store_true")

    # -- quota-status --
    quota = subparsers.add_parser("quota-status", help="Show provider quota usage")
    quota.add_argument("--json", action="store_true")

    return parser


_HANDLERS = {
    "run-batch": _handle_run_batch,
    "enrich-artists": _handle_enrich_artists,
    "discover": _handle_discover,
    "import-tracks": _handle_import_tracks,
    "quota-status": _handle_quota_status,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point; exits with the handler's status code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(
        log_level="WARNING" if args.quiet else app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
        stream=sys.stderr,
    )

    try:
        exit_code = asyncio.run(_HANDLERS[args.command](args, app_settings))
    except (ArtistGraphError, ValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
