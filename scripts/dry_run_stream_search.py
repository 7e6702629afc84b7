"""
Quick dry-run script to check which streams a title would produce.

Run:
    python scripts/dry_run_stream_search.py [--config config.ini] [--year 1999]
        [--series --season 1 --episode 2] [--imdb tt0133093] "The Matrix"

This queries the indexer configured in config.ini, ranks the results in a
worker process and prints the formatted streams. Nothing is downloaded.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from stream_ranker.config import get_configuration  # noqa: E402
from stream_ranker.services.batch_processor import ExecutionMode  # noqa: E402
from stream_ranker.services.indexer_client import IndexerClient  # noqa: E402
from stream_ranker.services.search_logic import find_streams  # noqa: E402
from stream_ranker.services.torrent_data import (  # noqa: E402
    ExpectedMetadata,
    MediaKind,
)
from stream_ranker.services.trackers import TrackerListCache  # noqa: E402
from stream_ranker.ui.streams import format_streams  # noqa: E402


async def _run(args: argparse.Namespace) -> None:
    service_config, ranking_config = get_configuration(args.config)
    kind = MediaKind.SERIES if args.series else MediaKind.MOVIE
    expected = ExpectedMetadata(
        title=args.title,
        kind=kind,
        year=args.year,
        season=args.season,
        episode=args.episode,
        imdb_id=args.imdb,
        alternate_titles=tuple(args.aka or ()),
    )
    client = IndexerClient.from_config(
        service_config, limit=ranking_config.max_result_count
    )
    trackers = TrackerListCache(
        service_config.trackers_url, service_config.trackers_ttl_seconds
    )
    tracker_list = await trackers.get()

    candidates = await find_streams(
        expected,
        ranking_config,
        client=client,
        trackers=tracker_list,
        mode=ExecutionMode(args.mode),
        timeout=args.timeout,
    )
    if not candidates:
        print("No streams found.")
        return
    print(json.dumps(format_streams(candidates, kind, tracker_list), indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="Dry-run a stream search.")
    parser.add_argument("title")
    parser.add_argument("--config", default="config.ini")
    parser.add_argument("--year", type=int)
    parser.add_argument("--series", action="store_true")
    parser.add_argument("--season", type=int)
    parser.add_argument("--episode", type=int)
    parser.add_argument("--imdb")
    parser.add_argument("--aka", action="append", help="Alternate title")
    parser.add_argument(
        "--mode", choices=[m.value for m in ExecutionMode], default="process"
    )
    parser.add_argument("--timeout", type=float, default=60.0)
    asyncio.run(_run(parser.parse_args()))


if __name__ == "__main__":
    main()
