# stream_ranker/services/search_logic.py

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Sequence

from ..config import RankingConfig, logger
from .batch_processor import (
    BatchRequest,
    ExecutionMode,
    candidates_or_empty,
    run_batch,
)
from .indexer_client import IndexerClient, IndexerError
from .ranking import log_ranked_results
from .torrent_data import (
    CandidateStream,
    ExpectedMetadata,
    LookupStrategy,
    MediaKind,
    RawResult,
)
from .trackers import TrackerListCache

# Torznab categories.
MOVIE_CATEGORY = "2000"
SERIES_CATEGORY = "5000"


@dataclass(frozen=True)
class SearchAttempt:
    """One indexer query in the fallback ladder."""

    category: str
    query: str | None = None
    imdb_id: str | None = None
    tmdb_id: str | None = None
    strategy: LookupStrategy = LookupStrategy.FREE_TEXT

    @property
    def params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"cat": self.category}
        if self.query:
            params["q"] = self.query
        if self.imdb_id:
            params["imdbid"] = self.imdb_id
        if self.tmdb_id:
            params["tmdbid"] = self.tmdb_id
        return params


def category_for(kind: MediaKind | str) -> str:
    return SERIES_CATEGORY if MediaKind(kind) is MediaKind.SERIES else MOVIE_CATEGORY


def build_search_attempts(
    expected: ExpectedMetadata, kind: MediaKind | str | None = None
) -> list[SearchAttempt]:
    """
    Builds the ordered list of indexer queries for ``expected``.

    Title, title with year, each alternate title (with and without year), then
    the IMDb and TMDb identifiers. When no title is known at all, the first
    identifier is also tried as a plain text query.
    """
    category = category_for(kind or expected.kind)
    attempts: list[SearchAttempt] = []
    year = expected.year

    titles = [expected.title] if expected.title else []
    titles += [alt for alt in expected.alternate_titles if alt]
    for title in titles:
        attempts.append(SearchAttempt(category, query=title))
        if year:
            attempts.append(SearchAttempt(category, query=f"{title} {year}"))

    if expected.imdb_id:
        attempts.append(
            SearchAttempt(
                category,
                imdb_id=expected.imdb_id,
                strategy=LookupStrategy.IDENTIFIER_SEEDED,
            )
        )
    if expected.tmdb_id:
        attempts.append(
            SearchAttempt(
                category,
                tmdb_id=str(expected.tmdb_id),
                strategy=LookupStrategy.IDENTIFIER_SEEDED,
            )
        )

    if not titles and expected.identifiers:
        logger.warning(
            f"[SEARCH] No title known for {expected.identifiers[0]}. "
            "Falling back to the identifier as query."
        )
        attempts.append(
            SearchAttempt(
                category,
                query=expected.identifiers[0],
                strategy=LookupStrategy.IDENTIFIER_SEEDED,
            )
        )
    return attempts


async def gather_raw_results(
    client: IndexerClient, attempts: Sequence[SearchAttempt], limit: int
) -> tuple[list[RawResult], LookupStrategy]:
    """
    Runs ``attempts`` in order until ``limit`` records have been collected.

    A failing attempt is logged and skipped. The returned strategy is
    identifier-seeded only when every attempt that contributed records was.
    """
    collected: list[RawResult] = []
    contributing: list[LookupStrategy] = []
    for attempt in attempts:
        try:
            results = await client.search(attempt.params)
        except IndexerError as exc:
            logger.warning(
                f"[SEARCH] Failed to fetch results for query {attempt.params}: {exc}"
            )
            continue
        if not results:
            continue
        collected.extend(results)
        contributing.append(attempt.strategy)
        if len(collected) >= limit:
            logger.debug(
                f"[SEARCH] Reached {limit} results after query {attempt.params}"
            )
            break

    identifier_only = bool(contributing) and all(
        s is LookupStrategy.IDENTIFIER_SEEDED for s in contributing
    )
    return collected, LookupStrategy.from_flag(identifier_only)


async def find_streams(
    expected: ExpectedMetadata,
    config: RankingConfig | None = None,
    *,
    client: IndexerClient,
    trackers: TrackerListCache | Sequence[str] | None = None,
    season: int | None = None,
    episode: int | None = None,
    mode: ExecutionMode = ExecutionMode.PROCESS,
    timeout: float | None = None,
) -> list[CandidateStream]:
    """
    Searches the indexer for ``expected`` and returns ranked candidates.

    Any failure, including the batch exceeding ``timeout``, yields ``[]``.
    """
    config = config or RankingConfig()
    start = time.perf_counter()

    attempts = build_search_attempts(expected)
    if not attempts:
        logger.warning(f"[SEARCH] Nothing to search for: {expected}")
        return []

    raw_results, strategy = await gather_raw_results(
        client, attempts, config.max_result_count
    )
    if not raw_results:
        logger.info(f"[SEARCH] No indexer results for '{expected.title}'.")
        return []

    if isinstance(trackers, TrackerListCache):
        tracker_list = tuple(await trackers.get())
    else:
        tracker_list = tuple(trackers or ())

    request = BatchRequest(
        results=tuple(raw_results),
        expected=expected,
        config=config,
        trackers=tracker_list,
        strategy=strategy,
        season=season if season is not None else expected.season,
        episode=episode if episode is not None else expected.episode,
    )
    try:
        outcome = await asyncio.wait_for(run_batch(request, mode), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(
            f"[SEARCH] Ranking of {len(raw_results)} results for "
            f"'{expected.title}' timed out after {timeout} seconds."
        )
        return []

    candidates = candidates_or_empty(outcome)
    log_ranked_results(expected.title or "Search", candidates)
    logger.info(
        f"[SEARCH] Returning {len(candidates)} streams for '{expected.title}' "
        f"in {time.perf_counter() - start:.2f} seconds."
    )
    return candidates
