# stream_ranker/services/ranking.py

from collections.abc import Iterable
from typing import Any

from ..config import RankingConfig, SortKey, logger
from ..utils import publish_timestamp
from .torrent_data import CandidateStream

# --- Type Aliases for Readability ---
SortTuple = tuple[float, float, bool, int, int, int, int]


def deduplicate_candidates(
    candidates: Iterable[CandidateStream],
) -> list[CandidateStream]:
    """
    Keeps the first candidate for each info-hash and drops every later one,
    even if a later duplicate would have ranked higher.
    """
    seen: set[str] = set()
    unique: list[CandidateStream] = []
    for candidate in candidates:
        if not candidate.info_hash or candidate.info_hash in seen:
            continue
        seen.add(candidate.info_hash)
        unique.append(candidate)
    return unique


def _primary_value(candidate: CandidateStream, key: SortKey) -> float:
    if key is SortKey.SCORE:
        return float(candidate.score)
    if key is SortKey.PUBLISH_DATE:
        return publish_timestamp(candidate.raw.publish_date)
    return float(candidate.raw.seeders or 0)


def sort_key(candidate: CandidateStream, primary: SortKey) -> SortTuple:
    """Descending sort tuple, most significant component first."""
    return (
        _primary_value(candidate, primary),
        publish_timestamp(candidate.raw.publish_date),
        candidate.has_preferred_language,
        candidate.resolution_rank,
        candidate.video_quality_rank,
        candidate.audio_quality_rank,
        candidate.raw.seeders or 0,
    )


def sort_candidates(
    candidates: Iterable[CandidateStream], primary: SortKey = SortKey.SEEDERS
) -> list[CandidateStream]:
    """Orders candidates best-first; equal keys keep their input order."""
    # list.sort is stable even with reverse=True.
    ordered = list(candidates)
    ordered.sort(key=lambda c: sort_key(c, primary), reverse=True)
    return ordered


def rank_candidates(
    candidates: Iterable[CandidateStream], config: RankingConfig
) -> list[CandidateStream]:
    """Sorts the full candidate list, then applies the result cap."""
    ordered = sort_candidates(candidates, config.primary_sort_key)
    capped = ordered[: config.max_result_count]
    if len(capped) < len(ordered):
        logger.debug(
            f"[RANKING] Truncated {len(ordered)} candidates to {len(capped)}."
        )
    return capped


def describe_candidate(candidate: CandidateStream) -> dict[str, Any]:
    """Flat view of a candidate's ranking fields for logging."""
    return {
        "title": candidate.title,
        "info_hash": candidate.info_hash,
        "score": round(candidate.score, 2),
        "seeders": candidate.raw.seeders,
        "publish_date": candidate.raw.publish_date,
        "language": candidate.attributes.language,
        "preferred_language": candidate.has_preferred_language,
        "resolution": candidate.attributes.resolution,
        "video_quality": candidate.attributes.video_quality,
        "audio_quality": candidate.attributes.audio_quality,
    }


def log_ranked_results(label: str, candidates: list[CandidateStream]) -> None:
    """
    Emits a structured log entry enumerating each ranked candidate so
    operators can see exactly what order was produced.
    """
    lines = [f"--- {label} Ranked Results ---"]
    if not candidates:
        lines.append("No results returned.")
        lines.append("--------------------")
        logger.info("\n".join(lines))
        return

    for idx, candidate in enumerate(candidates, start=1):
        lines.append(f"Result {idx}:")
        for field, value in describe_candidate(candidate).items():
            lines.append(f"  {field}: {value}")
        lines.append("--------------------")
    logger.info("\n".join(lines))
