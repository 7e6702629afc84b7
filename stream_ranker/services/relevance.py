# stream_ranker/services/relevance.py

from __future__ import annotations

from typing import Any, Sequence

from thefuzz import fuzz

from ..config import RankingConfig, logger
from .attribute_parser import (
    is_cam_release,
    resolution_bucket,
    resolve_attributes,
)
from .title_normalizer import contains_marker, normalize
from .torrent_data import (
    ExpectedMetadata,
    LookupStrategy,
    MediaKind,
    ParsedAttributes,
    RawResult,
)


def _as_strategy(strategy: LookupStrategy | bool) -> LookupStrategy:
    if isinstance(strategy, LookupStrategy):
        return strategy
    return LookupStrategy.from_flag(bool(strategy))


def episode_marker(season: int | None, episode: int | None) -> str | None:
    """``s02e05`` style marker, or ``None`` unless both numbers are known."""
    if season is None or episode is None:
        return None
    return f"s{int(season):02d}e{int(episode):02d}"


def _embeds_identifier(raw_title: str, expected: ExpectedMetadata) -> bool:
    lowered = raw_title.lower()
    return any(ident.lower() in lowered for ident in expected.identifiers)


def validate_torrent_title(
    expected: ExpectedMetadata,
    raw_title: Any,
    strategy: LookupStrategy | bool = LookupStrategy.FREE_TEXT,
    season: int | None = None,
    episode: int | None = None,
) -> bool:
    """
    Decides whether ``raw_title`` is about the requested title.

    The normalized expected title must appear inside the normalized release
    title. Identifier-seeded lookups may instead accept a release title that
    embeds the requested identifier verbatim. Movies must not carry a
    conflicting year; series must carry the ``sNNeNN`` marker when both
    season and episode are known.
    """
    if not expected.title:
        return False
    if not isinstance(raw_title, str):
        raw_title = ""

    wanted = normalize(expected.title)
    if not wanted.text:
        return False
    torrent = normalize(raw_title)

    if wanted.text not in torrent.text:
        if _as_strategy(strategy) is not LookupStrategy.IDENTIFIER_SEEDED:
            return False
        if not _embeds_identifier(raw_title, expected):
            return False

    if expected.kind == MediaKind.SERIES:
        marker = episode_marker(
            season if season is not None else expected.season,
            episode if episode is not None else expected.episode,
        )
        if marker and not contains_marker(raw_title, marker):
            return False
    else:
        expected_year = expected.year if expected.year is not None else wanted.year
        if (
            expected_year is not None
            and torrent.year is not None
            and int(expected_year) != torrent.year
        ):
            return False
    return True


def _allowed(value: str | None, allow_list: Sequence[str]) -> bool:
    # An unknown value is never what gets a record filtered out.
    if not allow_list or not value:
        return True
    return value.strip().lower() in {item.strip().lower() for item in allow_list}


def passes_preferences(
    raw: RawResult, attributes: ParsedAttributes, config: RankingConfig
) -> bool:
    """Applies the user's allow-lists and thresholds to a record."""
    if config.preferred_resolutions:
        bucket = resolution_bucket(attributes.resolution)
        allowed = {
            resolution_bucket(r) or r.strip().lower()
            for r in config.preferred_resolutions
        }
        if bucket and bucket not in allowed:
            return False

    if not _allowed(attributes.language, config.preferred_languages):
        return False

    if (raw.seeders or 0) < config.min_seeders:
        return False

    # A size of zero means the indexer did not report one.
    if raw.size_bytes:
        size_mb = raw.size_mb
        if size_mb < config.min_size_mb:
            return False
        if config.max_size_mb and size_mb > config.max_size_mb:
            return False

    if config.reject_cam_releases and is_cam_release(raw.title):
        return False
    return True


def is_relevant(
    expected: ExpectedMetadata,
    raw: RawResult,
    strategy: LookupStrategy | bool = LookupStrategy.FREE_TEXT,
    config: RankingConfig | None = None,
    attributes: ParsedAttributes | None = None,
    season: int | None = None,
    episode: int | None = None,
) -> bool:
    """
    Full relevance decision for one record: it must carry a content
    identifier, be about the requested title and satisfy the preferences.
    """
    if not raw.content_id:
        return False
    if not validate_torrent_title(expected, raw.title, strategy, season, episode):
        return False
    config = config or RankingConfig()
    if attributes is None:
        attributes = resolve_attributes(
            raw, config.preferred_video_qualities, config.preferred_audio_qualities
        )
    return passes_preferences(raw, attributes, config)


def log_rejection_diagnostics(
    expected: ExpectedMetadata,
    rejected_titles: Sequence[Any],
    *,
    max_entries: int = 10,
) -> None:
    """
    Emits diagnostics showing how each rejected title compared to the
    expected one. Purely informational; nothing here changes acceptance.
    """
    if not rejected_titles:
        return
    wanted = normalize(expected.title).text
    lines = [
        "--- Relevance Filter Diagnostics ---",
        f"Expected title: {expected.title!r} -> {wanted!r}",
    ]
    for idx, title in enumerate(rejected_titles[:max_entries], start=1):
        normalized = normalize(title).text
        lines.append(f"Candidate {idx}:")
        lines.append(f"  raw_title: {title}")
        lines.append(f"  normalized: {normalized or '<empty>'}")
        lines.append(f"  partial_ratio: {fuzz.partial_ratio(wanted, normalized)}")
    if len(rejected_titles) > max_entries:
        lines.append(
            f"... {len(rejected_titles) - max_entries} additional candidates omitted ..."
        )
    lines.append("--------------------")
    logger.info("\n".join(lines))
