# stream_ranker/ui/streams.py

from __future__ import annotations

from typing import Any, Iterable, Sequence

from ..services.torrent_data import CandidateStream, MediaKind
from ..utils import build_magnet_uri, enrich_magnet_uri, format_bytes, magnet_trackers


def format_subtitle(candidate: CandidateStream) -> str:
    """``S: 10 / L: 2 / 1080p / english / 1.4 GB``, skipping unknown parts."""
    raw = candidate.raw
    parts = [f"S: {raw.seeders}", f"L: {raw.peers}"]
    if candidate.attributes.resolution:
        parts.append(candidate.attributes.resolution)
    if candidate.attributes.language:
        parts.append(candidate.attributes.language)
    if raw.size_bytes:
        parts.append(format_bytes(raw.size_bytes))
    return " / ".join(parts)


def stream_sources(
    candidate: CandidateStream, trackers: Sequence[str] = ()
) -> list[str]:
    """Announce sources for a stream: record trackers, extra trackers, then DHT."""
    magnet_uri = candidate.raw.magnet_uri
    if not isinstance(magnet_uri, str) or not magnet_uri.startswith("magnet:"):
        magnet_uri = build_magnet_uri(candidate.info_hash, ())
    announces = magnet_trackers(enrich_magnet_uri(magnet_uri, trackers))
    sources = [f"tracker:{t}" for t in dict.fromkeys(announces)]
    sources.append(f"dht:{candidate.info_hash}")
    return sources


def format_stream(
    candidate: CandidateStream,
    kind: MediaKind | str,
    trackers: Sequence[str] | None = None,
) -> dict[str, Any]:
    """Renders a ranked candidate as a stream object for the player."""
    if trackers is None:
        trackers = candidate.trackers
    title = candidate.title
    separator = "\r\n" if "\n" in title else "\r\n\r\n"
    return {
        "name": candidate.source,
        "type": MediaKind(kind).value,
        "infoHash": candidate.info_hash,
        "sources": stream_sources(candidate, trackers),
        "title": f"{title}{separator}{format_subtitle(candidate)}",
    }


def format_streams(
    candidates: Iterable[CandidateStream],
    kind: MediaKind | str,
    trackers: Sequence[str] | None = None,
) -> list[dict[str, Any]]:
    return [format_stream(c, kind, trackers) for c in candidates]
