# stream_ranker/services/torrent_data.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from ..utils import build_magnet_uri, extract_info_hash, parse_publish_date, safe_int


class MediaKind(str, Enum):
    MOVIE = "movie"
    SERIES = "series"


class LookupStrategy(Enum):
    """How the indexer query that produced a batch was keyed."""

    IDENTIFIER_SEEDED = "identifier_seeded"
    FREE_TEXT = "free_text"

    @classmethod
    def from_flag(cls, identifier_seeded: bool) -> "LookupStrategy":
        return cls.IDENTIFIER_SEEDED if identifier_seeded else cls.FREE_TEXT


@dataclass(frozen=True)
class RawResult:
    """One record returned by an indexer.

    Attributes:
        title: Free-text release title.
        info_hash: Declared info-hash, if the indexer supplied one.
        magnet_uri: Magnet URI the info-hash can be derived from.
        seeders: Declared seed count.
        peers: Declared peer (leecher) count.
        size_bytes: Declared total size in bytes.
        publish_date: Declared publish timestamp, ``None`` when absent/invalid.
        tracker: Name of the tracker/indexer the record came from.
        resolution: Structured resolution supplied by the indexer.
        quality: Structured video-quality tag supplied by the indexer.
        audio: Structured audio tag (channels/codec) supplied by the indexer.
        language: Structured language supplied by the indexer.
    """

    title: Optional[str]
    info_hash: Optional[str] = None
    magnet_uri: Optional[str] = None
    seeders: int = 0
    peers: int = 0
    size_bytes: int = 0
    publish_date: Optional[datetime] = None
    tracker: Optional[str] = None
    resolution: Optional[str] = None
    quality: Optional[str] = None
    audio: Optional[str] = None
    language: Optional[str] = None

    @classmethod
    def from_indexer(cls, record: Mapping[str, Any]) -> "RawResult":
        """Maps a Torznab/Jackett JSON result onto a ``RawResult``.

        Count fields that cannot be read as numbers raise ``ValueError``.
        """
        if not isinstance(record, Mapping):
            raise TypeError(f"Indexer record must be a mapping, got {record!r}")

        def _text(*keys: str) -> Optional[str]:
            for key in keys:
                value = record.get(key)
                if value is not None and str(value).strip():
                    return str(value).strip()
            return None

        return cls(
            title=record.get("Title", record.get("title")),
            info_hash=_text("InfoHash", "info_hash"),
            magnet_uri=_text("MagnetUri", "magnet_uri"),
            seeders=safe_int(record.get("Seeders", record.get("seeders"))),
            peers=safe_int(record.get("Peers", record.get("peers"))),
            size_bytes=safe_int(record.get("Size", record.get("size_bytes"))),
            publish_date=parse_publish_date(
                record.get("PublishDate", record.get("PublishedDate"))
            ),
            tracker=_text("Tracker", "tracker"),
            resolution=_text("Resolution", "resolution"),
            quality=_text("Quality", "quality"),
            audio=_text("AudioChannels", "audio"),
            language=_text("Language", "language"),
        )

    @property
    def content_id(self) -> Optional[str]:
        return extract_info_hash(self.info_hash, self.magnet_uri)

    @property
    def size_mb(self) -> float:
        return (self.size_bytes or 0) / (1024 * 1024)


@dataclass(frozen=True)
class ExpectedMetadata:
    """The title a batch is searching for."""

    title: Optional[str]
    kind: MediaKind = MediaKind.MOVIE
    year: Optional[int] = None
    season: Optional[int] = None
    episode: Optional[int] = None
    imdb_id: Optional[str] = None
    tmdb_id: Optional[str] = None
    alternate_titles: tuple[str, ...] = ()

    @property
    def identifiers(self) -> tuple[str, ...]:
        return tuple(str(i) for i in (self.imdb_id, self.tmdb_id) if i)


@dataclass(frozen=True)
class ParsedAttributes:
    resolution: Optional[str] = None
    video_quality: Optional[str] = None
    audio_quality: Optional[str] = None
    language: Optional[str] = None


@dataclass
class CandidateStream:
    """A record that survived validation, plus the fields used to order it."""

    raw: RawResult
    info_hash: str
    attributes: ParsedAttributes
    resolution_rank: int = 0
    video_quality_rank: int = 0
    audio_quality_rank: int = 0
    score: float = 0.0
    has_preferred_language: bool = False
    trackers: tuple[str, ...] = field(default=(), repr=False)

    @property
    def title(self) -> str:
        return self.raw.title or ""

    @property
    def source(self) -> str:
        return self.raw.tracker or "Jackett"

    @property
    def magnet_uri(self) -> str:
        return build_magnet_uri(self.info_hash, self.trackers)
