# stream_ranker/config.py

from __future__ import annotations

import configparser
import logging
import os
import sys
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore[import-untyped]

# --- Constants ---
DEFAULT_MAX_RESULTS = 50
DEFAULT_INDEXER_TIMEOUT = 30
TRACKER_CACHE_TTL_SECONDS = 12 * 60 * 60
DEFAULT_TRACKERS_URL = (
    "https://raw.githubusercontent.com/ngosang/trackerslist/master/trackers_all.txt"
)
PLACEHOLDER_API_KEY = "YOUR_JACKETT_API_KEY"

DEFAULT_VIDEO_QUALITIES = (
    "remux",
    "bluray",
    "web-dl",
    "webrip",
    "bdrip",
    "hdrip",
    "hdtv",
    "dvdrip",
    "x265",
    "hevc",
    "av1",
    "x264",
    "xvid",
)
DEFAULT_AUDIO_QUALITIES = (
    "truehd",
    "atmos",
    "dts-hd",
    "dts",
    "eac3",
    "ddp",
    "ac3",
    "aac",
    "mp3",
)

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)


class RankingConfigError(ValueError):
    """Raised when a ranking configuration bundle is unusable."""


class SortKey(str, Enum):
    SCORE = "score"
    SEEDERS = "seeders"
    PUBLISH_DATE = "publishDate"


# Accept both the camelCase names used by API callers and python-style names.
_KEY_ALIASES = {
    "minSeeders": "min_seeders",
    "minSizeMB": "min_size_mb",
    "maxSizeMB": "max_size_mb",
    "preferredResolutions": "preferred_resolutions",
    "preferredLanguages": "preferred_languages",
    "preferredVideoQualities": "preferred_video_qualities",
    "preferredAudioQualities": "preferred_audio_qualities",
    "maxResultCount": "max_result_count",
    "primarySortKey": "primary_sort_key",
    "rejectCamReleases": "reject_cam_releases",
}

_TUPLE_FIELDS = {
    "preferred_resolutions",
    "preferred_languages",
    "preferred_video_qualities",
    "preferred_audio_qualities",
}


@dataclass(frozen=True)
class RankingConfig:
    """
    The per-batch configuration bundle. Instances are immutable so a batch can
    never observe a preference change halfway through.
    """

    min_seeders: int = 0
    min_size_mb: float = 0
    max_size_mb: float = 0
    preferred_resolutions: tuple[str, ...] = ()
    preferred_languages: tuple[str, ...] = ()
    preferred_video_qualities: tuple[str, ...] = DEFAULT_VIDEO_QUALITIES
    preferred_audio_qualities: tuple[str, ...] = DEFAULT_AUDIO_QUALITIES
    max_result_count: int = DEFAULT_MAX_RESULTS
    primary_sort_key: SortKey = SortKey.SEEDERS
    reject_cam_releases: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RankingConfig":
        """Builds a validated config from a plain mapping (JSON/YAML payloads)."""
        if not isinstance(data, Mapping):
            raise RankingConfigError(
                f"Ranking configuration must be a mapping, got {type(data).__name__}"
            )

        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for raw_key, value in data.items():
            key = _KEY_ALIASES.get(raw_key, raw_key)
            if key not in known:
                logger.warning(f"[CONFIG] Ignoring unknown ranking key '{raw_key}'")
                continue
            if key in _TUPLE_FIELDS:
                if value is None:
                    value = ()
                elif isinstance(value, str):
                    value = tuple(v.strip() for v in value.split(",") if v.strip())
                elif isinstance(value, (list, tuple)):
                    value = tuple(str(v).strip() for v in value if str(v).strip())
                else:
                    raise RankingConfigError(
                        f"'{raw_key}' must be a list of strings, got {value!r}"
                    )
            kwargs[key] = value

        if "primary_sort_key" in kwargs:
            try:
                kwargs["primary_sort_key"] = SortKey(kwargs["primary_sort_key"])
            except ValueError as exc:
                raise RankingConfigError(
                    f"Unknown primary sort key: {kwargs['primary_sort_key']!r}"
                ) from exc

        config = cls(**kwargs)
        config.validate()
        return config

    def validate(self) -> None:
        """Raises ``RankingConfigError`` when the bundle cannot drive a batch."""
        for name in ("min_seeders", "min_size_mb", "max_size_mb", "max_result_count"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise RankingConfigError(f"'{name}' must be a number, got {value!r}")
            if value < 0:
                raise RankingConfigError(f"'{name}' must not be negative ({value})")
        if not isinstance(self.max_result_count, int):
            raise RankingConfigError("'max_result_count' must be an integer")
        if self.max_size_mb and self.min_size_mb > self.max_size_mb:
            raise RankingConfigError(
                f"min_size_mb ({self.min_size_mb}) exceeds max_size_mb ({self.max_size_mb})"
            )
        if not isinstance(self.primary_sort_key, SortKey):
            raise RankingConfigError(
                f"Unknown primary sort key: {self.primary_sort_key!r}"
            )

    def with_overrides(self, **changes: Any) -> "RankingConfig":
        """Returns a validated copy with ``changes`` applied."""
        updated = replace(self, **changes)
        updated.validate()
        return updated


@dataclass(frozen=True)
class ServiceConfig:
    """Connection settings for the indexer and tracker collaborators."""

    indexer_url: str
    indexer_api_key: str
    indexer_timeout: float = DEFAULT_INDEXER_TIMEOUT
    trackers_url: str = DEFAULT_TRACKERS_URL
    trackers_ttl_seconds: int = TRACKER_CACHE_TTL_SECONDS


# Cache for ranking profiles to avoid repeated disk reads.
_profile_cache: dict[Path, RankingConfig] = {}

_REQUIRED_PROFILE_KEYS = {"preferred_video_qualities", "preferred_audio_qualities"}


def load_ranking_profile(profile_path: Path | str) -> RankingConfig:
    """Load and validate a YAML ranking profile.

    Profiles are cached in-memory after the first load, keyed by the resolved
    path. Subsequent calls with the same path return the cached config.
    """
    resolved_path = Path(profile_path).resolve()
    cached = _profile_cache.get(resolved_path)
    if cached is not None:
        return cached

    if not resolved_path.exists():
        raise FileNotFoundError(f"Ranking profile not found: {resolved_path}")

    try:
        with resolved_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise RankingConfigError(f"Invalid YAML in {resolved_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise RankingConfigError(f"Ranking profile {resolved_path} is not a mapping")

    present = {_KEY_ALIASES.get(key, key) for key in data}
    missing = _REQUIRED_PROFILE_KEYS - present
    if missing:
        raise RankingConfigError(
            f"Profile missing keys: {', '.join(sorted(missing))}"
        )

    config = RankingConfig.from_dict(data)
    logger.info(f"[CONFIG] Ranking profile loaded from {resolved_path}.")
    _profile_cache[resolved_path] = config
    return config


def get_configuration(
    config_path: str = "config.ini",
) -> tuple[ServiceConfig, RankingConfig]:
    """
    Reads indexer, tracker and ranking settings from ``config.ini``.

    The [ranking] section either points at a YAML profile via ``profile`` or
    carries the individual preference keys inline (comma-separated lists).
    """
    if not os.path.exists(config_path):
        logger.critical(
            f"Configuration file '{config_path}' not found. Please create it."
        )
        sys.exit(1)

    parser = configparser.ConfigParser()
    with open(config_path, encoding="utf-8") as f:
        parser.read_string(f.read())

    indexer_url = parser.get("indexer", "url", fallback="").strip()
    api_key = parser.get("indexer", "api_key", fallback="").strip()
    if not indexer_url or not api_key or api_key == PLACEHOLDER_API_KEY:
        logger.critical(f"Indexer url or api_key not set in '{config_path}'.")
        sys.exit(1)

    service_config = ServiceConfig(
        indexer_url=indexer_url.rstrip("/"),
        indexer_api_key=api_key,
        indexer_timeout=parser.getfloat(
            "indexer", "timeout", fallback=DEFAULT_INDEXER_TIMEOUT
        ),
        trackers_url=parser.get("trackers", "url", fallback=DEFAULT_TRACKERS_URL),
        trackers_ttl_seconds=int(
            parser.getfloat(
                "trackers",
                "ttl_hours",
                fallback=TRACKER_CACHE_TTL_SECONDS / 3600,
            )
            * 3600
        ),
    )

    ranking_config = _load_ranking_section(parser, config_path)
    return service_config, ranking_config


def _load_ranking_section(
    parser: configparser.ConfigParser, config_path: str
) -> RankingConfig:
    """Builds the ranking config from the [ranking] section, if present."""
    if not parser.has_section("ranking"):
        logger.info("[CONFIG] No [ranking] section found. Using default preferences.")
        return RankingConfig()

    section = dict(parser.items("ranking"))
    profile = section.pop("profile", None)
    if profile:
        profile_path = Path(os.path.expanduser(profile.strip()))
        if not profile_path.is_absolute():
            profile_path = Path(config_path).resolve().parent / profile_path
        return load_ranking_profile(profile_path)

    numeric = {
        "min_seeders": int,
        "max_result_count": int,
        "min_size_mb": float,
        "max_size_mb": float,
    }
    data: dict[str, Any] = {}
    for key, value in section.items():
        if key in numeric:
            try:
                data[key] = numeric[key](value)
            except ValueError as exc:
                raise RankingConfigError(
                    f"[ranking] {key} must be numeric, got {value!r}"
                ) from exc
        elif key == "reject_cam_releases":
            data[key] = parser.getboolean("ranking", key)
        else:
            data[key] = value
    config = RankingConfig.from_dict(data)
    logger.info("[CONFIG] Ranking configuration loaded successfully.")
    return config
