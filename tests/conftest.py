import sys
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

# Ensure root path is available for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from stream_ranker.config import RankingConfig  # noqa: E402
from stream_ranker.services.torrent_data import (  # noqa: E402
    ExpectedMetadata,
    MediaKind,
    RawResult,
)

_HASH_COUNTER = iter(range(1, 1_000_000))


def _next_hash() -> str:
    return f"{next(_HASH_COUNTER):040x}"


@pytest.fixture
def make_raw() -> Callable[..., RawResult]:
    """Builds a RawResult with a unique info-hash unless one is given."""

    def _make(title: str = "The Matrix 1999 1080p", **overrides: Any) -> RawResult:
        values: dict[str, Any] = {
            "title": title,
            "info_hash": _next_hash(),
            "seeders": 10,
            "peers": 2,
            "size_bytes": 2 * 1024**3,
        }
        values.update(overrides)
        return RawResult(**values)

    return _make


@pytest.fixture
def make_record() -> Callable[..., dict[str, Any]]:
    """Builds a Jackett-style JSON record."""

    def _make(title: str = "The Matrix 1999 1080p", **overrides: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "Title": title,
            "InfoHash": _next_hash().upper(),
            "Seeders": 10,
            "Peers": 2,
            "Size": 2 * 1024**3,
            "PublishDate": "2023-05-01T12:00:00Z",
            "Tracker": "TestTracker",
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def matrix() -> ExpectedMetadata:
    return ExpectedMetadata(title="The Matrix", kind=MediaKind.MOVIE, year=1999)


@pytest.fixture
def breaking_bad() -> ExpectedMetadata:
    return ExpectedMetadata(
        title="Breaking Bad", kind=MediaKind.SERIES, season=2, episode=5
    )


@pytest.fixture
def default_config() -> RankingConfig:
    return RankingConfig()


@pytest.fixture
def dated() -> Callable[[int], datetime]:
    def _make(day: int) -> datetime:
        return datetime(2023, 1, day, tzinfo=timezone.utc)

    return _make
