# stream_ranker/utils.py

import base64
import binascii
import math
import re
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qsl, quote, urlparse

_BTIH_RE = re.compile(r"btih:([^&/]+)", re.IGNORECASE)
_BASE32_HASH_RE = re.compile(r"[a-z2-7]{32}")
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_bytes(size_bytes: int | float | None) -> str:
    """Converts bytes into a human-readable string (e.g., KB, MB, GB)."""
    if not size_bytes or size_bytes <= 0:
        return "0B"
    size_name = ("B", "KB", "MB", "GB", "TB")
    i = min(int(math.floor(math.log(size_bytes, 1024))), len(size_name) - 1)
    p = math.pow(1024, i)
    s = round(size_bytes / p, 2)
    return f"{s} {size_name[i]}"


def safe_int(value: Any, default: int = 0) -> int:
    """
    Coerces indexer-supplied counts ("1,927", "12.0", 12.0, None) into an int.

    Raises ``ValueError`` for values that do not read as a number, so that a
    genuinely malformed record surfaces as a per-record fault instead of
    being silently read as zero or mangled.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"Expected a count, got boolean {value!r}")
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return default
        return int(value)
    cleaned = re.sub(r"[,\s]", "", str(value))
    try:
        return int(cleaned)
    except ValueError:
        pass
    try:
        return int(float(cleaned))
    except (ValueError, OverflowError):
        raise ValueError(f"Expected a count, got {value!r}") from None


def _hex_info_hash(value: str) -> str:
    # Magnet links may carry the 20-byte hash base32-encoded instead of hex.
    value = value.strip().lower()
    if _BASE32_HASH_RE.fullmatch(value):
        try:
            return base64.b32decode(value.upper()).hex()
        except binascii.Error:
            return value
    return value


def extract_info_hash(
    info_hash: str | None = None, magnet_uri: str | None = None
) -> str | None:
    """
    Returns the content identifier of a record as lower-case hex.

    A declared info-hash wins; otherwise the ``btih:`` segment of a magnet URI
    is used, up to the next ``&`` or ``/``. Base32 hashes are converted to hex.
    """
    if isinstance(info_hash, str) and info_hash.strip():
        return _hex_info_hash(info_hash)
    if isinstance(magnet_uri, str) and magnet_uri:
        match = _BTIH_RE.search(magnet_uri)
        if match and match.group(1).strip():
            return _hex_info_hash(match.group(1))
    return None


def parse_publish_date(value: Any) -> datetime | None:
    """
    Parses a declared publish timestamp into an aware datetime.

    Accepts datetimes, epoch seconds and ISO-8601 strings (with or without a
    trailing ``Z``). Anything else yields ``None``; naive values are read as UTC.
    """
    if value is None or value == "":
        return None
    parsed: datetime | None = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def publish_timestamp(value: datetime | None) -> float:
    """Sort value for a publish date; missing dates sort as the epoch."""
    if value is None:
        return EPOCH.timestamp()
    return value.timestamp()


def build_magnet_uri(info_hash: str, trackers: list[str] | tuple[str, ...]) -> str:
    """Builds a magnet URI for ``info_hash`` announcing to ``trackers``."""
    tracker_params = "".join(f"&tr={quote(t, safe='')}" for t in trackers if t)
    return f"magnet:?xt=urn:btih:{info_hash}{tracker_params}"


def magnet_trackers(magnet_uri: str | None) -> list[str]:
    """Returns the ``tr`` parameters already present on a magnet URI."""
    if not isinstance(magnet_uri, str) or not magnet_uri.startswith("magnet:"):
        return []
    query = urlparse(magnet_uri).query
    return [value for key, value in parse_qsl(query) if key == "tr" and value]


def enrich_magnet_uri(magnet_uri: str, trackers: list[str] | tuple[str, ...]) -> str:
    """Appends every tracker from ``trackers`` not already on ``magnet_uri``."""
    existing = set(magnet_trackers(magnet_uri))
    additions = [t for t in dict.fromkeys(trackers) if t and t not in existing]
    if not additions:
        return magnet_uri
    return magnet_uri + "".join(f"&tr={quote(t, safe='')}" for t in additions)
