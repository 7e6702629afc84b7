# stream_ranker/services/attribute_parser.py

import re
from typing import Any, Sequence

from .torrent_data import ParsedAttributes, RawResult

_RESOLUTION_RE = re.compile(r"(?<!\d)(\d{3,4}p|4k|uhd|fhd)")
_RESOLUTION_ALIASES = {"4k": "2160p", "uhd": "2160p", "fhd": "2160p"}
RESOLUTION_RANKS = {
    "2160p": 4,
    "1080p": 3,
    "720p": 2,
    "576p": 1,
    "480p": 1,
}

_VIDEO_QUALITY_RE = re.compile(
    r"remux|bluray|bdrip|web-dl|webrip|hdrip|hdtv|dvdrip|x264|x265|hevc|xvid|av1"
)
# Channel layouts ("5.1", "7.1") count as audio tags, but not the "9.1" inside
# "1999.1080p".
_AUDIO_QUALITY_RE = re.compile(
    r"truehd|dts-hd|atmos|dts|eac3|ddp|ac3|aac|mp3|(?<![\d.])[1-9]\.[0-2](?![\d])"
)

# Order matters: the first key found in the title wins.
LANGUAGE_TABLE: dict[str, str] = {
    "eng": "english",
    "english": "english",
    "hin": "hindi",
    "hindi": "hindi",
    "tam": "tamil",
    "tamil": "tamil",
    "mal": "malayalam",
    "malayalam": "malayalam",
    "kan": "kannada",
    "kannada": "kannada",
    "tel": "telugu",
    "telugu": "telugu",
    "chn": "chinese",
    "chinese": "chinese",
    "kor": "korean",
    "korean": "korean",
    "spa": "spanish",
    "spanish": "spanish",
    "ger": "german",
    "german": "german",
    "jpn": "japanese",
    "japanese": "japanese",
    "ukr": "ukrainian",
    "ukrainian": "ukrainian",
    "ita": "italian",
    "italian": "italian",
    "fre": "french",
    "french": "french",
    "duo": "dual-audio",
    "dual-audio": "dual-audio",
    "multi": "multi-language",
}

_CAM_RE = re.compile(
    r"(?<![a-z0-9])(?:cam|camrip|hdcam|ts|hdts|telesync|tc|telecine)(?![a-z0-9])"
)


def parse_resolution(title: str) -> str | None:
    """Returns the first resolution tag in ``title``, bucketing 4k/uhd/fhd."""
    match = _RESOLUTION_RE.search(title.lower())
    if not match:
        return None
    value = match.group(1)
    return _RESOLUTION_ALIASES.get(value, value)


def _pick_preferred(matches: list[str], preferences: Sequence[str]) -> str | None:
    """First preference present among ``matches``, else the first match."""
    if not matches:
        return None
    for preferred in preferences:
        if preferred.lower() in matches:
            return preferred.lower()
    return matches[0]


def parse_video_quality(title: str, preferences: Sequence[str] = ()) -> str | None:
    return _pick_preferred(_VIDEO_QUALITY_RE.findall(title.lower()), preferences)


def parse_audio_quality(title: str, preferences: Sequence[str] = ()) -> str | None:
    return _pick_preferred(_AUDIO_QUALITY_RE.findall(title.lower()), preferences)


def parse_language(title: str) -> str | None:
    """Scans the language table in order and returns the first hit."""
    lower_title = title.lower()
    for key, language in LANGUAGE_TABLE.items():
        if key in lower_title:
            return language
    return None


def is_cam_release(title: Any) -> bool:
    return isinstance(title, str) and _CAM_RE.search(title.lower()) is not None


def extract_attributes(
    title: Any,
    video_preferences: Sequence[str] = (),
    audio_preferences: Sequence[str] = (),
) -> ParsedAttributes:
    """
    Derives resolution, video/audio quality tags and language from a title.

    When a title carries several quality tags, the one ranked highest in the
    caller's preference list wins; without a preferred hit the tag appearing
    first in the title is used.
    """
    if not isinstance(title, str):
        title = ""
    return ParsedAttributes(
        resolution=parse_resolution(title),
        video_quality=parse_video_quality(title, video_preferences),
        audio_quality=parse_audio_quality(title, audio_preferences),
        language=parse_language(title),
    )


def _declared(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def resolve_attributes(
    raw: RawResult,
    video_preferences: Sequence[str] = (),
    audio_preferences: Sequence[str] = (),
) -> ParsedAttributes:
    """
    Combines indexer-declared fields with title-derived ones.

    A non-empty declared field is used verbatim; title extraction only fills
    the gaps. This is the single place that precedence is decided.
    """
    declared = ParsedAttributes(
        resolution=_declared(raw.resolution),
        video_quality=_declared(raw.quality),
        audio_quality=_declared(raw.audio),
        language=_declared(raw.language),
    )
    if all(
        (
            declared.resolution,
            declared.video_quality,
            declared.audio_quality,
            declared.language,
        )
    ):
        return declared

    parsed = extract_attributes(raw.title, video_preferences, audio_preferences)
    return ParsedAttributes(
        resolution=declared.resolution or parsed.resolution,
        video_quality=declared.video_quality or parsed.video_quality,
        audio_quality=declared.audio_quality or parsed.audio_quality,
        language=declared.language or parsed.language,
    )


def resolution_bucket(resolution: str | None) -> str | None:
    """Maps a declared or parsed resolution onto the ladder's vocabulary."""
    if not resolution:
        return None
    lowered = resolution.strip().lower()
    if lowered in RESOLUTION_RANKS:
        return lowered
    if lowered in _RESOLUTION_ALIASES:
        return _RESOLUTION_ALIASES[lowered]
    return parse_resolution(lowered)


def resolution_rank(resolution: str | None) -> int:
    bucket = resolution_bucket(resolution)
    return RESOLUTION_RANKS.get(bucket, 0) if bucket else 0


def preference_rank(value: str | None, preferences: Sequence[str]) -> int:
    """``len(preferences) - index`` for listed values, 0 otherwise."""
    if not value:
        return 0
    lowered = [p.lower() for p in preferences]
    try:
        index = lowered.index(value.strip().lower())
    except ValueError:
        return 0
    return len(lowered) - index
