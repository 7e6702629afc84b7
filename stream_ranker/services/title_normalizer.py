# stream_ranker/services/title_normalizer.py

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterator

from ..config import logger

# Release years we are willing to read out of a title. Numbers outside this
# window ("2049", "1080") are left alone as part of the title.
_YEAR = r"(?:19[0-9]{2}|20[0-3][0-9])"
_BRACKETED_YEAR_RE = re.compile(rf"[\(\[]({_YEAR})[\)\]]")
_YEAR_TOKEN_RE = re.compile(rf"^{_YEAR}$")

_NON_WORD_RE = re.compile(r"[^\w\s]|_")
_SEPARATORS_RE = re.compile(r"[\s.\-]+")

_RELEASE_TOKENS = (
    # containers / codecs
    r"x264|x265|h264|h265|hevc|avc|av1|xvid|divx|10bit|8bit|mkv|mp4|avi",
    # sources
    r"bluray|blu ray|webrip|web dl|webdl|hdrip|dvdrip|bdrip|brrip|remux|hdtv|rip",
    # audio
    r"aac|ac3|dts|dts hd|eac3|ddp|ddp5|dd5|mp3|truehd|atmos|ma",
    # languages
    r"ita|eng|dubbed|subbed|subs|multi|dual audio|german|french|spanish|hindi|tamil"
    r"|korean|japanese|chinese|kannada|malayalam|telugu",
    # resolutions / dynamic range
    r"480p|576p|720p|1080p|2160p|4k|uhd|fhd|hdr|hdr10|dv",
    # scene boilerplate
    r"repack|proper|internal|extended|uncut|unrated|director s cut|directors cut"
    r"|freeleech|limited|rerip",
    # season / episode markers
    r"s\d{2}e\d{2}|s\d{2}|e\d{2}",
)
_RELEASE_TOKENS_RE = re.compile(
    r"(?<!\S)(?:" + "|".join(_RELEASE_TOKENS) + r")(?!\S)"
)
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class NormalizedTitle:
    """
    A title reduced to the form used for substring comparison.

    Two normalized titles are equal when their comparison text is equal; the
    extracted year rides along as metadata.
    """

    text: str
    year: int | None = field(default=None, compare=False)

    def __iter__(self) -> Iterator[Any]:
        yield self.text
        yield self.year

    def __contains__(self, other: object) -> bool:
        if isinstance(other, NormalizedTitle):
            other = other.text
        return isinstance(other, str) and other in self.text


def canonicalize(title: Any) -> str:
    """Lower-cases, strips punctuation and collapses separators."""
    if not isinstance(title, str):
        return ""
    text = _NON_WORD_RE.sub(" ", title.lower())
    return _SEPARATORS_RE.sub(" ", text).strip()


def _extract_year(title: str) -> tuple[int | None, str]:
    """
    Pulls one release year out of ``title``.

    A bracketed year wins. Otherwise the last free-standing year token is used,
    unless it is the first word (as in "1917" or "2012"), where it is the title.
    Returns the year and the canonical text with the year removed.
    """
    bracketed = _BRACKETED_YEAR_RE.search(title)
    if bracketed:
        year = int(bracketed.group(1))
        remainder = title[: bracketed.start()] + " " + title[bracketed.end() :]
        return year, canonicalize(remainder)

    words = canonicalize(title).split()
    for index in range(len(words) - 1, 0, -1):
        if _YEAR_TOKEN_RE.match(words[index]):
            year = int(words[index])
            return year, " ".join(words[:index] + words[index + 1 :])
    return None, " ".join(words)


def _strip_release_tokens(text: str) -> str:
    # Removing one token can bring two halves of a multi-word tag together
    # ("web hdr dl"), so strip until nothing changes.
    while True:
        stripped = _WHITESPACE_RE.sub(" ", _RELEASE_TOKENS_RE.sub(" ", text)).strip()
        if stripped == text:
            return stripped
        text = stripped


def normalize(title: Any) -> NormalizedTitle:
    """
    Canonicalizes a free-text title for substring comparison.

    Never raises: anything that is not a string normalizes to an empty title.
    """
    try:
        if not isinstance(title, str) or not title.strip():
            return NormalizedTitle("", None)

        year, text = _extract_year(title)

        words = text.split()
        if year is not None:
            # Year-like words after the first one are release metadata once a
            # year has been chosen; the leading word stays part of the title.
            words = words[:1] + [w for w in words[1:] if not _YEAR_TOKEN_RE.match(w)]
        return NormalizedTitle(_strip_release_tokens(" ".join(words)), year)
    except Exception:  # noqa: BLE001
        logger.debug(f"[NORMALIZER] Could not normalize {title!r}", exc_info=True)
        return NormalizedTitle("", None)


def contains_marker(title: Any, marker: str) -> bool:
    """
    True when ``marker`` starts a word of the canonical title.

    The marker may be followed by more letters (``s02e05e06`` holds ``s02e05``)
    but not by another digit (``s02e051`` does not).
    """
    canonical = canonicalize(title)
    if not canonical or not marker:
        return False
    return re.search(rf"(?<!\S){re.escape(marker)}(?!\d)", canonical) is not None
