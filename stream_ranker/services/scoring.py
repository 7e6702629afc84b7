# stream_ranker/services/scoring.py

from .title_normalizer import normalize
from .torrent_data import ExpectedMetadata, RawResult

TITLE_AND_YEAR_POINTS = 100
TITLE_ONLY_POINTS = 50
ALTERNATE_AND_YEAR_POINTS = 40
ALTERNATE_ONLY_POINTS = 20
IDENTIFIER_POINTS = 15
YEAR_MISMATCH_PENALTY = 30
MAX_SEEDER_BONUS = 5


def _contains(haystack: str, needle: str) -> bool:
    return bool(needle) and needle in haystack


def score_torrent_result(raw: RawResult, expected: ExpectedMetadata) -> float:
    """
    Scores how well an indexer record matches the requested title.

    Title containment (with or without year agreement) is the main signal;
    alternate titles and an embedded identifier add to it, a conflicting year
    takes away from it, and seeders nudge ties. The result is never negative.
    """
    torrent = normalize(raw.title)
    wanted = normalize(expected.title)
    expected_year = expected.year if expected.year is not None else wanted.year
    torrent_year = torrent.year

    years_agree = (
        expected_year is not None
        and torrent_year is not None
        and expected_year == torrent_year
    )
    years_conflict = (
        expected_year is not None
        and torrent_year is not None
        and expected_year != torrent_year
    )

    score = 0.0
    title_overlap = False

    if _contains(torrent.text, wanted.text):
        title_overlap = True
        score += TITLE_AND_YEAR_POINTS if years_agree else TITLE_ONLY_POINTS

    for alternate in expected.alternate_titles:
        if _contains(torrent.text, normalize(alternate).text):
            title_overlap = True
            score += ALTERNATE_AND_YEAR_POINTS if years_agree else ALTERNATE_ONLY_POINTS

    title_lower = raw.title.lower() if isinstance(raw.title, str) else ""
    if any(ident.lower() in title_lower for ident in expected.identifiers):
        score += IDENTIFIER_POINTS

    if years_conflict and title_overlap:
        score -= YEAR_MISMATCH_PENALTY

    seeders = max(raw.seeders or 0, 0)
    score += min(seeders / 10, MAX_SEEDER_BONUS)

    return max(score, 0.0)
