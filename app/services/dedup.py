"""
Near-duplicate aggregation for ranked search results.

Used to merge the "latest" and "top" result sets for one topic. A candidate is
dropped when it matches anything already accepted by URL path, by normalized
title, or by host plus fuzzy title similarity. Output keeps encounter order:
primary's ranking first, then secondary's.
"""

import logging
from collections.abc import Iterable
from urllib.parse import urlsplit

from app.core.config import DEDUP_SIMILARITY_THRESHOLD
from app.schemas.agent import SearchResult

logger = logging.getLogger(__name__)


def normalize_title(title: str) -> str:
    """Lowercase and drop every non-alphanumeric character."""
    return "".join(ch for ch in (title or "").lower() if ch.isalnum())


def url_path_key(url: str) -> str:
    """Lowercased URL path (query and fragment ignored); the raw lowercased string if it does not parse."""
    raw = (url or "").strip()
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw.lower()
    if not parts.scheme or not parts.netloc:
        return raw.lower()
    return (parts.path or "/").lower()


def _hostname(url: str) -> str | None:
    try:
        return urlsplit((url or "").strip()).hostname
    except ValueError:
        return None


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance with unit insert/delete/substitute costs."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1 - distance / len(longer). Identical strings score 1; an empty side scores 0."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    longer = max(len(a), len(b))
    return (longer - edit_distance(a, b)) / longer


class _Key:
    __slots__ = ("path", "title", "host")

    def __init__(self, result: SearchResult) -> None:
        self.path = url_path_key(result.url)
        self.title = normalize_title(result.title)
        self.host = _hostname(result.url)


def _is_duplicate(candidate: _Key, accepted: list[_Key], threshold: float) -> bool:
    for existing in accepted:
        if existing.path == candidate.path:
            return True
        if existing.title == candidate.title:
            return True
        if (
            candidate.host is not None
            and existing.host == candidate.host
            and similarity(existing.title, candidate.title) > threshold
        ):
            return True
    return False


def merge_results(
    primary: Iterable[SearchResult],
    secondary: Iterable[SearchResult],
    threshold: float = DEDUP_SIMILARITY_THRESHOLD,
) -> list[SearchResult]:
    """Merge two ranked lists, dropping near-duplicates of anything already kept."""
    merged: list[SearchResult] = []
    keys: list[_Key] = []
    seen = 0
    for source in (primary, secondary):
        for result in source:
            seen += 1
            key = _Key(result)
            if _is_duplicate(key, keys, threshold):
                continue
            merged.append(result)
            keys.append(key)
    logger.info("[dedup:merge_results] IN  candidates=%d OUT kept=%d", seen, len(merged))
    return merged
