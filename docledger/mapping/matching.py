"""Text matching against reference-table keys."""

import re
from functools import lru_cache

_WS = re.compile(r"\s+")

SHORT_TERM_LENGTH = 3


def normalize_text(value: str | None) -> str:
    """Casefold and collapse whitespace; Swedish letters are kept as-is."""
    if not value:
        return ""
    return _WS.sub(" ", value.casefold()).strip()


@lru_cache(maxsize=1024)
def _term_pattern(term: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)")


def contains_term(haystack: str, term: str) -> bool:
    """Check whether a normalized haystack contains a normalized term.

    Terms of up to three characters ("sj", "tre", "öl") must appear as a
    whole word; longer terms match anywhere, so Swedish compounds such as
    "hotellnatt" still match "hotell".
    """
    if not term:
        return False
    if len(term) <= SHORT_TERM_LENGTH:
        return _term_pattern(term).search(haystack) is not None
    return term in haystack
