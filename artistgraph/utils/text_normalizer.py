"""Artist name normalization.

Two concerns live here:

1. **Canonical slugs** -- ``normalize_name`` turns a display name into the
   slug that uniquely identifies an artist profile.  Resolution is exact
   string equality on this slug; no fuzzy matching is involved.

2. **Provider search ranking** -- ``clean_search_query`` and
   ``match_confidence`` prepare a name for a provider search and score the
   provider's candidates with rapidfuzz, so the best hit can be chosen.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from rapidfuzz import fuzz

from artistgraph.utils.errors import InvalidNameError

MIN_NAME_LENGTH = 2

_WHITESPACE_RUN = re.compile(r"\s+")
_NON_SLUG_CHARS = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUN = re.compile(r"-{2,}")
_QUOTE_CHARS = re.compile(r"[\"'‘’“”`]")


@dataclass(frozen=True)
class NormalizedName:
    """A slug plus a hyphen-free key for loose equality checks."""

    slug: str
    comparison_key: str


def normalize_name(name: str | None) -> NormalizedName:
    """Normalize *name* into a canonical slug.

    Lower-cases, trims, replaces whitespace runs with a single hyphen,
    strips characters outside ``[a-z0-9-]``, collapses repeated hyphens and
    strips leading/trailing hyphens.

    Raises
    ------
    InvalidNameError
        If *name* is empty, shorter than two characters, or yields a slug
        shorter than two characters.
    """
    if name is None:
        raise InvalidNameError(message="Artist name is missing")

    stripped = name.strip()
    if len(stripped) < MIN_NAME_LENGTH:
        raise InvalidNameError(message=f"Artist name too short: {name!r}")

    slug = _WHITESPACE_RUN.sub("-", stripped.lower())
    slug = _NON_SLUG_CHARS.sub("", slug)
    slug = _HYPHEN_RUN.sub("-", slug).strip("-")

    if len(slug) < MIN_NAME_LENGTH:
        raise InvalidNameError(message=f"Artist name has no usable characters: {name!r}")

    return NormalizedName(slug=slug, comparison_key=slug.replace("-", ""))


def clean_display_name(name: str) -> str:
    """Trim *name* and collapse internal whitespace, preserving case."""
    return _WHITESPACE_RUN.sub(" ", name).strip()


def clean_search_query(name: str) -> str:
    """Strip quote characters and excess whitespace before a provider search."""
    return clean_display_name(_QUOTE_CHARS.sub("", name))


def match_confidence(query: str, candidate: str) -> float:
    """Score how well a provider's *candidate* name matches *query* (0.0-1.0).

    Uses ``token_sort_ratio`` so word-order differences ("Cox Carl" vs
    "Carl Cox") still score highly.
    """
    left = clean_search_query(query).lower()
    right = clean_search_query(candidate).lower()
    if not left or not right:
        return 0.0
    return fuzz.token_sort_ratio(left, right) / 100.0
