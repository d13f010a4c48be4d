"""Pattern-based relationship extraction from raw track strings.

Three independent rule families run over every track:

1. **featured** -- ``feat.`` / ``ft.`` / ``featuring`` in the title, bare or
   bracketed.  Main artist -> featured artist, strength 6.
2. **collaboration** -- separators in the artist field (``vs.``, ``&``,
   ``x``, ``with``, ``and`` by default).  Emits both directions, strength 7.
3. **remix** -- ``(X Remix)``, ``[X Remix]`` or ``- X Remix`` in the title.
   Main artist -> remixer, strength 5.

All matches are kept; nothing suppresses overlapping results from
different families.  A matched name equal to the main artist (exact,
case-sensitive) is dropped.  Names are returned unnormalized; resolution
happens downstream.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from artistgraph.models.entities import CandidateEdge, RelationshipType
from artistgraph.utils.text_normalizer import clean_display_name

FEATURED_STRENGTH = 6.0
COLLABORATION_STRENGTH = 7.0
REMIX_STRENGTH = 5.0

DEFAULT_COLLABORATION_SEPARATORS: tuple[str, ...] = ("vs.", "&", "x", "with", "and")

_FEAT_KEYWORD = r"(?:feat\.?|ft\.?|featuring)"

# Name run ends at a closing bracket, a new bracket group, " - ",
# another featuring keyword, or end of string.
_FEATURED_PATTERN = re.compile(
    rf"(?:(?<=[\s(\[])|^){_FEAT_KEYWORD}\s+(?P<names>.+?)"
    rf"(?=\s*[)\]]|\s+[(\[]|\s+-\s|\s+{_FEAT_KEYWORD}\s|$)",
    re.IGNORECASE,
)

_FEATURED_NAME_SPLIT = re.compile(r"\s*(?:,|&)\s*")

_REMIX_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("remix_parenthesized", re.compile(r"\(\s*(?P<name>[^()]+?)\s+remix\s*\)", re.IGNORECASE)),
    ("remix_bracketed", re.compile(r"\[\s*(?P<name>[^\[\]]+?)\s+remix\s*\]", re.IGNORECASE)),
    (
        "remix_hyphenated",
        re.compile(
            r"(?:^|\s)-\s+(?P<name>(?:(?!\s-\s)[^()\[\]])+?)\s+remix\b", re.IGNORECASE
        ),
    ),
)


def _separator_pattern(separator: str) -> re.Pattern[str]:
    """Build a whole-word split pattern for one separator token.

    A trailing dot is optional, so ``vs.`` also matches ``vs``.
    """
    token = separator.strip()
    if token.endswith("."):
        body = re.escape(token[:-1]) + r"\.?"
    else:
        body = re.escape(token)
    return re.compile(rf"^(?P<left>.+?)\s+{body}\s+(?P<right>.+)$", re.IGNORECASE)


def extract_featured_names(title: str) -> list[str]:
    """Return every featured-artist name in *title*, in order of appearance."""
    names: list[str] = []
    for match in _FEATURED_PATTERN.finditer(title or ""):
        for part in _FEATURED_NAME_SPLIT.split(match.group("names")):
            name = clean_display_name(part)
            if name:
                names.append(name)
    return names


def extract_remixers(title: str) -> list[tuple[str, str]]:
    """Return ``(rule, remixer)`` pairs found in *title*."""
    found: list[tuple[str, str]] = []
    for rule, pattern in _REMIX_PATTERNS:
        for match in pattern.finditer(title or ""):
            name = clean_display_name(match.group("name"))
            if name:
                found.append((rule, name))
    return found


def split_collaborators(
    artist_field: str,
    separators: Iterable[str] = DEFAULT_COLLABORATION_SEPARATORS,
) -> list[tuple[str, str, str]]:
    """Return ``(separator, left, right)`` for each separator that splits *artist_field*."""
    pairs: list[tuple[str, str, str]] = []
    for separator in separators:
        match = _separator_pattern(separator).match(artist_field)
        if match is None:
            continue
        left = clean_display_name(match.group("left"))
        right = clean_display_name(match.group("right"))
        if left and right and left != right:
            pairs.append((separator, left, right))
    return pairs


def extract_relationships(
    artist_field: str,
    track_title: str,
    collaboration_separators: Sequence[str] = DEFAULT_COLLABORATION_SEPARATORS,
) -> list[CandidateEdge]:
    """Parse candidate relationship edges out of one track's strings.

    Parameters
    ----------
    artist_field:
        The track's artist string, e.g. ``"Artist A & Artist B"``.
    track_title:
        The track title, e.g. ``"Track (feat. Artist C)"``.
    collaboration_separators:
        Tokens that split the artist field into collaborators.

    Returns
    -------
    list[CandidateEdge]
        Featured edges first, then collaboration pairs, then remixes.
    """
    main_artist = clean_display_name(artist_field or "")
    title = track_title or ""
    if not main_artist:
        return []

    edges: list[CandidateEdge] = []

    for name in extract_featured_names(title):
        if name == main_artist:
            continue
        edges.append(
            CandidateEdge(
                type=RelationshipType.FEATURED,
                strength=FEATURED_STRENGTH,
                source_name=main_artist,
                target_name=name,
                rule="featured",
                matched_text=title,
            )
        )

    for separator, left, right in split_collaborators(main_artist, collaboration_separators):
        rule = f"collaboration:{separator.strip()}"
        for source, target in ((left, right), (right, left)):
            edges.append(
                CandidateEdge(
                    type=RelationshipType.COLLABORATION,
                    strength=COLLABORATION_STRENGTH,
                    source_name=source,
                    target_name=target,
                    rule=rule,
                    matched_text=main_artist,
                )
            )

    for rule, remixer in extract_remixers(title):
        if remixer == main_artist:
            continue
        edges.append(
            CandidateEdge(
                type=RelationshipType.REMIX,
                strength=REMIX_STRENGTH,
                source_name=main_artist,
                target_name=remixer,
                rule=rule,
                matched_text=title,
            )
        )

    return edges


class RelationshipExtractor:
    """Holds the configured collaboration separators.

    ``extract`` is pure; the instance only carries configuration.
    """

    def __init__(self, collaboration_separators: Sequence[str] | None = None) -> None:
        separators = collaboration_separators or DEFAULT_COLLABORATION_SEPARATORS
        self._separators: tuple[str, ...] = tuple(s for s in separators if s and s.strip())

    @property
    def collaboration_separators(self) -> tuple[str, ...]:
        return self._separators

    def extract(self, artist_field: str, track_title: str) -> list[CandidateEdge]:
        return extract_relationships(artist_field, track_title, self._separators)

    def split_artist_field(self, artist_field: str) -> list[str]:
        """Return the distinct names an artist field credits as main artists.

        ``"A & B"`` yields ``["A & B", "A", "B"]``: the field as written plus
        each side of every matching separator.
        """
        main_artist = clean_display_name(artist_field or "")
        if not main_artist:
            return []
        names = [main_artist]
        for _, left, right in split_collaborators(main_artist, self._separators):
            for name in (left, right):
                if name not in names:
                    names.append(name)
        return names
