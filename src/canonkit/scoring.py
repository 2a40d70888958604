"""Lexical relevance scoring.

Weighted term overlap between the query tokens and a document's title,
subtitle, tags, heading texts, path segments and body preview. Governing and
promoted documents get an additive bonus, but only once they match at all:
a document with no lexical overlap scores 0 and is excluded from ranking.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from canonkit.models.document import AuthorityBand, Intent, Origin
from canonkit.models.search import ScoredCandidate, ScoreSignals

if TYPE_CHECKING:
    from collections.abc import Iterable

    from canonkit.models.document import Document, Heading

TITLE_WEIGHT = 10
SUBTITLE_WEIGHT = 5
TAG_WEIGHT = 5
HEADING_WEIGHT = 3
PATH_WEIGHT = 2
CONTENT_WEIGHT = 1

GOVERNING_BONUS = 2.0
PROMOTED_BONUS = 3.0

MIN_TOKEN_LENGTH = 3

STOPWORDS = frozenset(
    {
        "the", "and", "for", "are", "but", "not", "you", "all", "any", "can",
        "has", "have", "had", "was", "were", "this", "that", "with", "from",
        "what", "when", "where", "which", "who", "how", "why", "does", "did",
        "into", "about", "there", "their", "them", "then", "than", "its",
        "our", "your", "should", "would", "could", "will", "been", "being",
    }
)  # fmt: skip

_PUNCT_RE = re.compile(r"[^\w\s]")


def tokenize(text: str | None) -> list[str]:
    """Lowercase, strip punctuation, split on whitespace, drop short words and stopwords."""
    if not text:
        return []
    return [
        token
        for token in _PUNCT_RE.sub(" ", text.lower()).split()
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOPWORDS
    ]


def query_tokens(query: str) -> list[str]:
    """Tokenize a query, keeping the first occurrence of each token."""
    return list(dict.fromkeys(tokenize(query)))


def _overlap(tokens: list[str], field_tokens: Iterable[str]) -> int:
    vocabulary = set(field_tokens)
    return sum(1 for token in tokens if token in vocabulary)


def score_document(doc: Document, tokens: list[str]) -> tuple[float, ScoreSignals]:
    """Score ``doc`` against query tokens. Always returns a score >= 0."""
    signals = ScoreSignals(
        title_match=_overlap(tokens, tokenize(doc.title)),
        subtitle_match=_overlap(tokens, tokenize(doc.subtitle)),
        tag_match=_overlap(tokens, (t for tag in doc.tags for t in tokenize(tag))),
        heading_match=sum(_overlap(tokens, tokenize(h.text)) for h in doc.headings),
        path_match=_overlap(tokens, tokenize(doc.path)),
        content_match=_overlap(tokens, tokenize(doc.content_preview)),
    )
    lexical = float(
        signals.title_match * TITLE_WEIGHT
        + signals.subtitle_match * SUBTITLE_WEIGHT
        + signals.tag_match * TAG_WEIGHT
        + signals.heading_match * HEADING_WEIGHT
        + signals.path_match * PATH_WEIGHT
        + signals.content_match * CONTENT_WEIGHT
    )
    signals.lexical_score = lexical
    if lexical <= 0:
        return 0.0, signals

    if doc.authority_band == AuthorityBand.GOVERNING:
        signals.authority_bonus = GOVERNING_BONUS
    if doc.intent == Intent.PROMOTED:
        signals.intent_bonus = PROMOTED_BONUS
    return lexical + signals.authority_bonus + signals.intent_bonus, signals


def _sort_key(candidate: ScoredCandidate) -> tuple[float, str, bool]:
    return (-candidate.score, candidate.document.path, candidate.document.origin != Origin.LOCAL)


def rank(
    documents: Iterable[Document], tokens: list[str], limit: int | None = None
) -> list[ScoredCandidate]:
    """Score and order documents; zero-score documents are dropped.

    Ordering is score descending, then path, then local before baseline,
    so identical inputs always produce identical output.
    """
    candidates: list[ScoredCandidate] = []
    for doc in documents:
        score, signals = score_document(doc, tokens)
        if score > 0:
            candidates.append(ScoredCandidate(document=doc, score=score, signals=signals))
    candidates.sort(key=_sort_key)
    return candidates[:limit] if limit is not None else candidates


def find_best_heading(doc: Document, tokens: list[str]) -> Heading | None:
    """Pick the heading whose text plus region excerpt best overlaps the query.

    Ties go to the earliest heading. With no overlap at all, falls back to
    the first sub-heading (level 2+), then to the first heading.
    """
    if not doc.headings:
        return None

    best: Heading | None = None
    best_score = 0
    for heading in doc.headings:
        matches = _overlap(tokens, tokenize(f"{heading.text} {heading.excerpt}"))
        if matches > best_score:
            best, best_score = heading, matches

    if best is None:
        best = next((h for h in doc.headings if h.level >= 2), doc.headings[0])
    return best
