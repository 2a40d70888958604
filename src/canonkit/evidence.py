"""Quote extraction and citations.

Quotes come from the excerpt stored on each heading, so evidence can be
built from a cached index without touching the file system.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from canonkit.models.document import Document, Heading

NORMATIVE_ANCHORS = frozenset({"MUST", "SHOULD", "SHALL", "REQUIRES"})
ANCHOR_LEAD_WORDS = 2


@dataclass(frozen=True)
class Quote:
    text: str
    word_count: int
    truncated: bool


def extract_quote(heading: Heading, min_words: int = 8, max_words: int = 40) -> Quote | None:
    """Take up to ``max_words`` words from the heading's region.

    The quote starts two words before the first normative keyword when there
    is one, otherwise at the start of the region. Returns None for an empty
    region; callers enforce ``min_words`` on the result.
    """
    words = heading.excerpt.split()
    if not words:
        return None

    start = 0
    for idx, word in enumerate(words):
        if word.strip(".,;:!?()\"'").upper() in NORMATIVE_ANCHORS:
            start = max(0, idx - ANCHOR_LEAD_WORDS)
            break

    selected = words[start : start + max_words]
    if len(selected) < min_words and len(words) >= min_words:
        # Anchor sits too close to the end; fall back to the region start
        selected = words[:max_words]

    return Quote(
        text=" ".join(selected),
        word_count=len(selected),
        truncated=len(selected) < len(words),
    )


def format_citation(doc: Document, heading: Heading) -> str:
    return f"{doc.path}#{heading.text}"
