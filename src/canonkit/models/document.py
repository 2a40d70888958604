from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class Origin(StrEnum):
    LOCAL = "local"
    BASELINE = "baseline"


class AuthorityBand(StrEnum):
    GOVERNING = "governing"
    OPERATIONAL = "operational"
    NON_GOVERNING = "non-governing"


class Intent(StrEnum):
    """Durability tier, least to most durable."""

    WORKAROUND = "workaround"
    EXPERIMENT = "experiment"
    OPERATIONAL = "operational"
    PATTERN = "pattern"
    PROMOTED = "promoted"

    @property
    def rank(self) -> int:
        return INTENT_RANK[self]


INTENT_RANK: dict[Intent, int] = {
    Intent.WORKAROUND: 1,
    Intent.EXPERIMENT: 2,
    Intent.OPERATIONAL: 3,
    Intent.PATTERN: 4,
    Intent.PROMOTED: 5,
}
MAX_INTENT_RANK = max(INTENT_RANK.values())


class EvidenceStrength(StrEnum):
    NONE = "none"
    WEAK = "weak"
    MEDIUM = "medium"
    STRONG = "strong"


class Heading(BaseModel):
    """One ATX heading and the body region it owns.

    Line numbers are 1-based within the document body (frontmatter excluded).
    ``excerpt`` is the normalised region text without the heading line.
    """

    model_config = ConfigDict(frozen=True)

    level: int
    text: str
    start_line: int
    end_line: int
    excerpt: str = ""


class Document(BaseModel):
    """One indexed markdown file."""

    model_config = ConfigDict(frozen=True)

    path: str  # Relative to the indexed root, forward slashes
    origin: Origin
    uri: str | None = None
    title: str | None = None
    subtitle: str | None = None
    tags: list[str] = []
    authority_band: AuthorityBand = AuthorityBand.NON_GOVERNING
    intent: Intent = Intent.OPERATIONAL
    evidence_strength: EvidenceStrength = EvidenceStrength.NONE
    supersedes: list[str] = []
    content_hash: str  # 8 hex chars of SHA-256 over whitespace-normalised body
    headings: list[Heading] = []
    content_preview: str = ""
    content_length: int = 0


class IndexStats(BaseModel):
    total: int = 0
    local: int = 0
    baseline: int = 0
    canon: int = 0  # Remote override documents merged ahead of the baseline
    excluded_by_noindex: int = 0
    by_authority: dict[str, int] = {}


class LoadWarning(BaseModel):
    """A file that could not be indexed."""

    path: str
    reason: str


class Index(BaseModel):
    """Immutable snapshot of every indexed document."""

    model_config = ConfigDict(frozen=True)

    version: str
    generated_at: datetime
    documents: list[Document]
    stats: IndexStats
    baseline_commit_sha: str | None = None
    canon_commit_sha: str | None = None
    # Set whenever a baseline was merged, even one with no governed documents
    baseline_loaded: bool = False
    warnings: list[LoadWarning] = []

    @property
    def has_baseline_documents(self) -> bool:
        return any(doc.origin == Origin.BASELINE for doc in self.documents)


class IndexBuildResult(BaseModel):
    index: Index
    warnings: list[LoadWarning] = []
