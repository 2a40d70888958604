from __future__ import annotations

from canonkit.models.cache import BlobCacheEntry, ChangeCheckResult, RepoRef
from canonkit.models.document import (
    AuthorityBand,
    Document,
    EvidenceStrength,
    Heading,
    Index,
    IndexBuildResult,
    IndexStats,
    Intent,
    LoadWarning,
    Origin,
)
from canonkit.models.search import (
    Arbitration,
    ArbitrationOutcome,
    ConfidenceFactors,
    Contradiction,
    Evidence,
    PrecedenceViolation,
    ResolveResult,
    ScoredCandidate,
    ScoreSignals,
    SearchResult,
    SearchStatus,
)

__all__ = [
    # document
    "Origin",
    "AuthorityBand",
    "Intent",
    "EvidenceStrength",
    "Heading",
    "Document",
    "IndexStats",
    "Index",
    "LoadWarning",
    "IndexBuildResult",
    # search
    "SearchStatus",
    "ArbitrationOutcome",
    "ScoreSignals",
    "ScoredCandidate",
    "ResolveResult",
    "PrecedenceViolation",
    "Evidence",
    "ConfidenceFactors",
    "Contradiction",
    "Arbitration",
    "SearchResult",
    # cache
    "BlobCacheEntry",
    "RepoRef",
    "ChangeCheckResult",
]
