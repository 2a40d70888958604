from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from canonkit.models.document import Document, EvidenceStrength, Intent, Origin


class SearchStatus(StrEnum):
    SUPPORTED = "SUPPORTED"
    INSUFFICIENT_EVIDENCE = "INSUFFICIENT_EVIDENCE"


class ArbitrationOutcome(StrEnum):
    PREFER = "prefer"
    DEFER = "defer"
    ESCALATE = "escalate"
    PROPOSE_PROMOTION = "propose_promotion"


class ScoreSignals(BaseModel):
    """Per-field match counts and bonuses that produced a score."""

    title_match: int = 0
    subtitle_match: int = 0
    tag_match: int = 0
    heading_match: int = 0
    path_match: int = 0
    content_match: int = 0
    lexical_score: float = 0.0
    authority_bonus: float = 0.0
    intent_bonus: float = 0.0


@dataclass
class ScoredCandidate:
    """A document scored against one query. Never persisted."""

    document: Document
    score: float
    signals: ScoreSignals


@dataclass
class ResolveResult:
    filtered: list[Document]
    # superseded uri → path of the document that superseded it
    suppressed: dict[str, str] = field(default_factory=dict)


class PrecedenceViolation(BaseModel):
    low_path: str
    low_intent: Intent
    high_path: str
    high_intent: Intent
    low_rank: int
    high_rank: int


@dataclass
class PrecedenceResult:
    reordered: list[ScoredCandidate]
    violations: list[PrecedenceViolation]
    vetoed: list[str]  # Paths of demoted candidates


class Evidence(BaseModel):
    """A bounded quotation that backs an answer."""

    quote: str
    citation: str
    origin: Origin
    intent: Intent
    evidence_strength: EvidenceStrength
    word_count: int
    truncated: bool


class ConfidenceFactors(BaseModel):
    margin: float = 0.0
    coverage: float = 0.0
    evidence_quality: float = 0.0
    intent_quality: float = 0.0
    conflict_penalty: float = 0.0


class Contradiction(BaseModel):
    type: str
    subtype: str
    message: str
    low_path: str | None = None
    low_intent: Intent | None = None
    high_path: str | None = None
    high_intent: Intent | None = None
    vetoed: bool | None = None


class IndexWarning(BaseModel):
    """Index hygiene finding. Informational, never blocks a result."""

    type: str
    message: str
    severity: str = "low"
    count: int = 0
    details: dict[str, Any] = {}


class CandidateSummary(BaseModel):
    path: str
    origin: Origin
    score: float
    intent: Intent
    evidence_strength: EvidenceStrength
    authority_band: str
    signals: ScoreSignals


class ReadNext(BaseModel):
    citation: str
    reason: str


class DedupSummary(BaseModel):
    collapsed_groups: int = 0
    duplicate_count: int = 0
    groups: list[dict[str, Any]] = []


class Arbitration(BaseModel):
    outcome: ArbitrationOutcome
    candidates_considered: list[CandidateSummary] = []
    contradictions: list[Contradiction] = []
    warnings: list[IndexWarning] = []
    violations: list[PrecedenceViolation] = []
    vetoed: list[str] = []
    dedup: DedupSummary = DedupSummary()


class SearchDebug(BaseModel):
    query: str
    query_tokens: list[str]
    baseline_available: bool
    baseline_error: str | None = None
    baseline_commit: str | None = None
    index_rebuild_reason: str | None = None
    docs_considered: int = 0
    evidence_accepted_count: int = 0
    evidence_rejected_count: int = 0
    evidence_rejected_reasons: dict[str, int] = {}
    policy_intent: str = "none"
    suppressed: dict[str, str] = {}
    rules_fired: list[str] = []


class SearchResult(BaseModel):
    """Transport-free result envelope for one query."""

    status: SearchStatus
    advisory: bool
    confidence: float
    confidence_factors: ConfidenceFactors
    is_confident: bool
    evidence: list[Evidence]
    sources: list[str]
    read_next: list[ReadNext] = []
    arbitration: Arbitration
    debug: SearchDebug


class UriCollision(BaseModel):
    """Same URI, same origin, different content: a metadata error."""

    uri: str
    origin: Origin
    paths: list[dict[str, str]]
    message: str


class UriDrift(BaseModel):
    """Same URI across origins with different content: expected evolution."""

    uri: str
    local_path: str | None = None
    baseline_path: str | None = None
    volatility: str  # low | medium | high, size based
    normative_drift: bool = False
    polarity_flip: bool = False
    is_governing: bool = False
    message: str
