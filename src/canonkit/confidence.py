"""Explainable confidence.

Every factor is computed from the ranked candidates and the accepted
evidence only, so the same index, query and baseline commit always give the
same score and the same breakdown.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from canonkit.models.document import MAX_INTENT_RANK, EvidenceStrength
from canonkit.models.search import ConfidenceFactors

if TYPE_CHECKING:
    from collections.abc import Collection

    from canonkit.models.search import Contradiction, Evidence, ScoredCandidate

EVIDENCE_QUALITY = {
    EvidenceStrength.NONE: 0.5,
    EvidenceStrength.WEAK: 0.7,
    EvidenceStrength.MEDIUM: 0.9,
    EvidenceStrength.STRONG: 1.0,
}

MARGIN_WEIGHT = 0.4
COVERAGE_WEIGHT = 0.2
EVIDENCE_WEIGHT = 0.2
INTENT_WEIGHT = 0.2
CONFLICT_PENALTY = 0.3


def _margin(ranked: list[ScoredCandidate], contributing: Collection[tuple[str, str]]) -> float:
    top = ranked[0].score
    if top <= 0:
        return 0.0
    # A candidate that supplied evidence corroborates the answer; it is not a competitor
    runner_up = next(
        (
            c.score
            for c in ranked[1:]
            if (c.document.path, c.document.origin) not in contributing
        ),
        None,
    )
    if runner_up is None:
        return 1.0
    return max(0.0, (top - runner_up) / top)


def calculate_confidence(
    ranked: list[ScoredCandidate],
    evidence: list[Evidence],
    contradictions: list[Contradiction],
    *,
    contributing: Collection[tuple[str, str]] = (),
    min_evidence: int = 2,
) -> tuple[float, ConfidenceFactors]:
    """Return ``(confidence, factors)`` with confidence clamped to [0, 1].

    ``contributing`` holds the ``(path, origin)`` of every candidate that
    supplied accepted evidence.
    """
    factors = ConfidenceFactors()
    if not evidence or not ranked:
        return 0.0, factors

    factors.margin = _margin(ranked, contributing)
    factors.coverage = min(1.0, len(evidence) / max(1, min_evidence))
    factors.evidence_quality = sum(EVIDENCE_QUALITY[e.evidence_strength] for e in evidence) / len(
        evidence
    )
    factors.intent_quality = sum(e.intent.rank / MAX_INTENT_RANK for e in evidence) / len(evidence)
    factors.conflict_penalty = CONFLICT_PENALTY * len(contradictions)

    raw = (
        MARGIN_WEIGHT * factors.margin
        + COVERAGE_WEIGHT * factors.coverage
        + EVIDENCE_WEIGHT * factors.evidence_quality
        + INTENT_WEIGHT * factors.intent_quality
        - factors.conflict_penalty
    )
    return round(min(1.0, max(0.0, raw)), 2), factors
