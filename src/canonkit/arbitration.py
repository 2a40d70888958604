"""Intent-gated precedence and arbitration outcome.

Scores recommend; they do not decide. Whenever a workaround or experiment
ranks above a pattern or promoted document it does not explicitly
supersede, the low-tier candidate is vetoed: moved to the end of the list
regardless of how large its score lead was.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from canonkit.models.document import EvidenceStrength, Intent, Origin
from canonkit.models.search import (
    ArbitrationOutcome,
    Contradiction,
    PrecedenceResult,
    PrecedenceViolation,
    SearchStatus,
)

if TYPE_CHECKING:
    from canonkit.models.search import Evidence, ScoredCandidate

log = structlog.get_logger()

HIGH_TIER_MIN_RANK = Intent.PATTERN.rank
LOW_TIER_MAX_RANK = Intent.EXPERIMENT.rank


def is_high_tier(intent: Intent) -> bool:
    return intent.rank >= HIGH_TIER_MIN_RANK


def is_low_tier(intent: Intent) -> bool:
    return intent.rank <= LOW_TIER_MAX_RANK


def apply_intent_gated_precedence(candidates: list[ScoredCandidate]) -> PrecedenceResult:
    """Demote low-tier candidates that outrank high-tier ones.

    A pair is exempt only when the low-tier document explicitly supersedes
    the high-tier document's URI. Non-vetoed candidates keep their relative
    order, followed by the vetoed ones in their original order.
    """
    violations: list[PrecedenceViolation] = []
    vetoed_positions: list[int] = []

    for low_pos, low in enumerate(candidates):
        if not is_low_tier(low.document.intent):
            continue
        for high_pos in range(low_pos + 1, len(candidates)):
            high = candidates[high_pos]
            if not is_high_tier(high.document.intent):
                continue
            if high.document.uri and high.document.uri in low.document.supersedes:
                continue
            violations.append(
                PrecedenceViolation(
                    low_path=low.document.path,
                    low_intent=low.document.intent,
                    high_path=high.document.path,
                    high_intent=high.document.intent,
                    low_rank=low_pos,
                    high_rank=high_pos,
                )
            )
            if low_pos not in vetoed_positions:
                vetoed_positions.append(low_pos)

    kept = [c for pos, c in enumerate(candidates) if pos not in vetoed_positions]
    demoted = [candidates[pos] for pos in vetoed_positions]
    if violations:
        log.info(
            "intent_precedence_vetoed",
            violations=len(violations),
            vetoed=[c.document.path for c in demoted],
        )
    return PrecedenceResult(
        reordered=kept + demoted,
        violations=violations,
        vetoed=[c.document.path for c in demoted],
    )


def build_contradictions(
    violations: list[PrecedenceViolation],
    vetoed: list[str],
    evidence: list[Evidence],
) -> list[Contradiction]:
    """Typed contradictions; their count drives the confidence penalty."""
    contradictions = [
        Contradiction(
            type="AUTHORITY_CONTRADICTION",
            subtype="INTENT_PRECEDENCE_VIOLATION",
            message=(
                f"{v.low_intent} ({v.low_path}) ranked above {v.high_intent} ({v.high_path}) "
                "without explicit supersedes"
            ),
            low_path=v.low_path,
            low_intent=v.low_intent,
            high_path=v.high_path,
            high_intent=v.high_intent,
            vetoed=v.low_path in vetoed,
        )
        for v in violations
    ]

    strengths = {e.evidence_strength for e in evidence}
    if EvidenceStrength.STRONG in strengths and EvidenceStrength.NONE in strengths:
        contradictions.append(
            Contradiction(
                type="EVIDENCE_CONTRADICTION",
                subtype="MIXED_EVIDENCE_STRENGTH",
                message="Evidence includes both strong and unsupported sources",
            )
        )

    local = [e for e in evidence if e.origin == Origin.LOCAL]
    baseline = [e for e in evidence if e.origin == Origin.BASELINE]
    if (
        local
        and baseline
        and any(is_low_tier(e.intent) for e in local)
        and any(is_high_tier(e.intent) for e in baseline)
    ):
        contradictions.append(
            Contradiction(
                type="SCOPE_CONTRADICTION",
                subtype="LOCAL_BASELINE_INTENT_MISMATCH",
                message="Local workaround/experiment may conflict with baseline promoted/pattern",
            )
        )

    return contradictions


def decide_outcome(
    *,
    status: SearchStatus,
    has_uri_collision: bool,
    has_contradictions: bool,
    is_confident: bool,
) -> ArbitrationOutcome:
    if has_uri_collision:
        # Identity is broken; nothing can be preferred
        return ArbitrationOutcome.ESCALATE
    if status == SearchStatus.INSUFFICIENT_EVIDENCE:
        return ArbitrationOutcome.DEFER
    if has_contradictions:
        return (
            ArbitrationOutcome.PROPOSE_PROMOTION if is_confident else ArbitrationOutcome.ESCALATE
        )
    # Low confidence with enough evidence is still preferred, flagged advisory
    return ArbitrationOutcome.PREFER
