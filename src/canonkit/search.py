"""Search pipeline.

supersedes → identity dedup → score/rank → intent-gated precedence →
evidence → contradictions → confidence → status/outcome.

Transport-free: takes an Index and a query and returns a SearchResult.
Baseline availability is decided by the caller; this module only enforces
that no baseline document leaks through when it is unavailable.
"""

from __future__ import annotations

import structlog

from canonkit.arbitration import apply_intent_gated_precedence, build_contradictions, decide_outcome
from canonkit.config import SearchSettings
from canonkit.confidence import calculate_confidence
from canonkit.dedup import deduplicate, hygiene_warnings
from canonkit.errors import InvariantViolation
from canonkit.evidence import extract_quote, format_citation
from canonkit.models.document import Index, Origin
from canonkit.models.search import (
    Arbitration,
    ArbitrationOutcome,
    CandidateSummary,
    DedupSummary,
    Evidence,
    ReadNext,
    ScoredCandidate,
    SearchDebug,
    SearchResult,
    SearchStatus,
)
from canonkit.rules import detect_policy_intent
from canonkit.scoring import find_best_heading, query_tokens, rank
from canonkit.supersedes import resolve

log = structlog.get_logger()

REJECTION_REASONS = (
    "NO_HEADING",
    "TOO_SHORT",
    "DUPLICATE_PATH_HEADING",
    "DUPLICATE_PATH_DIVERSITY",
)


def _collect_evidence(
    candidates: list[ScoredCandidate], tokens: list[str], settings: SearchSettings
) -> tuple[list[Evidence], set[tuple[str, str]], dict[str, int]]:
    evidence: list[Evidence] = []
    contributing: set[tuple[str, str]] = set()
    rejected = dict.fromkeys(REJECTION_REASONS, 0)
    seen_path_heading: set[tuple[str, str]] = set()
    seen_paths: set[str] = set()

    for candidate in candidates:
        doc = candidate.document
        heading = find_best_heading(doc, tokens)
        if heading is None:
            rejected["NO_HEADING"] += 1
            continue

        quote = extract_quote(heading, settings.min_quote_words, settings.max_quote_words)
        if quote is None or quote.word_count < settings.min_quote_words:
            rejected["TOO_SHORT"] += 1
            continue

        if (doc.path, heading.text) in seen_path_heading:
            rejected["DUPLICATE_PATH_HEADING"] += 1
            continue
        # Prefer source diversity once the minimum is already met
        if doc.path in seen_paths and len(evidence) >= settings.min_evidence:
            rejected["DUPLICATE_PATH_DIVERSITY"] += 1
            continue

        seen_path_heading.add((doc.path, heading.text))
        seen_paths.add(doc.path)
        contributing.add((doc.path, doc.origin))
        evidence.append(
            Evidence(
                quote=quote.text,
                citation=format_citation(doc, heading),
                origin=doc.origin,
                intent=doc.intent,
                evidence_strength=doc.evidence_strength,
                word_count=quote.word_count,
                truncated=quote.truncated,
            )
        )

    return evidence, contributing, {k: v for k, v in rejected.items() if v}


def _read_next(candidates: list[ScoredCandidate], tokens: list[str]) -> list[ReadNext]:
    read_next: list[ReadNext] = []
    if not candidates:
        return read_next
    top = candidates[0].document
    heading = find_best_heading(top, tokens)
    if heading is not None:
        read_next.append(ReadNext(citation=format_citation(top, heading), reason="Primary source"))
    if len(candidates) > 1 and candidates[1].document.path != top.path:
        related = candidates[1].document
        heading = find_best_heading(related, tokens)
        if heading is not None:
            read_next.append(
                ReadNext(citation=format_citation(related, heading), reason="Related context")
            )
    return read_next


def _check_no_baseline(documents_or_evidence: list, what: str) -> None:
    leaked = [item for item in documents_or_evidence if item.origin == Origin.BASELINE]
    if leaked:
        raise InvariantViolation(
            f"{len(leaked)} {what} have origin 'baseline' while the baseline is unavailable"
        )


def search(
    index: Index,
    query: str,
    *,
    baseline_available: bool,
    baseline_error: str | None = None,
    index_rebuild_reason: str | None = None,
    settings: SearchSettings | None = None,
) -> SearchResult:
    """Answer ``query`` from ``index`` with cited, confidence-scored evidence.

    Raises InvariantViolation if a baseline document survives while
    ``baseline_available`` is False; that indicates a stale cached index.
    """
    settings = settings or SearchSettings()

    resolved = resolve(index.documents)
    dedup = deduplicate(resolved.filtered, settings.excessive_duplicate_ratio)
    if not baseline_available:
        _check_no_baseline(dedup.documents, "documents")

    tokens = query_tokens(query)
    ranked = rank(dedup.documents, tokens, settings.max_results)
    precedence = apply_intent_gated_precedence(ranked)
    candidates = precedence.reordered

    evidence, contributing, rejected = _collect_evidence(candidates, tokens, settings)
    contradictions = build_contradictions(precedence.violations, precedence.vetoed, evidence)

    confidence, factors = calculate_confidence(
        candidates,
        evidence,
        contradictions,
        contributing=contributing,
        min_evidence=settings.min_evidence,
    )
    is_confident = confidence >= settings.min_confidence
    status = (
        SearchStatus.SUPPORTED
        if len(evidence) >= settings.min_evidence
        else SearchStatus.INSUFFICIENT_EVIDENCE
    )
    advisory = not is_confident or bool(dedup.collisions)
    outcome = decide_outcome(
        status=status,
        has_uri_collision=bool(dedup.collisions),
        has_contradictions=bool(contradictions),
        is_confident=is_confident,
    )
    policy_intent = detect_policy_intent(query)
    warnings = hygiene_warnings(dedup, settings.excessive_duplicate_ratio)

    rules_fired = [
        "SUPPORTED_REQUIRES_EVIDENCE_BULLETS",
        "QUOTE_LENGTH_ENFORCED",
        "INTENT_GATED_PRECEDENCE",
        "IDENTITY_DEDUP",
    ]
    if dedup.duplicate_count:
        rules_fired.append("INDEX_DUPLICATE_COLLAPSED")
    if dedup.is_excessive:
        rules_fired.append("EXCESSIVE_DUPLICATES")
    if dedup.collisions:
        rules_fired.append("URI_COLLISION_DETECTED")
    if dedup.drifts:
        rules_fired.append("URI_DRIFT_DETECTED")
        if any(d.normative_drift for d in dedup.drifts):
            rules_fired.append("NORMATIVE_DRIFT_DETECTED")
        if any(d.polarity_flip for d in dedup.drifts):
            rules_fired.append("POLARITY_FLIP_DETECTED")
    if any(w.type == "MISSING_URI_FOR_POLICY_DOC" for w in warnings):
        rules_fired.append("MISSING_URI_FOR_POLICY_DOC")
    if status == SearchStatus.INSUFFICIENT_EVIDENCE:
        rules_fired.append("INSUFFICIENT_EVIDENCE_RETURNED")
    if advisory:
        rules_fired.append("LOW_CONFIDENCE_ADVISORY")
    if resolved.suppressed:
        rules_fired.append("SUPERSEDES_APPLIED")
    if precedence.violations:
        rules_fired.append("INTENT_PRECEDENCE_VIOLATED")
    if precedence.vetoed:
        rules_fired.append("INTENT_PRECEDENCE_VETOED")
    if outcome == ArbitrationOutcome.ESCALATE:
        rules_fired.append("ESCALATION_REQUIRED")
    if outcome == ArbitrationOutcome.PROPOSE_PROMOTION:
        rules_fired.append("PROMOTION_CANDIDATE")
    rules_fired.append("BASELINE_LOADED" if baseline_available else "BASELINE_UNAVAILABLE")
    rules_fired.append(f"POLICY_INTENT_{policy_intent.upper()}")

    if not baseline_available:
        _check_no_baseline(evidence, "evidence items")

    log.info(
        "search_complete",
        query=query,
        status=status,
        confidence=confidence,
        evidence=len(evidence),
        outcome=outcome,
        baseline_available=baseline_available,
    )

    return SearchResult(
        status=status,
        advisory=advisory,
        confidence=confidence,
        confidence_factors=factors,
        is_confident=is_confident,
        evidence=evidence,
        sources=[e.citation for e in evidence],
        read_next=_read_next(candidates, tokens),
        arbitration=Arbitration(
            outcome=outcome,
            candidates_considered=[
                CandidateSummary(
                    path=c.document.path,
                    origin=c.document.origin,
                    score=round(c.score, 2),
                    intent=c.document.intent,
                    evidence_strength=c.document.evidence_strength,
                    authority_band=c.document.authority_band.value,
                    signals=c.signals,
                )
                for c in candidates
            ],
            contradictions=contradictions,
            warnings=warnings,
            violations=precedence.violations,
            vetoed=precedence.vetoed,
            dedup=DedupSummary(
                collapsed_groups=len(dedup.groups),
                duplicate_count=dedup.duplicate_count,
                groups=dedup.groups,
            ),
        ),
        debug=SearchDebug(
            query=query,
            query_tokens=tokens,
            baseline_available=baseline_available,
            baseline_error=baseline_error,
            baseline_commit=index.baseline_commit_sha,
            index_rebuild_reason=index_rebuild_reason,
            docs_considered=len(candidates),
            evidence_accepted_count=len(evidence),
            evidence_rejected_count=sum(rejected.values()),
            evidence_rejected_reasons=rejected,
            policy_intent=policy_intent,
            suppressed=resolved.suppressed,
            rules_fired=rules_fired,
        ),
    )
