"""Identity dedup and index hygiene warnings.

Runs after supersedes and before scoring. Documents that share an identity
(their URI, or ``path::content_hash`` without one) collapse to a single
representative, so that a local copy of a baseline document is not counted
as a second, competing source. Same-URI groups with differing content are
reported as collisions (one origin) or drifts (across origins).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from canonkit.models.document import AuthorityBand, EvidenceStrength, Origin
from canonkit.models.search import IndexWarning, UriCollision, UriDrift

if TYPE_CHECKING:
    from collections.abc import Iterable

    from canonkit.models.document import Document

_AUTHORITY_ORDER = {
    AuthorityBand.GOVERNING: 0,
    AuthorityBand.OPERATIONAL: 1,
    AuthorityBand.NON_GOVERNING: 2,
}
_EVIDENCE_ORDER = {
    EvidenceStrength.STRONG: 0,
    EvidenceStrength.MEDIUM: 1,
    EvidenceStrength.WEAK: 2,
    EvidenceStrength.NONE: 3,
}

LOW_VOLATILITY_RATIO = 0.1
MEDIUM_VOLATILITY_RATIO = 0.3

_POSITIVE_RE = re.compile(
    r"\b(?:MUST|SHALL)\b(?!\s+(?:NOT|NEVER)\b)|\b(?:REQUIRED|ALWAYS|MANDATORY)\b", re.IGNORECASE
)
_NEGATIVE_RE = re.compile(
    r"\b(?:MUST\s+NOT|MUST\s+NEVER|SHALL\s+NOT|NEVER|FORBIDDEN|PROHIBITED)\b", re.IGNORECASE
)
_CONDITIONAL_RE = re.compile(
    r"\b(?:SHOULD(?:\s+NOT)?|MAY|OPTIONAL|RECOMMENDED)\b", re.IGNORECASE
)


@dataclass
class DedupResult:
    documents: list[Document]
    groups: list[dict[str, Any]] = field(default_factory=list)
    duplicate_count: int = 0
    duplicate_ratio: float = 0.0
    collisions: list[UriCollision] = field(default_factory=list)
    drifts: list[UriDrift] = field(default_factory=list)
    is_excessive: bool = False


def identity_key(doc: Document) -> tuple[str, str]:
    """Return ``(key, kind)``; the URI is the true identity when present."""
    if doc.uri:
        return doc.uri, "uri"
    return f"{doc.path}::{doc.content_hash}", "path+hash"


def _representative_key(doc: Document) -> tuple[bool, int, int, int]:
    return (
        doc.origin != Origin.LOCAL,
        _AUTHORITY_ORDER[doc.authority_band],
        _EVIDENCE_ORDER[doc.evidence_strength],
        -doc.intent.rank,
    )


def drift_volatility(local: Document | None, baseline: Document | None) -> str:
    """Size-based volatility between two versions. Says nothing about meaning."""
    local_len = local.content_length if local else 0
    baseline_len = baseline.content_length if baseline else 0
    if local_len == 0 or baseline_len == 0:
        return "high"
    ratio = abs(local_len - baseline_len) / ((local_len + baseline_len) / 2)
    if ratio < LOW_VOLATILITY_RATIO:
        return "low"
    if ratio < MEDIUM_VOLATILITY_RATIO:
        return "medium"
    return "high"


def count_normative_tokens(text: str) -> dict[str, int]:
    return {
        "positive": len(_POSITIVE_RE.findall(text)),
        "negative": len(_NEGATIVE_RE.findall(text)),
        "conditional": len(_CONDITIONAL_RE.findall(text)),
    }


def detect_normative_drift(local: Document | None, baseline: Document | None) -> tuple[bool, bool]:
    """Return ``(has_normative_drift, polarity_flip)`` from rule language counts."""
    local_counts = count_normative_tokens(local.content_preview if local else "")
    baseline_counts = count_normative_tokens(baseline.content_preview if baseline else "")

    local_polarity = local_counts["positive"] - local_counts["negative"]
    baseline_polarity = baseline_counts["positive"] - baseline_counts["negative"]
    polarity_flip = (local_polarity > 0 > baseline_polarity) or (
        local_polarity < 0 < baseline_polarity
    )
    count_change = abs(sum(local_counts.values()) - sum(baseline_counts.values()))
    return polarity_flip or count_change >= 2, polarity_flip


def _drift(uri: str, group: list[Document]) -> UriDrift:
    local = next((d for d in group if d.origin == Origin.LOCAL), None)
    baseline = next((d for d in group if d.origin == Origin.BASELINE), None)
    volatility = drift_volatility(local, baseline)
    normative, flip = detect_normative_drift(local, baseline)
    if flip:
        message = f"URI '{uri}' has a polarity flip: rule direction changed"
    elif normative:
        message = f"URI '{uri}' has normative drift (rule language changed)"
    else:
        message = f"URI '{uri}' has {volatility} volatility drift"
    return UriDrift(
        uri=uri,
        local_path=local.path if local else None,
        baseline_path=baseline.path if baseline else None,
        volatility=volatility,
        normative_drift=normative,
        polarity_flip=flip,
        is_governing=any(
            d.authority_band == AuthorityBand.GOVERNING for d in (local, baseline) if d
        ),
        message=message,
    )


def deduplicate(documents: Iterable[Document], excessive_ratio: float = 0.25) -> DedupResult:
    """Collapse identity groups to one representative each.

    Representatives are picked by origin (local first), then authority,
    evidence strength and intent. Output keeps the order in which each
    identity was first seen.
    """
    documents = list(documents)
    groups: dict[str, tuple[str, list[Document]]] = {}
    for doc in documents:
        key, kind = identity_key(doc)
        groups.setdefault(key, (kind, []))[1].append(doc)

    result = DedupResult(documents=[])
    for key, (kind, group) in groups.items():
        if len(group) == 1:
            result.documents.append(group[0])
            continue

        if kind == "uri" and len({d.content_hash for d in group}) > 1:
            origins = {d.origin for d in group}
            if len(origins) > 1:
                result.drifts.append(_drift(key, group))
            else:
                origin = group[0].origin
                result.collisions.append(
                    UriCollision(
                        uri=key,
                        origin=origin,
                        paths=[{"path": d.path, "hash": d.content_hash} for d in group],
                        message=(
                            f"URI '{key}' has {len(group)} different documents in "
                            f"{origin} (metadata error)"
                        ),
                    )
                )

        chosen, *collapsed = sorted(group, key=_representative_key)
        result.documents.append(chosen)
        result.groups.append(
            {
                "id": key,
                "id_type": kind,
                "chosen": {"origin": chosen.origin.value, "path": chosen.path},
                "collapsed": [{"origin": d.origin.value, "path": d.path} for d in collapsed],
            }
        )

    result.duplicate_count = len(documents) - len(result.documents)
    result.duplicate_ratio = result.duplicate_count / len(documents) if documents else 0.0
    result.is_excessive = result.duplicate_ratio > excessive_ratio
    return result


def _is_policy_doc(doc: Document) -> bool:
    if doc.uri or doc.origin != Origin.LOCAL:
        return False
    return (
        doc.authority_band == AuthorityBand.GOVERNING
        or doc.intent.rank >= 4
        or doc.evidence_strength in (EvidenceStrength.STRONG, EvidenceStrength.MEDIUM)
    )


def policy_docs_without_uri(documents: Iterable[Document]) -> list[str]:
    """Local policy-bearing documents that lack a stable URI."""
    return [doc.path for doc in documents if _is_policy_doc(doc)]


def hygiene_warnings(result: DedupResult, excessive_ratio: float = 0.25) -> list[IndexWarning]:
    warnings: list[IndexWarning] = []

    for collision in result.collisions:
        warnings.append(
            IndexWarning(
                type="URI_COLLISION",
                message=collision.message,
                severity="high",
                count=len(collision.paths),
                details={
                    "uri": collision.uri,
                    "origin": collision.origin.value,
                    "paths": collision.paths,
                    "required_action": (
                        "Choose one canonical path, change one URI, or add an explicit supersedes"
                    ),
                },
            )
        )

    if result.drifts:
        normative = [d for d in result.drifts if d.normative_drift]
        flips = [d for d in normative if d.polarity_flip]
        if normative:
            governing = [d for d in normative if d.is_governing]
            warnings.append(
                IndexWarning(
                    type="NORMATIVE_DRIFT",
                    message=(
                        f"{len(flips)} URI(s) have a polarity flip: rule direction changed"
                        if flips
                        else f"{len(normative)} URI(s) have normative drift "
                        "(MUST/SHOULD language changed)"
                    ),
                    severity="high" if flips or governing else "medium",
                    count=len(normative),
                    details={
                        "polarity_flips": len(flips),
                        "governing_count": len(governing),
                        "drifts": [d.model_dump(mode="json") for d in normative[:5]],
                    },
                )
            )
        by_volatility = {
            level: sum(1 for d in result.drifts if d.volatility == level)
            for level in ("low", "medium", "high")
        }
        warnings.append(
            IndexWarning(
                type="URI_DRIFT",
                message=(
                    f"{len(result.drifts)} URI(s) have version drift (volatility: "
                    f"{by_volatility['high']} high, {len(normative)} normative)"
                ),
                severity="low",
                count=len(result.drifts),
                details={
                    "by_volatility": by_volatility,
                    "drifts": [d.model_dump(mode="json") for d in result.drifts[:10]],
                },
            )
        )

    percent = round(result.duplicate_ratio * 100)
    if result.is_excessive:
        warnings.append(
            IndexWarning(
                type="EXCESSIVE_DUPLICATES",
                message=(
                    f"{result.duplicate_count} duplicates ({percent}% of candidates). Baseline "
                    "and local overlap heavily; consider pinning the baseline ref or reducing "
                    "its scope."
                ),
                severity="medium",
                count=result.duplicate_count,
                details={"ratio": percent, "threshold": round(excessive_ratio * 100)},
            )
        )

    if result.groups:
        warnings.append(
            IndexWarning(
                type="INDEX_DUPLICATE",
                message=(
                    f"{result.duplicate_count} duplicate(s) collapsed from "
                    f"{len(result.groups)} identity group(s)."
                ),
                count=result.duplicate_count,
                details={"ratio": percent, "groups": result.groups[:10]},
            )
        )

    missing = policy_docs_without_uri(result.documents)
    if missing:
        warnings.append(
            IndexWarning(
                type="MISSING_URI_FOR_POLICY_DOC",
                message=(
                    f"{len(missing)} policy doc(s) lack a URI. Add uri frontmatter to "
                    "stabilise identity."
                ),
                severity="medium",
                count=len(missing),
                details={"paths": missing[:5]},
            )
        )

    return warnings
