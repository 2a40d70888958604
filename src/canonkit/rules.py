"""Ordered classification tables.

Each table is a sequence of ``Rule(pattern, value)`` evaluated first-match-wins
against a path or a query. Keeping the tables as data lets them be tested
independently of the code that routes on their result.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from canonkit.models.document import AuthorityBand, EvidenceStrength, Intent

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Rule(Generic[T]):
    pattern: re.Pattern[str]
    value: T

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _rule(pattern: str, value: T, flags: int = 0) -> Rule[T]:
    return Rule(re.compile(pattern, flags), value)


AUTHORITY_RULES: tuple[Rule[AuthorityBand], ...] = (
    _rule(r"^canon/", AuthorityBand.GOVERNING),
    _rule(r"^odd/", AuthorityBand.GOVERNING),  # pattern library
    _rule(r"^writings/", AuthorityBand.GOVERNING),
    _rule(r"^docs/", AuthorityBand.OPERATIONAL),
)

INTENT_RULES: tuple[Rule[Intent], ...] = (
    _rule(r"^canon/", Intent.PROMOTED),
    _rule(r"^odd/", Intent.PATTERN),
    _rule(r"^writings/", Intent.PROMOTED),
    _rule(r"(^|/)[^/]*workaround", Intent.WORKAROUND),
    _rule(r"(^|/)[^/]*experiment", Intent.EXPERIMENT),
)

POLICY_INTENT_RULES: tuple[Rule[str], ...] = (
    _rule(r"\b(?:odd|canon)\s+says\b", "strong", re.IGNORECASE),
    _rule(r"\b(?:rule|constraint|decision|definition|policy)\b", "strong", re.IGNORECASE),
    _rule(r"\bwhat\s+(?:is|are)\s+the\s+(?:rule|constraint|requirement)", "strong", re.IGNORECASE),
    _rule(r"\bmust\b", "weak", re.IGNORECASE),
    _rule(r"\bshould\b", "weak", re.IGNORECASE),
    _rule(r"\brequire", "weak", re.IGNORECASE),
    _rule(r"\bverify", "weak", re.IGNORECASE),
    _rule(r"\bevidence\b", "weak", re.IGNORECASE),
)


def classify(rules: Sequence[Rule[T]], text: str, default: T) -> T:
    """Return the value of the first matching rule, or ``default``."""
    for rule in rules:
        if rule.matches(text):
            return rule.value
    return default


def _enum_value(enum_cls: type[E], raw: Any) -> E | None:
    if not isinstance(raw, str):
        return None
    try:
        return enum_cls(raw.strip().lower())  # type: ignore[call-arg]
    except ValueError:
        return None


def infer_authority_band(path: str, frontmatter: Mapping[str, Any]) -> AuthorityBand:
    declared = _enum_value(AuthorityBand, frontmatter.get("authority_band"))
    if declared is not None:
        return declared
    return classify(AUTHORITY_RULES, path, AuthorityBand.NON_GOVERNING)


def infer_intent(path: str, frontmatter: Mapping[str, Any]) -> Intent:
    declared = _enum_value(Intent, frontmatter.get("intent"))
    if declared is not None:
        return declared
    return classify(INTENT_RULES, path, Intent.OPERATIONAL)


def infer_evidence_strength(frontmatter: Mapping[str, Any]) -> EvidenceStrength:
    declared = _enum_value(EvidenceStrength, frontmatter.get("evidence"))
    return declared if declared is not None else EvidenceStrength.NONE


def detect_policy_intent(query: str) -> str:
    """Classify how strongly a query asks for policy: strong, weak or none."""
    return classify(POLICY_INTENT_RULES, query, "none")
