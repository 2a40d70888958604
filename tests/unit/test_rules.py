"""Unit tests for the classification tables in canonkit.rules."""

from __future__ import annotations

import pytest

from canonkit.models.document import AuthorityBand, EvidenceStrength, Intent
from canonkit.rules import (
    AUTHORITY_RULES,
    INTENT_RULES,
    classify,
    detect_policy_intent,
    infer_authority_band,
    infer_evidence_strength,
    infer_intent,
)


class TestClassify:
    def test_first_match_wins(self) -> None:
        # canon/ is listed before the workaround filename rule
        assert classify(INTENT_RULES, "canon/retry-workaround.md", Intent.OPERATIONAL) == (
            Intent.PROMOTED
        )

    def test_default_when_nothing_matches(self) -> None:
        assert classify(AUTHORITY_RULES, "notes/a.md", AuthorityBand.NON_GOVERNING) == (
            AuthorityBand.NON_GOVERNING
        )


class TestAuthorityBand:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("canon/a.md", AuthorityBand.GOVERNING),
            ("odd/patterns/a.md", AuthorityBand.GOVERNING),
            ("writings/essay.md", AuthorityBand.GOVERNING),
            ("docs/a.md", AuthorityBand.OPERATIONAL),
            ("notes/a.md", AuthorityBand.NON_GOVERNING),
        ],
    )
    def test_path_rules(self, path: str, expected: AuthorityBand) -> None:
        assert infer_authority_band(path, {}) == expected

    def test_frontmatter_overrides_path(self) -> None:
        assert infer_authority_band("canon/a.md", {"authority_band": "Operational"}) == (
            AuthorityBand.OPERATIONAL
        )

    def test_unknown_frontmatter_value_falls_back(self) -> None:
        assert infer_authority_band("canon/a.md", {"authority_band": "supreme"}) == (
            AuthorityBand.GOVERNING
        )


class TestIntent:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("canon/a.md", Intent.PROMOTED),
            ("odd/a.md", Intent.PATTERN),
            ("docs/cache-workaround.md", Intent.WORKAROUND),
            ("docs/experiments/new-index.md", Intent.EXPERIMENT),
            ("docs/a.md", Intent.OPERATIONAL),
        ],
    )
    def test_path_rules(self, path: str, expected: Intent) -> None:
        assert infer_intent(path, {}) == expected

    def test_frontmatter_overrides_path(self) -> None:
        assert infer_intent("odd/b.md", {"intent": "workaround"}) == Intent.WORKAROUND

    def test_rank_order(self) -> None:
        ranks = [i.rank for i in Intent]
        assert ranks == sorted(ranks)


class TestEvidenceStrength:
    def test_declared(self) -> None:
        assert infer_evidence_strength({"evidence": "strong"}) == EvidenceStrength.STRONG

    def test_missing_or_invalid(self) -> None:
        assert infer_evidence_strength({}) == EvidenceStrength.NONE
        assert infer_evidence_strength({"evidence": 3}) == EvidenceStrength.NONE


class TestPolicyIntent:
    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("what does canon says about retries", "strong"),
            ("what is the rule for retries", "strong"),
            ("retry policy", "strong"),
            ("must I pin versions", "weak"),
            ("how do I verify a release", "weak"),
            ("deploy steps", "none"),
        ],
    )
    def test_levels(self, query: str, expected: str) -> None:
        assert detect_policy_intent(query) == expected
