"""
Tests for the match_scorer module.
"""

import pytest

from src.outlook_assistant.match_scorer import (
    MatchScorer,
    build_phrases,
    build_targets,
    default_selection,
    score_longest_substring,
    score_token_overlap,
)
from src.outlook_assistant.models import (
    Attachment,
    FallbackChain,
    FolderNode,
    MatchStrategy,
    ScopeTier,
    iter_nodes,
)


def node(*names: str, children: tuple = ()) -> FolderNode:
    """Build a folder whose ids are its slash-joined name paths."""

    return FolderNode(
        id="/".join(names),
        name=names[-1],
        children=list(children),
        path_ids=["/".join(names[: i + 1]) for i in range(len(names))],
        path_names=list(names),
    )


@pytest.fixture
def forest() -> list[FolderNode]:
    return [
        node(
            "Klanten",
            children=(
                node("Klanten", "Acme Corp", children=(node("Klanten", "Acme Corp", "2024"),)),
                node("Klanten", "Beta"),
                node("Klanten", "Acme"),
            ),
        ),
        node(
            "Projecten",
            children=(
                node("Projecten", "Website Redesign"),
                node("Projecten", "Kantoor Verbouwing"),
            ),
        ),
        node("Inbox archief"),
    ]


def klanten_tier(**kwargs) -> ScopeTier:
    return ScopeTier(scope_path=["Klanten"], **kwargs)


class TestScoringFunctions:
    """Tests for the two scoring strategies."""

    def test_longest_substring_uses_full_path(self):
        target = node("Klanten", "Acme Corp")
        phrases = build_phrases(["Klanten Acme Corp"])
        assert score_longest_substring(target, phrases) == len("klanten acme corp")

    def test_longest_substring_no_hit(self):
        assert score_longest_substring(node("Klanten", "Beta"), build_phrases(["Gamma"])) == 0.0

    def test_phrases_do_not_span_targets(self):
        phrases = build_phrases(["invoice acme", "corp order"])
        assert "acme corp" not in phrases
        assert "invoice acme" in phrases

    def test_token_overlap_ratio(self):
        target = node("Projecten", "Website Redesign")
        assert score_token_overlap(target, "new website launch") == 0.5
        assert score_token_overlap(target, "website redesign kickoff") == 1.0

    def test_token_overlap_name_without_tokens(self):
        assert score_token_overlap(node("---"), "anything") == 0.0


class TestRank:
    """Tests for MatchScorer.rank."""

    def test_candidates_stay_inside_scope(self, forest):
        scorer = MatchScorer()
        tier = ScopeTier(scope_path=["Projecten"], threshold=1)

        ranked = scorer.rank(forest, tier, ["Acme Corp Website"])

        assert ranked
        assert all(c.node.path_names[0] == "Projecten" for c in ranked)
        assert all(c.node.id != "Projecten" for c in ranked)

    def test_exact_path_is_selected(self, forest):
        scorer = MatchScorer()

        ranked = scorer.rank(forest, klanten_tier(), ["Klanten Acme Corp 2024"])

        assert ranked[0].node.path == "Klanten/Acme Corp/2024"
        assert all(ranked[0].score >= c.score for c in ranked)

    def test_equal_scores_prefer_shorter_path(self, forest):
        """"acme corp" is in both Acme Corp and Acme Corp/2024; the parent wins."""
        scorer = MatchScorer()

        ranked = scorer.rank(forest, klanten_tier(), ["Acme Corp invoice"])

        assert ranked[0].node.path == "Klanten/Acme Corp"
        assert ranked[1].node.path == "Klanten/Acme Corp/2024"
        assert ranked[0].score == ranked[1].score

    def test_tie_break_ignores_listing_order(self, forest):
        """Same score and path length: lexical path order decides."""
        scorer = MatchScorer()
        reordered = [
            node(
                "Klanten",
                children=tuple(reversed(forest[0].children)),
            )
        ]

        first = scorer.rank(forest, klanten_tier(), ["Klanten"])
        second = scorer.rank(reordered, klanten_tier(), ["Klanten"])

        assert [c.node.id for c in first] == [c.node.id for c in second]
        assert first[0].node.path == "Klanten/Acme"

    def test_raising_threshold_never_adds_candidates(self, forest):
        scorer = MatchScorer()
        targets = ["Klanten Acme Corp 2024 offerte", "Beta"]

        previous = None
        for threshold in (1, 4, 7, 9, 12, 17, 22, 40):
            accepted = {c.node.id for c in scorer.rank(forest, klanten_tier(threshold=threshold), targets)}
            if previous is not None:
                assert accepted <= previous
            previous = accepted
        assert previous == set()

    def test_missing_scope_yields_nothing(self, forest):
        scorer = MatchScorer()
        tier = ScopeTier(scope_path=["Leveranciers"])

        assert scorer.rank(forest, tier, ["Acme"]) == []

    def test_nested_scope_path(self, forest):
        scorer = MatchScorer()
        tier = ScopeTier(scope_path=["klanten", "acme corp"], threshold=1)

        ranked = scorer.rank(forest, tier, ["2024"])

        assert [c.node.path for c in ranked] == ["Klanten/Acme Corp/2024"]

    def test_limit(self, forest):
        scorer = MatchScorer()

        assert len(scorer.rank(forest, klanten_tier(), ["Klanten"], limit=2)) == 2


class TestBestMatch:
    """Tests for MatchScorer.best_match and the fallback chain."""

    def test_first_tier_with_a_candidate_wins(self, forest):
        chain = FallbackChain(
            tiers=[
                klanten_tier(threshold=5),
                ScopeTier(
                    scope_path=["Projecten"],
                    strategy=MatchStrategy.TOKEN_OVERLAP,
                ),
            ],
            fallback_path=["Inbox archief"],
        )
        scorer = MatchScorer(chain)

        outcome = scorer.best_match(forest, ["website launch plan"])

        assert outcome.kind == "match"
        assert outcome.node.path == "Projecten/Website Redesign"
        assert outcome.score == 0.5
        assert outcome.scope == "Projecten"

    def test_fallback_when_no_tier_accepts(self, forest):
        chain = FallbackChain(tiers=[klanten_tier(threshold=5)], fallback_path=["Inbox archief"])

        outcome = MatchScorer(chain).best_match(forest, ["holiday pictures"])

        assert outcome.kind == "fallback"
        assert outcome.node.name == "Inbox archief"
        assert outcome.score is None

    def test_none_when_nothing_configured(self, forest):
        outcome = MatchScorer().best_match(forest, ["Acme Corp"])

        assert outcome.kind == "none"
        assert outcome.node is None

    def test_none_when_fallback_missing_from_forest(self, forest):
        chain = FallbackChain(tiers=[klanten_tier(threshold=50)], fallback_path=["Elders"])

        assert MatchScorer(chain).best_match(forest, ["Acme"]).kind == "none"

    def test_outcome_is_in_scope_or_fallback(self, forest):
        chain = FallbackChain(
            tiers=[ScopeTier(scope_path=["Projecten"], threshold=3)],
            fallback_path=["Inbox archief"],
        )
        scorer = MatchScorer(chain)
        in_scope = {n.id for n in iter_nodes(forest[1].children)}

        for targets in (["Acme Corp"], ["Kantoor"], ["Beta 2024"], ["Website"]):
            outcome = scorer.best_match(forest, targets)
            assert outcome.kind in ("match", "fallback")
            if outcome.kind == "match":
                assert outcome.node.id in in_scope
            else:
                assert outcome.node.id == "Inbox archief"


class TestTierDefaults:
    """Tests for ScopeTier default thresholds and labels."""

    def test_longest_substring_default(self):
        tier = ScopeTier(scope_path=["Klanten"])
        assert tier.threshold == 1.0
        assert tier.label == "Klanten"

    def test_token_overlap_default(self):
        tier = ScopeTier(scope_path=["Projecten", "Lopend"], strategy="token_overlap")
        assert tier.threshold == 0.4
        assert tier.label == "Projecten/Lopend"


class TestTargets:
    """Tests for attachment preparation helpers."""

    def test_build_targets_strips_extensions_and_adds_subject(self):
        attachments = [
            Attachment(id="1", name="Acme invoice.pdf"),
            Attachment(id="2", name="offerte.v2.docx"),
        ]
        assert build_targets(attachments, "Order Acme") == [
            "Acme invoice",
            "offerte.v2",
            "Order Acme",
        ]

    def test_build_targets_skips_blank_subject(self):
        assert build_targets([Attachment(id="1", name="a.pdf")], "  ") == ["a"]

    def test_default_selection_excludes_images(self):
        attachments = [
            Attachment(id="1", name="image001.png"),
            Attachment(id="2", name="contract.pdf"),
            Attachment(id="3", name="Image_logo.jpg"),
        ]
        assert default_selection(attachments) == ["2"]
