"""Folder scoring and suggestion.

Objective:
    Pick the folder an attachment most likely belongs in, using only the
    attachment names and the mail subject.

Scoring strategies:
    - Longest substring (:func:`score_longest_substring`): every contiguous
      run of target tokens is a phrase; a node scores the character length
      of the longest phrase found literally in its normalized full path.
      A two-word client name beats a generic single word.
    - Token overlap (:func:`score_token_overlap`): the share of the node's
      own name tokens that occur anywhere in the target text. Independent
      of path length, so siblings at different depths compare fairly.

Selection:
    Candidates are the descendants of a tier's scope node. A candidate is
    accepted when ``score >= threshold``. Equal scores are ordered by
    shorter normalized path, then shallower node, then path, then id.

Fallback chain:
    Tiers are tried in order; the first tier with an accepted candidate wins.
    Without one, the configured fallback node is suggested. With neither,
    the outcome is ``none``.

High-level call tree:
    - :class:`MatchScorer`
        - :meth:`best_match`
            - :meth:`rank`
                - :func:`score_longest_substring` / :func:`score_token_overlap`
    - :func:`build_targets` / :func:`default_selection` (attachment prep)
"""

import logging
from typing import Iterable, Optional, Sequence

from .models import (
    Attachment,
    FallbackChain,
    FolderNode,
    MatchCandidate,
    MatchOutcome,
    MatchStrategy,
    ScopeTier,
    find_by_path,
    iter_nodes,
)
from .text import contiguous_phrases, normalize, normalize_path, strip_extension, tokenize

logger = logging.getLogger(__name__)


def build_phrases(targets: Iterable[str]) -> list[str]:
    """Collect the contiguous token phrases of all targets, longest first.

    Phrases never span two targets, so the end of a filename and the start
    of the subject are not glued together.
    """
    phrases: set[str] = set()
    for target in targets:
        phrases.update(contiguous_phrases(tokenize(target)))
    return sorted(phrases, key=lambda phrase: (-len(phrase), phrase))


def score_longest_substring(node: FolderNode, phrases: Sequence[str]) -> float:
    """
    Score a node by the longest target phrase contained in its path.

    Args:
        node: Candidate folder.
        phrases: Target phrases sorted longest first (see
            :func:`build_phrases`).

    Returns:
        float: Character length of the longest contained phrase, or 0.
    """
    path = normalize_path(node.path_names)
    for phrase in phrases:
        if phrase in path:
            return float(len(phrase))
    return 0.0


def score_token_overlap(node: FolderNode, target_text: str) -> float:
    """
    Score a node by the share of its name tokens present in the target.

    Args:
        node: Candidate folder (only its own name is used).
        target_text: Lowercased target text.

    Returns:
        float: Ratio in ``[0, 1]``; 0 for names without tokens.
    """
    name_tokens = tokenize(node.name)
    if not name_tokens:
        return 0.0
    hits = sum(1 for token in name_tokens if token in target_text)
    return hits / len(name_tokens)


def _sort_key(candidate: MatchCandidate) -> tuple:
    node = candidate.node
    return (
        -candidate.score,
        len(normalize_path(node.path_names)),
        node.depth,
        node.path.lower(),
        node.id,
    )


def build_targets(attachments: Iterable[Attachment], subject: str = "") -> list[str]:
    """
    Turn attachments and the subject into scoring targets.

    File extensions are stripped so ``.pdf`` does not count as evidence.

    Args:
        attachments: Selected attachments.
        subject: Mail subject (optional).

    Returns:
        list[str]: One target per attachment, plus the subject when present.
    """
    targets = [strip_extension(attachment.name) for attachment in attachments]
    if subject and subject.strip():
        targets.append(subject)
    return targets


def default_selection(attachments: Iterable[Attachment]) -> list[str]:
    """Ids of the attachments selected by default (inline images excluded)."""
    return [a.id for a in attachments if "image" not in a.name.lower()]


class MatchScorer:
    """
    Suggests a folder from a forest using a configurable fallback chain.

    Attributes:
        chain: Scope tiers and fallback path.
    """

    def __init__(self, chain: Optional[FallbackChain] = None) -> None:
        """
        Initialize scorer.

        Args:
            chain: Fallback chain; an empty chain always yields ``none``.
        """
        self.chain = chain or FallbackChain()

    def rank(
        self,
        forest: Sequence[FolderNode],
        tier: ScopeTier,
        targets: Sequence[str],
        limit: Optional[int] = None,
    ) -> list[MatchCandidate]:
        """
        Score all candidates of one scope and keep the accepted ones.

        Args:
            forest: Folder forest.
            tier: Scope, strategy and threshold to apply.
            targets: Target strings (filenames and/or subject).
            limit: Maximum number of candidates to return.

        Returns:
            list[MatchCandidate]: Accepted candidates, best first.
        """
        scope = find_by_path(forest, tier.scope_path)
        if scope is None:
            logger.debug(f"Scope {tier.label!r} not present in forest")
            return []

        if tier.strategy == MatchStrategy.TOKEN_OVERLAP:
            target_text = " ".join(normalize(t) for t in targets)

            def score(node: FolderNode) -> float:
                return score_token_overlap(node, target_text)

        else:
            phrases = build_phrases(targets)

            def score(node: FolderNode) -> float:
                return score_longest_substring(node, phrases)

        accepted: list[MatchCandidate] = []
        for node in iter_nodes(scope.children):
            value = score(node)
            if value >= tier.threshold:
                accepted.append(MatchCandidate(node=node, score=value))

        accepted.sort(key=_sort_key)
        if limit is not None:
            accepted = accepted[:limit]
        return accepted

    def best_match(self, forest: Sequence[FolderNode], targets: Sequence[str]) -> MatchOutcome:
        """
        Walk the chain and return the suggestion.

        Args:
            forest: Folder forest.
            targets: Target strings (see :func:`build_targets`).

        Returns:
            MatchOutcome: ``match``, ``fallback`` or ``none``.
        """
        for tier in self.chain.tiers:
            ranked = self.rank(forest, tier, targets, limit=1)
            if ranked:
                best = ranked[0]
                logger.debug(f"Tier {tier.label!r} accepted {best.node.path} (score {best.score:.2f})")
                return MatchOutcome(kind="match", node=best.node, score=best.score, scope=tier.label)
            logger.debug(f"Tier {tier.label!r} produced no candidate above {tier.threshold:.2f}")

        fallback = find_by_path(forest, self.chain.fallback_path)
        if fallback is not None:
            return MatchOutcome(kind="fallback", node=fallback)

        if not self.chain.tiers and not self.chain.fallback_path:
            logger.info("No scope chain or fallback configured; no suggestion")
        return MatchOutcome(kind="none")
