"""Depth-bounded folder forest construction.

Objective:
    Build a partial view of the document library that is just deep enough
    for folder suggestions. The library can be arbitrarily deep and wide,
    so only the folders named by the expansion policy are expanded, and only
    to the depth the policy allows.

Responsibilities:
    - List the top level of the namespace once.
    - Apply the first matching :class:`ExpansionRule` to each top-level
      folder (leaf, bounded expansion, or expansion under an anchor child).
    - Return an immutable :class:`FolderNode` forest.

High-level call tree:
    - :class:`TreeBuilder`
        - :meth:`build`
            - :meth:`_list_containers` (one namespace listing per call)
            - :meth:`_rule_for`
            - :meth:`_freeze`

Traversal:
    Expansion uses an explicit FIFO worklist of
    ``(node, current_depth, max_depth)`` items instead of recursion. Listings
    are issued one at a time, so the number of in-flight requests never
    exceeds one and the total is bounded by the policy depths.

Failure semantics:
    Any failed listing aborts the whole build (the exception propagates);
    a partial forest would silently bias the suggestions. A missing anchor
    child is not a failure: the top-level entry is skipped.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .models import ExpansionRule, FolderNode, NamespaceEntry

logger = logging.getLogger(__name__)


class NamespaceService(Protocol):
    """Read-only listing of a hierarchical namespace."""

    def list_children(self, container_id: str) -> list[NamespaceEntry]:
        ...


@dataclass
class _PendingNode:
    id: str
    name: str
    path_ids: list[str]
    path_names: list[str]
    children: list["_PendingNode"] = field(default_factory=list)

    def child(self, entry: NamespaceEntry) -> "_PendingNode":
        node = _PendingNode(
            id=entry.id,
            name=entry.name,
            path_ids=[*self.path_ids, entry.id],
            path_names=[*self.path_names, entry.name],
        )
        self.children.append(node)
        return node


@dataclass
class _WorkItem:
    node: _PendingNode
    depth: int
    max_depth: int


class TreeBuilder:
    """
    Builds a :class:`FolderNode` forest from a namespace and a policy.

    Attributes:
        namespace: Listing collaborator (e.g. :class:`DriveNamespace`).
        policy: Ordered expansion rules; the first match wins.
        fetch_count: Number of listings issued by the last build.
    """

    def __init__(self, namespace: NamespaceService, policy: list[ExpansionRule]) -> None:
        """
        Initialize the builder.

        Args:
            namespace: Namespace listing collaborator.
            policy: Ordered expansion rules.
        """
        self.namespace = namespace
        self.policy = list(policy)
        self.fetch_count = 0

    def build(self, root_id: str = "root") -> list[FolderNode]:
        """
        Build the forest below ``root_id``.

        Args:
            root_id: Container id of the namespace root.

        Returns:
            list[FolderNode]: Top-level folders in listing order; empty when
            the root has no folders.

        Raises:
            TransportFailure: If any listing fails.
        """
        self.fetch_count = 0
        top_level: list[_PendingNode] = []
        worklist: deque[_WorkItem] = deque()

        for entry in self._list_containers(root_id):
            node = _PendingNode(
                id=entry.id,
                name=entry.name,
                path_ids=[entry.id],
                path_names=[entry.name],
            )
            rule = self._rule_for(entry.name)

            if rule is None:
                top_level.append(node)
                continue

            expansion_root = node
            if rule.anchor:
                anchor = self._find_anchor(entry.id, rule.anchor)
                if anchor is None:
                    logger.debug(
                        f"Anchor {rule.anchor!r} not found under {entry.name!r}; skipping folder"
                    )
                    continue
                expansion_root = node.child(anchor)

            top_level.append(node)
            if rule.max_depth > 0:
                worklist.append(_WorkItem(expansion_root, 0, rule.max_depth))

        while worklist:
            item = worklist.popleft()
            for entry in self._list_containers(item.node.id):
                child = item.node.child(entry)
                if item.depth + 1 < item.max_depth:
                    worklist.append(_WorkItem(child, item.depth + 1, item.max_depth))

        forest = [self._freeze(node) for node in top_level]
        logger.info(
            f"Built folder forest: {len(forest)} top-level folders, {self.fetch_count} listings"
        )
        return forest

    def _rule_for(self, folder_name: str) -> Optional[ExpansionRule]:
        """Return the first rule matching ``folder_name``."""
        for rule in self.policy:
            if rule.matches(folder_name):
                return rule
        return None

    def _find_anchor(self, container_id: str, anchor_name: str) -> Optional[NamespaceEntry]:
        wanted = anchor_name.strip().lower()
        for entry in self._list_containers(container_id):
            if entry.name.lower() == wanted:
                return entry
        return None

    def _list_containers(self, container_id: str) -> list[NamespaceEntry]:
        """
        List the child folders of a container.

        Non-container children (files) are ignored.

        Args:
            container_id: Container to list.

        Returns:
            list[NamespaceEntry]: Child folders in listing order.
        """
        self.fetch_count += 1
        entries = self.namespace.list_children(container_id)
        folders = [entry for entry in entries if entry.is_container]
        logger.debug(f"Listed {container_id}: {len(folders)} folders")
        return folders

    def _freeze(self, node: _PendingNode) -> FolderNode:
        return FolderNode(
            id=node.id,
            name=node.name,
            children=[self._freeze(child) for child in node.children],
            path_ids=node.path_ids,
            path_names=node.path_names,
        )
