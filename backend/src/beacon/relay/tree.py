"""Capacity-scored relay trees.

Each room with peer-assisted relay gets one tree rooted at the host's
socket. Viewers that can upload media become relay parents for other
viewers; the host's outbound fan-out is bounded by its own capacity.

Parent selection is a pure function over an immutable snapshot of the
tree (:func:`select_parent`); :class:`RelayTreeManager` applies the
proposed placement. Every operation either completes or leaves the tree
untouched, and nothing in here retries: callers fall back to a direct
host connection when no placement exists.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from app.models.enums import ReasonCode
from app.monitoring.metrics import relay_placements_total
from app.services.results import Outcome

logger = logging.getLogger(__name__)

MAX_TIER = 3
ROOT_CAPACITY = 10
DEFAULT_CAPACITY = 3

CELLULAR_CONNECTIONS = frozenset({"cellular", "2g", "slow-2g", "3g"})
WIRED_CONNECTIONS = frozenset({"ethernet", "wired"})
WIRELESS_CONNECTIONS = frozenset({"wifi", "4g"})
HIGH_BANDWIDTH_KBPS = 10_000
FAST_WIRELESS_KBPS = 5_000


def capacity_for(device_info: Mapping[str, Any] | None) -> int:
    """Number of children a node may serve, from its reported network class."""

    info = device_info or {}
    connection = str(info.get("connection") or "").strip().lower()
    try:
        bandwidth = float(info.get("bandwidth") or 0)
    except (TypeError, ValueError):
        bandwidth = 0.0

    if info.get("isMobile") or connection in CELLULAR_CONNECTIONS:
        return 0
    if connection in WIRED_CONNECTIONS or bandwidth > HIGH_BANDWIDTH_KBPS:
        return 10
    if connection in WIRELESS_CONNECTIONS:
        return 5 if bandwidth > FAST_WIRELESS_KBPS else 2
    return DEFAULT_CAPACITY


@dataclass(slots=True, frozen=True)
class NodeView:
    """Read-only projection of a node used for parent selection."""

    socket_id: str
    tier: int
    capacity: int
    child_count: int

    @property
    def free_slots(self) -> int:
        return self.capacity - self.child_count


def placement_score(node: NodeView) -> int:
    # Shallow tiers dominate; free slots only break ties within a tier.
    return (1000 - node.tier * 100) + node.free_slots * 10


def select_parent(
    nodes: Sequence[NodeView],
    *,
    max_tier: int = MAX_TIER,
    subtree_height: int = 0,
) -> NodeView | None:
    """Pick the best parent for a node carrying ``subtree_height`` levels below it.

    Only nodes with a free slot whose children would still sit within
    ``max_tier`` are eligible. The first node with the highest score wins.
    """

    best: NodeView | None = None
    best_score: int | None = None
    for node in nodes:
        if node.free_slots <= 0 or node.tier >= max_tier:
            continue
        if node.tier + 1 + subtree_height > max_tier:
            continue
        score = placement_score(node)
        if best_score is None or score > best_score:
            best, best_score = node, score
    return best


@dataclass(slots=True)
class TreeNode:
    socket_id: str
    capacity: int
    tier: int = 0
    parent: str | None = None
    children: list[str] = field(default_factory=list)

    @property
    def free_slots(self) -> int:
        return self.capacity - len(self.children)


@dataclass(slots=True, frozen=True)
class Placement:
    node_id: str
    parent_id: str
    tier: int
    capacity: int


@dataclass(slots=True, frozen=True)
class Reassignment:
    child_id: str
    new_parent_id: str
    tier: int


@dataclass(slots=True)
class RepairReport:
    """Result of removing a node and healing the tree around it."""

    removed: str
    assignments: list[Reassignment] = field(default_factory=list)
    fallbacks: list[str] = field(default_factory=list)


class RelayTree:
    """Nodes of one room keyed by socket id, in insertion order."""

    def __init__(self, root_id: str, *, root_capacity: int = ROOT_CAPACITY, max_tier: int = MAX_TIER) -> None:
        self.root = root_id
        self.max_tier = max_tier
        self.nodes: dict[str, TreeNode] = {root_id: TreeNode(socket_id=root_id, capacity=root_capacity)}

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def attached(self) -> set[str]:
        """Socket ids reachable from the root."""

        seen = {self.root}
        queue = deque([self.root])
        while queue:
            for child in self.nodes[queue.popleft()].children:
                if child not in seen:
                    seen.add(child)
                    queue.append(child)
        return seen

    def snapshot(self) -> tuple[NodeView, ...]:
        attached = self.attached()
        return tuple(
            NodeView(
                socket_id=node.socket_id,
                tier=node.tier,
                capacity=node.capacity,
                child_count=len(node.children),
            )
            for node in self.nodes.values()
            if node.socket_id in attached
        )

    def height(self, node_id: str) -> int:
        """Number of levels hanging below ``node_id`` (0 for a leaf)."""

        children = self.nodes[node_id].children
        if not children:
            return 0
        return 1 + max(self.height(child) for child in children)

    def attach(self, node_id: str, parent_id: str) -> int:
        parent = self.nodes[parent_id]
        node = self.nodes[node_id]
        node.parent = parent_id
        parent.children.append(node_id)
        self._retier(node_id, parent.tier + 1)
        return node.tier

    def detach(self, node_id: str) -> list[str]:
        """Drop ``node_id`` and return its children, now parentless."""

        node = self.nodes.pop(node_id)
        if node.parent is not None and node.parent in self.nodes:
            siblings = self.nodes[node.parent].children
            if node_id in siblings:
                siblings.remove(node_id)
        orphans = list(node.children)
        for orphan in orphans:
            self.nodes[orphan].parent = None
        return orphans

    def _retier(self, node_id: str, tier: int) -> None:
        node = self.nodes[node_id]
        node.tier = tier
        for child in node.children:
            self._retier(child, tier + 1)

    def to_public(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "nodes": [
                {
                    "id": node.socket_id,
                    "parent": node.parent,
                    "tier": node.tier,
                    "capacity": node.capacity,
                    "children": list(node.children),
                }
                for node in self.nodes.values()
            ],
        }


class RelayTreeManager:
    """Owns one :class:`RelayTree` per room."""

    def __init__(self, *, max_tier: int = MAX_TIER, root_capacity: int = ROOT_CAPACITY) -> None:
        self._max_tier = max_tier
        self._root_capacity = root_capacity
        self._trees: dict[str, RelayTree] = {}

    def has(self, room: str) -> bool:
        return room in self._trees

    def get(self, room: str) -> RelayTree | None:
        return self._trees.get(room)

    def create(self, room: str, root_id: str) -> RelayTree:
        tree = self._trees.get(room)
        if tree is None:
            tree = RelayTree(root_id, root_capacity=self._root_capacity, max_tier=self._max_tier)
            self._trees[room] = tree
            logger.info("Relay tree created for room %s rooted at %s", room, root_id)
        return tree

    def insert(
        self, room: str, node_id: str, device_info: Mapping[str, Any] | None = None
    ) -> Outcome[Placement]:
        tree = self._trees.get(room)
        if tree is None:
            return Outcome.failure(ReasonCode.NOT_FOUND)
        if node_id in tree:
            existing = tree.nodes[node_id]
            if existing.parent is None:
                return Outcome.failure(ReasonCode.ALREADY_EXISTS)
            return Outcome.success(
                Placement(node_id, existing.parent, existing.tier, existing.capacity)
            )

        capacity = capacity_for(device_info)
        parent = select_parent(tree.snapshot(), max_tier=tree.max_tier)
        if parent is None:
            relay_placements_total.labels("no_capacity").inc()
            logger.info("No relay capacity left in room %s for %s", room, node_id)
            return Outcome.failure(ReasonCode.NO_CAPACITY)

        tree.nodes[node_id] = TreeNode(socket_id=node_id, capacity=capacity)
        tier = tree.attach(node_id, parent.socket_id)
        relay_placements_total.labels("assigned").inc()
        logger.info(
            "Relay node %s placed under %s in room %s (tier %d, capacity %d)",
            node_id,
            parent.socket_id,
            room,
            tier,
            capacity,
        )
        return Outcome.success(Placement(node_id, parent.socket_id, tier, capacity))

    def remove(self, room: str, node_id: str) -> list[str]:
        """Delete a non-root node and return its orphaned children.

        The root can only go away with the whole tree (:meth:`destroy`).
        """

        tree = self._trees.get(room)
        if tree is None or node_id not in tree or node_id == tree.root:
            return []
        return tree.detach(node_id)

    def reassign_orphans(
        self, room: str, orphans: Iterable[str]
    ) -> tuple[list[Reassignment], list[str]]:
        """Reattach each orphan, in order, against the current tree.

        Orphans keep their own subtrees, so a parent is only eligible when
        the whole subtree still fits under ``max_tier``. Orphans that
        cannot be placed are returned untouched in the second list.
        """

        tree = self._trees.get(room)
        assignments: list[Reassignment] = []
        unassigned: list[str] = []
        if tree is None:
            return assignments, list(orphans)

        for orphan in orphans:
            node = tree.nodes.get(orphan)
            if node is None:
                continue
            if node.parent is not None:
                continue
            parent = select_parent(
                tree.snapshot(),
                max_tier=tree.max_tier,
                subtree_height=tree.height(orphan),
            )
            if parent is None:
                unassigned.append(orphan)
                continue
            tier = tree.attach(orphan, parent.socket_id)
            assignments.append(Reassignment(orphan, parent.socket_id, tier))
        if assignments:
            relay_placements_total.labels("reassigned").inc(len(assignments))
        return assignments, unassigned

    def repair(self, room: str, node_id: str) -> RepairReport:
        """Remove ``node_id`` and heal the tree.

        Orphans that cannot be reattached are pruned and fall back to a
        direct host connection for good; their own children are queued
        as orphans in the same pass.
        """

        report = RepairReport(removed=node_id)
        queue = deque(self.remove(room, node_id))
        while queue:
            orphan = queue.popleft()
            assignments, unassigned = self.reassign_orphans(room, [orphan])
            report.assignments.extend(assignments)
            for stranded in unassigned:
                report.fallbacks.append(stranded)
                queue.extend(self.remove(room, stranded))
        if report.fallbacks:
            relay_placements_total.labels("fallback").inc(len(report.fallbacks))
            logger.info(
                "Room %s: %d relay node(s) fell back to a direct host connection",
                room,
                len(report.fallbacks),
            )
        return report

    def destroy(self, room: str) -> list[str]:
        """Drop the room's tree; returns the non-root members it held."""

        tree = self._trees.pop(room, None)
        if tree is None:
            return []
        logger.info("Relay tree destroyed for room %s", room)
        return [node_id for node_id in tree.nodes if node_id != tree.root]
