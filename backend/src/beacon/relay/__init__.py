from .tree import (
    MAX_TIER,
    ROOT_CAPACITY,
    NodeView,
    Placement,
    Reassignment,
    RelayTree,
    RelayTreeManager,
    RepairReport,
    capacity_for,
    placement_score,
    select_parent,
)

__all__ = [
    "MAX_TIER",
    "ROOT_CAPACITY",
    "NodeView",
    "Placement",
    "Reassignment",
    "RelayTree",
    "RelayTreeManager",
    "RepairReport",
    "capacity_for",
    "placement_score",
    "select_parent",
]
