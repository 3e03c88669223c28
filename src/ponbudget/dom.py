"""
DOM - Document Object Model for ponbudget

A PON distribution tree is a tree of Nodes. Each node owns an ordered list
of branches, and each branch is an ordered chain of child nodes hanging off
one output port.

Key invariant: the tree is owned and acyclic. Operations in tree.py and
core.py never mutate a Node they are given; they build new ones.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from .config import LossDefaults


class NodeKind(Enum):
    SOURCE = "SOURCE"
    FIBER_SPAN = "FIBER_SPAN"
    BALANCED_SPLITTER = "BALANCED_SPLITTER"
    UNBALANCED_SPLITTER = "UNBALANCED_SPLITTER"
    CONNECTOR = "CONNECTOR"
    SPLICE = "SPLICE"
    TERMINAL = "TERMINAL"

    @property
    def is_splitter(self) -> bool:
        return self in (NodeKind.BALANCED_SPLITTER, NodeKind.UNBALANCED_SPLITTER)


class LengthUnit(Enum):
    METERS = "m"
    KILOMETERS = "km"


@dataclass
class Node:
    """A component in the distribution tree."""
    id: str
    kind: NodeKind
    label: str = ""
    own_loss: float = 0.0  # dB, derived for fiber spans
    length_value: float | None = None
    length_unit: LengthUnit | None = None
    attenuation_coefficient: float | None = None  # dB/km, None -> configured default
    split_ratio: str | None = None
    drop_loss_override: float | None = None
    pass_loss_override: float | None = None
    vertical_offset: float = 0.0  # presentational only
    branches: list[list[Node]] = field(default_factory=list)
    power_in: float | None = None  # dBm, set by evaluate()
    power_out: float | None = None

    def depth_first(self) -> Iterator[Node]:
        """Traverse tree depth-first, yielding self then each branch in order."""
        yield self
        for branch in self.branches:
            for child in branch:
                yield from child.depth_first()

    def children(self) -> Iterator[Node]:
        """Direct children across all branches, branch order then chain order."""
        for branch in self.branches:
            yield from branch


@dataclass
class Project:
    """A named tree together with its source power and default losses."""
    root: Node
    source_power: float = 5.0  # dBm
    name: str = "Untitled PON Project"
    defaults: LossDefaults = field(default_factory=LossDefaults)
    version: str = "2.1"


def find_node(root: Node, node_id: str) -> Node | None:
    """Find a node by id anywhere in the tree."""
    for node in root.depth_first():
        if node.id == node_id:
            return node
    return None


def collect_ids(root: Node) -> set[str]:
    """All ids in the subtree rooted at root."""
    return {node.id for node in root.depth_first()}
