"""
Tree mutation layer.

Every operation is a pure transform: it returns a new root and leaves the
argument untouched, so a caller holding the previous tree can still diff
against it. Untouched subtrees are shared between the old and new tree.

Stale references (unknown ids, out-of-range branch indexes) are structural
no-ops: the input tree is returned as is.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any

from .config import LossDefaults, get_config
from .core import fiber_loss
from .dom import LengthUnit, Node, NodeKind, collect_ids
from .tables import (
    DEFAULT_BALANCED_RATIO,
    DEFAULT_UNBALANCED_RATIO,
    UNBALANCED_PORT_COUNT,
    UNBALANCED_SPLIT_LOSSES,
    balanced_split_loss,
    convert_length,
    port_count_of,
    unbalanced_split_losses,
)

logger = logging.getLogger(__name__)

ROOT_ID = "root"

DEFAULT_LABELS: dict[NodeKind, str] = {
    NodeKind.SOURCE: "OLT",
    NodeKind.FIBER_SPAN: "Fiber",
    NodeKind.BALANCED_SPLITTER: "Splitter",
    NodeKind.UNBALANCED_SPLITTER: "Unbalanced Splitter",
    NodeKind.CONNECTOR: "Connector",
    NodeKind.SPLICE: "Splice",
    NodeKind.TERMINAL: "ONU",
}

# Fields owned by the structure or the engine, never merged by update()
_PROTECTED_FIELDS = frozenset({"id", "kind", "branches", "power_in", "power_out"})
_FIBER_FIELDS = frozenset({"length_value", "length_unit", "attenuation_coefficient"})


def new_node_id() -> str:
    """Mint a fresh opaque node id."""
    return uuid.uuid4().hex[:12]


def _defaults_or_config(defaults: LossDefaults | None) -> LossDefaults:
    return defaults if defaults is not None else get_config().defaults


def resize_branches(branches: list[list[Node]], count: int) -> list[list[Node]]:
    """Keep branches by index, pad with empty lists, drop anything past count."""
    resized = [list(branch) for branch in branches[:count]]
    resized.extend([] for _ in range(count - len(resized)))
    return resized


def default_own_loss(
    kind: NodeKind,
    defaults: LossDefaults,
    split_ratio: str | None = None,
) -> float:
    """Loss a non-fiber node of kind gets when none is given explicitly."""
    if kind is NodeKind.BALANCED_SPLITTER:
        return balanced_split_loss(split_ratio) + defaults.splitter_extra_loss
    if kind is NodeKind.UNBALANCED_SPLITTER:
        return defaults.splitter_extra_loss
    if kind is NodeKind.CONNECTOR:
        return defaults.connector_loss
    if kind is NodeKind.SPLICE:
        return defaults.splice_loss
    if kind is NodeKind.TERMINAL:
        return defaults.terminal_loss
    return 0.0


def create_node(
    kind: NodeKind,
    defaults: LossDefaults | None = None,
    label: str | None = None,
) -> Node:
    """Create a fresh leaf node of the given kind with default losses applied."""
    defaults = _defaults_or_config(defaults)
    node_id = new_node_id()
    label = label if label is not None else DEFAULT_LABELS[kind]

    if kind is NodeKind.SOURCE:
        return Node(id=node_id, kind=kind, label=label, branches=[[]])

    if kind is NodeKind.FIBER_SPAN:
        node = Node(
            id=node_id,
            kind=kind,
            label=label,
            length_value=1.0,
            length_unit=LengthUnit.KILOMETERS,
            attenuation_coefficient=defaults.fiber_attenuation,
        )
        node.own_loss = fiber_loss(node, defaults)
        return node

    if kind is NodeKind.BALANCED_SPLITTER:
        return Node(
            id=node_id,
            kind=kind,
            label=label,
            own_loss=default_own_loss(kind, defaults, DEFAULT_BALANCED_RATIO),
            split_ratio=DEFAULT_BALANCED_RATIO,
            branches=[[] for _ in range(port_count_of(DEFAULT_BALANCED_RATIO) or 0)],
        )

    if kind is NodeKind.UNBALANCED_SPLITTER:
        drop_loss, pass_loss = unbalanced_split_losses(DEFAULT_UNBALANCED_RATIO)
        return Node(
            id=node_id,
            kind=kind,
            label=label,
            own_loss=default_own_loss(kind, defaults),
            split_ratio=DEFAULT_UNBALANCED_RATIO,
            drop_loss_override=drop_loss,
            pass_loss_override=pass_loss,
            branches=[[] for _ in range(UNBALANCED_PORT_COUNT)],
        )

    return Node(id=node_id, kind=kind, label=label, own_loss=default_own_loss(kind, defaults))


def create_root(label: str | None = None) -> Node:
    """The single source node a new project starts from."""
    root = create_node(NodeKind.SOURCE, label=label)
    return replace(root, id=ROOT_ID)


def map_node(root: Node, node_id: str, updater: Callable[[Node], Node]) -> Node:
    """
    Replace the first node matching node_id with updater(node).

    Recursive descent into every branch of every node. Subtrees without the
    target are returned as the same objects.
    """
    if root.id == node_id:
        return updater(root)
    if not root.branches:
        return root

    changed = False
    new_branches: list[list[Node]] = []
    for branch in root.branches:
        new_branch: list[Node] = []
        for child in branch:
            if changed:
                new_branch.append(child)
                continue
            new_child = map_node(child, node_id, updater)
            if new_child is not child:
                changed = True
            new_branch.append(new_child)
        new_branches.append(new_branch)

    if not changed:
        return root
    return replace(root, branches=new_branches)


def insert(
    root: Node,
    parent_id: str,
    branch_index: int,
    new_node: Node,
    at_index: int | None = None,
) -> Node:
    """
    Insert new_node into parent.branches[branch_index].

    Appends when at_index is None or past the end. A splitter inserted in
    front of existing content takes that downstream content as its first
    branch, so the rest of the chain is re-routed through its first output.
    """
    if at_index is not None and at_index < 0:
        logger.debug("insert: negative position %d under %s ignored", at_index, parent_id)
        return root
    if collect_ids(new_node) & collect_ids(root):
        logger.debug("insert: node %s already present in tree", new_node.id)
        return root

    def _insert(parent: Node) -> Node:
        if not 0 <= branch_index < len(parent.branches):
            logger.debug("insert: %s has no branch %d", parent.id, branch_index)
            return parent

        branch = list(parent.branches[branch_index])
        if at_index is None or at_index >= len(branch):
            branch.append(new_node)
        elif new_node.kind.is_splitter and new_node.branches:
            downstream = branch[at_index:]
            inner = [list(b) for b in new_node.branches]
            inner[0] = inner[0] + downstream
            branch = branch[:at_index] + [replace(new_node, branches=inner)]
        else:
            branch.insert(at_index, new_node)

        branches = list(parent.branches)
        branches[branch_index] = branch
        return replace(parent, branches=branches)

    result = map_node(root, parent_id, _insert)
    if result is root:
        logger.debug("insert: parent %s not found", parent_id)
    return result


def remove(root: Node, node_id: str) -> Node:
    """
    Remove the node with node_id from wherever it hangs.

    A removed splitter's first branch is spliced into the gap it leaves;
    its other branches are dropped. The root itself is never removed.
    """
    def _remove(node: Node) -> Node:
        if not node.branches:
            return node
        for b_idx, branch in enumerate(node.branches):
            for c_idx, child in enumerate(branch):
                if child.id == node_id:
                    inherited: list[Node] = []
                    if child.kind.is_splitter and child.branches:
                        inherited = child.branches[0]
                        dropped = sum(len(b) for b in child.branches[1:])
                        if dropped:
                            logger.debug(
                                "remove: discarding %d nodes on secondary branches of %s",
                                dropped, node_id,
                            )
                    new_branch = branch[:c_idx] + list(inherited) + branch[c_idx + 1:]
                    branches = list(node.branches)
                    branches[b_idx] = new_branch
                    return replace(node, branches=branches)

                new_child = _remove(child)
                if new_child is not child:
                    new_branch = list(branch)
                    new_branch[c_idx] = new_child
                    branches = list(node.branches)
                    branches[b_idx] = new_branch
                    return replace(node, branches=branches)
        return node

    result = _remove(root)
    if result is root:
        logger.debug("remove: node %s not found", node_id)
    return result


def _apply_changes(node: Node, changes: Mapping[str, Any], defaults: LossDefaults) -> Node:
    """Merge changes into node and recompute the fields derived from them."""
    fields = dict(changes)

    if node.kind is NodeKind.FIBER_SPAN:
        # Fiber loss is always derived from length and coefficient
        fields.pop("own_loss", None)

    new_unit = fields.get("length_unit")
    if new_unit is not None:
        new_unit = fields["length_unit"] = LengthUnit(new_unit)
    if new_unit is not None and new_unit is not node.length_unit and "length_value" not in fields:
        fields["length_value"] = convert_length(node.length_value, node.length_unit, new_unit)

    updated = replace(node, **fields)

    if updated.kind is NodeKind.FIBER_SPAN and _FIBER_FIELDS & changes.keys():
        updated.own_loss = fiber_loss(updated, defaults)

    if "split_ratio" in changes:
        ratio = updated.split_ratio
        if updated.kind is NodeKind.BALANCED_SPLITTER:
            updated.own_loss = default_own_loss(updated.kind, defaults, ratio)
            ports = port_count_of(ratio)
            if ports is not None and ports != len(node.branches):
                updated.branches = resize_branches(node.branches, ports)
        elif updated.kind is NodeKind.UNBALANCED_SPLITTER:
            drop_loss, pass_loss = unbalanced_split_losses(ratio)
            known = ratio in UNBALANCED_SPLIT_LOSSES
            updated.drop_loss_override = drop_loss if known else None
            updated.pass_loss_override = pass_loss if known else None

    return updated


def update(
    root: Node,
    node_id: str,
    changes: Mapping[str, Any],
    defaults: LossDefaults | None = None,
) -> Node:
    """
    Merge field changes into the node with node_id.

    Derived fields follow in the same step: a unit change rewrites the
    length value, fiber loss is recomputed from length and coefficient,
    a balanced ratio change sets loss and resizes branches, an unbalanced
    ratio change resets the leg overrides to table values.

    A unit change converts the stored length unless the same update also
    sets length_value, which is then taken as already in the new unit.
    Unit values may be given as LengthUnit or as "m"/"km".
    """
    defaults = _defaults_or_config(defaults)

    def _update(node: Node) -> Node:
        protected = _PROTECTED_FIELDS & changes.keys()
        if protected:
            raise ValueError(f"Fields cannot be updated directly: {', '.join(sorted(protected))}")
        return _apply_changes(node, changes, defaults)

    result = map_node(root, node_id, _update)
    if result is root:
        logger.debug("update: node %s not found", node_id)
    return result


def convert_splitter(root: Node, node_id: str, defaults: LossDefaults | None = None) -> Node:
    """
    Swap a splitter between its balanced and unbalanced variants in place.

    The ratio resets to the variant's default and branches are resized to
    two ports, keeping the first two branches.
    """
    defaults = _defaults_or_config(defaults)

    def _convert(node: Node) -> Node:
        if node.kind is NodeKind.BALANCED_SPLITTER:
            drop_loss, pass_loss = unbalanced_split_losses(DEFAULT_UNBALANCED_RATIO)
            return replace(
                node,
                kind=NodeKind.UNBALANCED_SPLITTER,
                split_ratio=DEFAULT_UNBALANCED_RATIO,
                own_loss=defaults.splitter_extra_loss,
                drop_loss_override=drop_loss,
                pass_loss_override=pass_loss,
                branches=resize_branches(node.branches, UNBALANCED_PORT_COUNT),
            )
        if node.kind is NodeKind.UNBALANCED_SPLITTER:
            return replace(
                node,
                kind=NodeKind.BALANCED_SPLITTER,
                split_ratio=DEFAULT_BALANCED_RATIO,
                own_loss=default_own_loss(NodeKind.BALANCED_SPLITTER, defaults, DEFAULT_BALANCED_RATIO),
                drop_loss_override=None,
                pass_loss_override=None,
                branches=resize_branches(node.branches, port_count_of(DEFAULT_BALANCED_RATIO) or 0),
            )
        logger.debug("convert_splitter: %s is a %s, not a splitter", node.id, node.kind.value)
        return node

    return map_node(root, node_id, _convert)
