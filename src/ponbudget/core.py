"""
Power propagation engine for ponbudget.

Implements:
- Per-kind output power: P_out = P_in - loss (dB domain, no log conversion)
- Splitter fan-out: balanced ports share one power, unbalanced legs differ
- Series propagation along each branch: child i+1 is fed by child i

evaluate() is a pure function of (tree, input power, defaults). It builds a
fresh annotated copy on every call; there is no incremental recomputation.
"""

from __future__ import annotations

from dataclasses import replace

from .config import LossDefaults, get_config
from .dom import Node, NodeKind
from .tables import length_in_kilometers, unbalanced_split_losses


def fiber_loss(node: Node, defaults: LossDefaults) -> float:
    """
    Span loss recomputed from the node's current length fields.

    Independent of the stored own_loss, so evaluation stays consistent even
    if own_loss is stale.
    """
    coefficient = node.attenuation_coefficient
    if coefficient is None:
        coefficient = defaults.fiber_attenuation
    return length_in_kilometers(node.length_value, node.length_unit) * coefficient


def leg_losses(node: Node) -> tuple[float, float]:
    """(drop, pass) losses of an unbalanced splitter; overrides win over the table."""
    table_drop, table_pass = unbalanced_split_losses(node.split_ratio)
    drop_loss = node.drop_loss_override if node.drop_loss_override is not None else table_drop
    pass_loss = node.pass_loss_override if node.pass_loss_override is not None else table_pass
    return drop_loss, pass_loss


def output_power(node: Node, input_power: float, defaults: LossDefaults) -> float:
    if node.kind is NodeKind.FIBER_SPAN:
        return input_power - fiber_loss(node, defaults)
    return input_power - node.own_loss


def branch_input_powers(node: Node, input_power: float, power_out: float) -> list[float]:
    """
    Power fed into the first child of each branch.

    Unbalanced splitters feed each leg from the node's input power minus the
    leg loss and the splitter's own loss (branch 0 is drop, the rest pass).
    Everything else, balanced splitters included, feeds every branch with
    its own output power.
    """
    if node.kind is NodeKind.UNBALANCED_SPLITTER:
        drop_loss, pass_loss = leg_losses(node)
        return [
            input_power - (drop_loss if index == 0 else pass_loss) - node.own_loss
            for index in range(len(node.branches))
        ]
    return [power_out] * len(node.branches)


def evaluate_branch(branch: list[Node], input_power: float, defaults: LossDefaults) -> list[Node]:
    """Evaluate a chain in order, each child fed by its predecessor's output."""
    evaluated: list[Node] = []
    current = input_power
    for child in branch:
        annotated = evaluate(child, current, defaults)
        evaluated.append(annotated)
        current = annotated.power_out
    return evaluated


def evaluate(node: Node, input_power_dbm: float, defaults: LossDefaults | None = None) -> Node:
    """
    Return an annotated copy of the tree rooted at node.

    Every node in the copy carries power_in and power_out in dBm. The input
    tree is not modified.
    """
    if defaults is None:
        defaults = get_config().defaults

    power_out = output_power(node, input_power_dbm, defaults)

    # Leaf: nothing flows further
    if not node.branches:
        return replace(node, branches=[], power_in=input_power_dbm, power_out=power_out)

    feeds = branch_input_powers(node, input_power_dbm, power_out)
    branches = [
        evaluate_branch(branch, feed, defaults)
        for branch, feed in zip(node.branches, feeds, strict=True)
    ]
    return replace(node, branches=branches, power_in=input_power_dbm, power_out=power_out)
