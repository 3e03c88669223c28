"""
Terminal aggregation over an evaluated tree.

Walks the annotated tree produced by core.evaluate() and flattens it into
the summaries reports consume: the terminal list with hierarchical path
labels, and total loss per component kind.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .config import ReportConfig, get_config
from .dom import Node, NodeKind

_UNBALANCED_LEG_LABELS = ("Drop", "Pass")

STATUS_OK = "ok"
STATUS_WARNING = "warning"
STATUS_CRITICAL = "critical"


@dataclass
class TerminalRecord:
    """One terminal with its received power and the splitter ports leading to it."""
    node_id: str
    name: str
    power_out: float
    path: str


def branch_label(node: Node, branch_index: int) -> str | None:
    """Port label for a splitter branch, None for nodes that do not split."""
    if node.kind is NodeKind.BALANCED_SPLITTER:
        return f"P{branch_index + 1}"
    if node.kind is NodeKind.UNBALANCED_SPLITTER:
        return _UNBALANCED_LEG_LABELS[min(branch_index, 1)]
    return None


def collect_terminals(
    annotated_root: Node,
    separator: str | None = None,
    main_line_label: str | None = None,
) -> list[TerminalRecord]:
    """
    Flat list of terminals, depth-first in branch order then chain order.

    path joins the port labels crossed from the root down, e.g. "Pass > P3".
    A terminal reached without crossing any splitter gets main_line_label.
    """
    cfg = get_config().report
    if separator is None:
        separator = cfg.path_separator
    if main_line_label is None:
        main_line_label = cfg.main_line_label

    records: list[TerminalRecord] = []

    def walk(node: Node, labels: tuple[str, ...]) -> None:
        if node.kind is NodeKind.TERMINAL:
            records.append(TerminalRecord(
                node_id=node.id,
                name=node.label,
                power_out=node.power_out if node.power_out is not None else 0.0,
                path=separator.join(labels) if labels else main_line_label,
            ))
        for b_idx, branch in enumerate(node.branches):
            label = branch_label(node, b_idx)
            branch_labels = labels + (label,) if label is not None else labels
            for child in branch:
                walk(child, branch_labels)

    walk(annotated_root, ())
    return records


def summarize_loss_by_kind(annotated_root: Node) -> dict[NodeKind, float]:
    """Total dB dropped across each component kind (sources and terminals excluded)."""
    summary: dict[NodeKind, float] = {}
    for node in annotated_root.depth_first():
        if node.kind in (NodeKind.SOURCE, NodeKind.TERMINAL):
            continue
        if node.power_in is None or node.power_out is None:
            continue
        summary[node.kind] = summary.get(node.kind, 0.0) + (node.power_in - node.power_out)
    return summary


def total_loss_by_kind(summary: dict[NodeKind, float]) -> float:
    return sum(summary.values())


def power_status(power_dbm: float, report: ReportConfig | None = None) -> str:
    """Classify received power against the warning and critical thresholds."""
    if report is None:
        report = get_config().report
    if power_dbm < report.critical_below:
        return STATUS_CRITICAL
    if power_dbm < report.warning_below:
        return STATUS_WARNING
    return STATUS_OK


def worst_terminal(records: Iterable[TerminalRecord]) -> TerminalRecord | None:
    """The terminal receiving the least power, or None if there are none."""
    return min(records, key=lambda r: r.power_out, default=None)
