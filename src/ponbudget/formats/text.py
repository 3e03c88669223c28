"""
Text report format.

Renders the evaluated topology as an ASCII tree, one line per component
with its output power, followed by the terminal signal table and the loss
breakdown by component kind.
"""

from __future__ import annotations

from ..aggregate import power_status, total_loss_by_kind, worst_terminal
from ..config import get_config
from ..dom import Node, NodeKind
from .base import EvaluatedProject, ReportFormat, registry

KIND_TITLES: dict[NodeKind, str] = {
    NodeKind.FIBER_SPAN: "Fiber",
    NodeKind.BALANCED_SPLITTER: "Balanced splitter",
    NodeKind.UNBALANCED_SPLITTER: "Unbalanced splitter",
    NodeKind.CONNECTOR: "Connector",
    NodeKind.SPLICE: "Splice",
}


def _tree_tag(node: Node, branch_index: int) -> str:
    """Port tag shown in front of children, like [P2] or [DROP]."""
    if node.kind is NodeKind.UNBALANCED_SPLITTER:
        return "DROP" if branch_index == 0 else "PASS"
    if node.kind is NodeKind.BALANCED_SPLITTER:
        return f"P{branch_index + 1}"
    return ""


def describe(node: Node) -> str:
    """One-line summary of a component."""
    text = node.label or node.kind.value
    if node.kind is NodeKind.FIBER_SPAN and node.length_value is not None:
        unit = node.length_unit.value if node.length_unit else "km"
        text += f" ({node.length_value:g}{unit})"
    elif node.kind.is_splitter and node.split_ratio:
        text += f" ({node.split_ratio})"
    if node.power_out is not None:
        text += f" {node.power_out:.2f} dBm"
    return text


def render_tree(node: Node, prefix: str = "", is_last: bool = True, tag: str = "") -> list[str]:
    """
    ASCII tree lines for the subtree at node.

    Children of every branch are listed together under their parent, each
    tagged with the port it hangs from.
    """
    connector = "└─" if is_last else "├─"
    label = f"[{tag}] " if tag else ""
    lines = [f"{prefix}{connector} {label}{describe(node)}"]

    child_prefix = prefix + ("   " if is_last else "│  ")
    children = [
        (child, _tree_tag(node, b_idx))
        for b_idx, branch in enumerate(node.branches)
        for child in branch
    ]
    for idx, (child, child_tag) in enumerate(children):
        lines.extend(render_tree(child, child_prefix, idx == len(children) - 1, child_tag))
    return lines


class TextReportFormat(ReportFormat):
    """Human-readable link budget report."""

    @property
    def name(self) -> str:
        return "text"

    @property
    def extensions(self) -> list[str]:
        return [".txt", ".text"]

    def render(self, evaluated: EvaluatedProject) -> str:
        report = get_config().report
        project = evaluated.project
        lines = [
            project.name,
            f"Source power: {project.source_power:.1f} dBm",
            f"Terminals: {len(evaluated.terminals)}",
        ]

        worst = worst_terminal(evaluated.terminals)
        if worst is not None:
            status = power_status(worst.power_out, report)
            lines.append(f"Worst signal: {worst.power_out:.2f} dBm at {worst.name} ({status})")

        lines.append("")
        lines.append("Topology")
        lines.extend(render_tree(evaluated.annotated))

        if evaluated.terminals:
            lines.append("")
            lines.append("Terminals")
            width = max(len(t.name) for t in evaluated.terminals)
            for terminal in evaluated.terminals:
                status = power_status(terminal.power_out, report)
                lines.append(
                    f"  {terminal.name:<{width}}  {terminal.power_out:>8.2f} dBm  {status:<8}  {terminal.path}"
                )

        if evaluated.loss_summary:
            lines.append("")
            lines.append("Loss by component")
            for kind, loss in evaluated.loss_summary.items():
                lines.append(f"  {KIND_TITLES.get(kind, kind.value):<20} {loss:>8.2f} dB")
            lines.append(f"  {'Total':<20} {total_loss_by_kind(evaluated.loss_summary):>8.2f} dB")

        return "\n".join(lines)


registry.register(TextReportFormat())
