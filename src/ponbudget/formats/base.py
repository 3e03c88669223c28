"""
Base report format interface and registry.

Each format strategy renders an evaluated project in one output format.
The registry manages lookup by name or file extension.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..aggregate import TerminalRecord, collect_terminals, summarize_loss_by_kind
from ..core import evaluate
from ..dom import Node, NodeKind, Project


@dataclass
class EvaluatedProject:
    """A project together with the views every report needs."""
    project: Project
    annotated: Node
    terminals: list[TerminalRecord]
    loss_summary: dict[NodeKind, float]


def evaluate_project(project: Project) -> EvaluatedProject:
    """Run the engine over a project and collect its summaries."""
    annotated = evaluate(project.root, project.source_power, project.defaults)
    return EvaluatedProject(
        project=project,
        annotated=annotated,
        terminals=collect_terminals(annotated),
        loss_summary=summarize_loss_by_kind(annotated),
    )


class ReportFormat(ABC):
    """Base class for report renderers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Format name (for --type selection)."""
        ...

    @property
    @abstractmethod
    def extensions(self) -> list[str]:
        """File extensions this format writes (e.g., ['.txt'])."""
        ...

    @abstractmethod
    def render(self, evaluated: EvaluatedProject) -> str:
        """Render an evaluated project to text."""
        ...


class FormatRegistry:
    """Registry of report formats."""

    def __init__(self):
        self._formats: list[ReportFormat] = []
        self._by_extension: dict[str, ReportFormat] = {}
        self._by_name: dict[str, ReportFormat] = {}

    def register(self, fmt: ReportFormat) -> None:
        """Register a report format."""
        self._formats.append(fmt)
        self._by_name[fmt.name] = fmt
        for ext in fmt.extensions:
            # First registered wins for extension conflicts
            if ext not in self._by_extension:
                self._by_extension[ext] = fmt

    def get_by_name(self, name: str) -> ReportFormat | None:
        """Get format by name (for --type override)."""
        return self._by_name.get(name)

    def get_by_extension(self, ext: str) -> ReportFormat | None:
        """Get format by file extension."""
        # Normalize extension
        if not ext.startswith('.'):
            ext = '.' + ext
        return self._by_extension.get(ext.lower())

    @property
    def names(self) -> list[str]:
        return [fmt.name for fmt in self._formats]

    @property
    def formats(self) -> list[ReportFormat]:
        """List all registered formats."""
        return list(self._formats)


# Global registry instance
registry = FormatRegistry()
