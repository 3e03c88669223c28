"""
Edit session: one logical editor applying mutations to a project.

Each mutation replaces the project's root with the tree returned by the
pure operations in tree.py, records the previous state for undo, and the
annotated views are recomputed from scratch on access.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from . import tree
from .aggregate import TerminalRecord, collect_terminals, summarize_loss_by_kind
from .config import LossDefaults, get_config
from .core import evaluate
from .dom import Node, NodeKind, Project

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Undoable state: the tree and the power feeding it."""
    root: Node
    source_power: float


class EditSession:
    """Serializes edits on a project and keeps bounded undo/redo history."""

    def __init__(self, project: Project | None = None, history_limit: int | None = None):
        if project is None:
            project = Project(root=tree.create_root(), defaults=replace(get_config().defaults))
        self.project = project
        self.history_limit = history_limit if history_limit is not None else get_config().history.limit
        self._past: list[Snapshot] = []
        self._future: list[Snapshot] = []

    @property
    def root(self) -> Node:
        return self.project.root

    @property
    def defaults(self) -> LossDefaults:
        return self.project.defaults

    def _snapshot(self) -> Snapshot:
        return Snapshot(root=self.project.root, source_power=self.project.source_power)

    def _restore(self, snapshot: Snapshot) -> None:
        self.project.root = snapshot.root
        self.project.source_power = snapshot.source_power

    def _commit(self, new_root: Node, source_power: float | None = None) -> bool:
        """Record the current state and switch to the new one. False if nothing changed."""
        if source_power is None:
            source_power = self.project.source_power
        if new_root is self.project.root and source_power == self.project.source_power:
            return False

        self._past.append(self._snapshot())
        if len(self._past) > self.history_limit:
            self._past = self._past[-self.history_limit:]
        self._future.clear()

        self.project.root = new_root
        self.project.source_power = source_power
        return True

    # --- mutations ---

    def add(
        self,
        kind: NodeKind,
        parent_id: str,
        branch_index: int,
        at_index: int | None = None,
        label: str | None = None,
    ) -> str | None:
        """Create a node of kind and insert it. Returns its id, or None on a no-op."""
        if kind is NodeKind.SOURCE:
            raise ValueError("A project has exactly one source")
        if label is None and kind is NodeKind.TERMINAL:
            label = f"ONU {len(self.terminals) + 1}"

        node = tree.create_node(kind, self.defaults, label=label)
        if not self._commit(tree.insert(self.root, parent_id, branch_index, node, at_index)):
            logger.debug("add: %s under %s[%d] was a no-op", kind.value, parent_id, branch_index)
            return None
        return node.id

    def remove(self, node_id: str) -> bool:
        return self._commit(tree.remove(self.root, node_id))

    def update(self, node_id: str, changes: Mapping[str, Any] | None = None, **fields: Any) -> bool:
        merged = {**(changes or {}), **fields}
        return self._commit(tree.update(self.root, node_id, merged, self.defaults))

    def convert_splitter(self, node_id: str) -> bool:
        return self._commit(tree.convert_splitter(self.root, node_id, self.defaults))

    def set_source_power(self, power_dbm: float) -> bool:
        return self._commit(self.root, source_power=power_dbm)

    def set_defaults(self, defaults: LossDefaults) -> None:
        """Replace the default losses used for new nodes and derived fields.

        Existing nodes keep their losses; only later creations and
        recomputations see the new values.
        """
        self.project.defaults = defaults

    # --- history ---

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def undo(self) -> bool:
        if not self._past:
            return False
        self._future.insert(0, self._snapshot())
        self._restore(self._past.pop())
        return True

    def redo(self) -> bool:
        if not self._future:
            return False
        self._past.append(self._snapshot())
        self._restore(self._future.pop(0))
        return True

    # --- evaluated views ---

    @property
    def annotated(self) -> Node:
        return evaluate(self.project.root, self.project.source_power, self.defaults)

    @property
    def terminals(self) -> list[TerminalRecord]:
        return collect_terminals(self.annotated)

    @property
    def loss_summary(self) -> dict[NodeKind, float]:
        return summarize_loss_by_kind(self.annotated)
