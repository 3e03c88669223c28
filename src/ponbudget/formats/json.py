"""
JSON project file format.

Reads and writes the project record:

    {"version": "2.1", "projectName": ..., "sourcePower": ...,
     "rootNode": {...}, "globalDefaults": {...}}

Files written by earlier releases of the PON editor (oltPower, OLT/ONU node types,
name/loss/length/unit keys) are accepted as well. Loading fails closed:
any malformed input raises ProjectFormatError and nothing is returned.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import replace
from typing import Any

from ..config import LossDefaults, get_config
from ..core import fiber_loss
from ..dom import LengthUnit, Node, NodeKind, Project
from ..tables import UNBALANCED_PORT_COUNT, port_count_of
from ..tree import default_own_loss
from .base import EvaluatedProject, ReportFormat, registry

logger = logging.getLogger(__name__)

FORMAT_VERSION = "2.1"

LEGACY_KINDS: dict[str, NodeKind] = {
    "OLT": NodeKind.SOURCE,
    "FIBER": NodeKind.FIBER_SPAN,
    "SPLITTER": NodeKind.BALANCED_SPLITTER,
    "SPLITTER_UNBALANCED": NodeKind.UNBALANCED_SPLITTER,
    "CONNECTOR": NodeKind.CONNECTOR,
    "SPLICE": NodeKind.SPLICE,
    "ONU": NodeKind.TERMINAL,
}

# current key -> legacy key
_NODE_ALIASES = {
    "label": "name",
    "ownLoss": "loss",
    "lengthValue": "length",
    "lengthUnit": "unit",
    "splitRatio": "splitterRatio",
    "unbalancedDropLossOverride": "unbalancedDropLoss",
    "unbalancedPassLossOverride": "unbalancedPassLoss",
    "verticalOffset": "offsetY",
}

_DEFAULTS_KEYS = {
    "fiber_attenuation": ("fiberAttenuation", "attenuation"),
    "connector_loss": ("connectorLoss", "connector"),
    "splice_loss": ("spliceLoss", "splice"),
    "terminal_loss": ("terminalLoss", "onu"),
    "splitter_extra_loss": ("splitterExtraLoss", "extraLossSplitter"),
}


class ProjectFormatError(ValueError):
    """Raised when a project file cannot be loaded."""


def _lookup(data: dict, key: str, aliases: dict[str, str] = _NODE_ALIASES) -> Any:
    if key in data:
        return data[key]
    legacy = aliases.get(key)
    if legacy is not None:
        return data.get(legacy)
    return None


def _number(value: Any, what: str, optional: bool = True) -> float | None:
    if value is None:
        if optional:
            return None
        raise ProjectFormatError(f"Missing numeric value for {what}")
    # bool is an int subclass but never a valid measurement
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProjectFormatError(f"Expected a number for {what}, got {value!r}")
    if not math.isfinite(value):
        raise ProjectFormatError(f"Expected a finite number for {what}, got {value!r}")
    return float(value)


def _kind(data: dict) -> NodeKind:
    raw = data.get("kind", data.get("type"))
    if not isinstance(raw, str):
        raise ProjectFormatError(f"Node {data.get('id')!r} has no kind")
    if raw in LEGACY_KINDS:
        return LEGACY_KINDS[raw]
    try:
        return NodeKind(raw)
    except ValueError as e:
        raise ProjectFormatError(f"Unknown node kind {raw!r}") from e


def _unit(value: Any, node_id: str) -> LengthUnit | None:
    if value is None:
        return None
    try:
        return LengthUnit(value)
    except ValueError as e:
        raise ProjectFormatError(f"Unknown length unit {value!r} on node {node_id!r}") from e


def _expected_branch_count(kind: NodeKind, split_ratio: str | None) -> int | None:
    """Branch count the kind requires, None when it cannot be derived."""
    if kind is NodeKind.SOURCE:
        return 1
    if kind is NodeKind.UNBALANCED_SPLITTER:
        return UNBALANCED_PORT_COUNT
    if kind is NodeKind.BALANCED_SPLITTER:
        return port_count_of(split_ratio)
    return 0


def node_from_dict(data: Any, defaults: LossDefaults, seen: set[str] | None = None) -> Node:
    """Build a Node tree from its JSON representation, validating as it goes."""
    if seen is None:
        seen = set()
    if not isinstance(data, dict):
        raise ProjectFormatError(f"Expected a node object, got {type(data).__name__}")

    node_id = data.get("id")
    if not isinstance(node_id, str) or not node_id:
        raise ProjectFormatError("Node without a string id")
    if node_id in seen:
        raise ProjectFormatError(f"Duplicate node id {node_id!r}")
    seen.add(node_id)

    kind = _kind(data)
    label = _lookup(data, "label")
    split_ratio = _lookup(data, "splitRatio")
    if split_ratio is not None and not isinstance(split_ratio, str):
        raise ProjectFormatError(f"Split ratio of {node_id!r} must be a string")

    raw_branches = data.get("branches")
    expected = _expected_branch_count(kind, split_ratio)
    if raw_branches is None:
        branches: list[list[Node]] = [[] for _ in range(expected or 0)]
    else:
        if not isinstance(raw_branches, list) or not all(isinstance(b, list) for b in raw_branches):
            raise ProjectFormatError(f"Branches of {node_id!r} must be a list of lists")
        if kind in (NodeKind.CONNECTOR, NodeKind.SPLICE, NodeKind.FIBER_SPAN, NodeKind.TERMINAL):
            if any(raw_branches):
                raise ProjectFormatError(f"{kind.value} node {node_id!r} cannot have children")
            raw_branches = []
        elif expected is not None and len(raw_branches) != expected:
            raise ProjectFormatError(
                f"{kind.value} node {node_id!r} needs {expected} branches, got {len(raw_branches)}"
            )
        branches = [[node_from_dict(child, defaults, seen) for child in branch] for branch in raw_branches]

    node = Node(
        id=node_id,
        kind=kind,
        label=str(label) if label is not None else "",
        own_loss=_number(_lookup(data, "ownLoss"), f"loss of {node_id!r}") or 0.0,
        length_value=_number(_lookup(data, "lengthValue"), f"length of {node_id!r}"),
        length_unit=_unit(_lookup(data, "lengthUnit"), node_id),
        attenuation_coefficient=_number(data.get("attenuationCoefficient"), f"attenuation of {node_id!r}"),
        split_ratio=split_ratio,
        drop_loss_override=_number(_lookup(data, "unbalancedDropLossOverride"), f"drop loss of {node_id!r}"),
        pass_loss_override=_number(_lookup(data, "unbalancedPassLossOverride"), f"pass loss of {node_id!r}"),
        vertical_offset=_number(_lookup(data, "verticalOffset"), f"offset of {node_id!r}") or 0.0,
        branches=branches,
    )

    loss_given = _lookup(data, "ownLoss") is not None
    if kind is NodeKind.FIBER_SPAN:
        if node.length_unit is None:
            node.length_unit = LengthUnit.KILOMETERS
        if not loss_given:
            node.own_loss = fiber_loss(node, defaults)
    elif not loss_given:
        node.own_loss = default_own_loss(kind, defaults, split_ratio)

    return node


def node_to_dict(node: Node) -> dict[str, Any]:
    """JSON representation of a node tree. Computed powers are not written."""
    data: dict[str, Any] = {
        "id": node.id,
        "kind": node.kind.value,
        "label": node.label,
        "ownLoss": node.own_loss,
    }
    if node.length_value is not None:
        data["lengthValue"] = node.length_value
    if node.length_unit is not None:
        data["lengthUnit"] = node.length_unit.value
    if node.attenuation_coefficient is not None:
        data["attenuationCoefficient"] = node.attenuation_coefficient
    if node.split_ratio is not None:
        data["splitRatio"] = node.split_ratio
    if node.drop_loss_override is not None:
        data["unbalancedDropLossOverride"] = node.drop_loss_override
    if node.pass_loss_override is not None:
        data["unbalancedPassLossOverride"] = node.pass_loss_override
    if node.vertical_offset:
        data["verticalOffset"] = node.vertical_offset
    if node.branches:
        data["branches"] = [[node_to_dict(child) for child in branch] for branch in node.branches]
    return data


def defaults_from_dict(data: Any) -> LossDefaults:
    """Default losses from a project file, falling back to the configured values."""
    defaults = replace(get_config().defaults)
    if data is None:
        return defaults
    if not isinstance(data, dict):
        raise ProjectFormatError("globalDefaults must be an object")
    for attr, keys in _DEFAULTS_KEYS.items():
        for key in keys:
            if key in data:
                setattr(defaults, attr, _number(data[key], f"default {key}", optional=False))
                break
    return defaults


def defaults_to_dict(defaults: LossDefaults) -> dict[str, float]:
    return {keys[0]: getattr(defaults, attr) for attr, keys in _DEFAULTS_KEYS.items()}


def project_from_dict(data: Any) -> Project:
    if not isinstance(data, dict):
        raise ProjectFormatError("Project file must contain a JSON object")

    root_data = data.get("rootNode")
    if root_data is None:
        raise ProjectFormatError("Project file has no rootNode")

    power = data.get("sourcePower", data.get("oltPower"))
    source_power = _number(power, "sourcePower", optional=False)

    name = data.get("projectName", "Untitled PON Project")
    if not isinstance(name, str):
        raise ProjectFormatError("projectName must be a string")

    defaults = defaults_from_dict(data.get("globalDefaults"))
    root = node_from_dict(root_data, defaults)
    if root.kind is not NodeKind.SOURCE:
        raise ProjectFormatError(f"Root node must be a source, got {root.kind.value}")
    if any(node.kind is NodeKind.SOURCE for node in root.depth_first() if node is not root):
        raise ProjectFormatError("Only the root node may be a source")

    return Project(
        root=root,
        source_power=source_power,
        name=name,
        defaults=defaults,
        version=str(data.get("version", FORMAT_VERSION)),
    )


def project_to_dict(project: Project) -> dict[str, Any]:
    return {
        "version": FORMAT_VERSION,
        "projectName": project.name,
        "sourcePower": project.source_power,
        "rootNode": node_to_dict(project.root),
        "globalDefaults": defaults_to_dict(project.defaults),
    }


def load_project(content: str) -> Project:
    """Parse a project file. Raises ProjectFormatError on any malformed input."""
    try:
        data = json.loads(content)
        project = project_from_dict(data)
    except json.JSONDecodeError as e:
        raise ProjectFormatError(f"Invalid JSON: {e}") from e
    except RecursionError as e:
        raise ProjectFormatError("Project file is nested too deeply") from e
    logger.debug("Loaded project %r (version %s)", project.name, project.version)
    return project


def dump_project(project: Project) -> str:
    return json.dumps(project_to_dict(project), indent=2, ensure_ascii=False)


class ProjectJSONFormat(ReportFormat):
    """The project file itself, as written by export."""

    @property
    def name(self) -> str:
        return "json"

    @property
    def extensions(self) -> list[str]:
        return [".json"]

    def render(self, evaluated: EvaluatedProject) -> str:
        return dump_project(evaluated.project)


registry.register(ProjectJSONFormat())
