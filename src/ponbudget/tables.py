"""
Split ratio loss tables and unit helpers.

Lookups never raise: an unrecognized ratio key means zero loss.
"""

from __future__ import annotations

from .dom import LengthUnit

BALANCED_SPLIT_LOSSES: dict[str, float] = {
    "1:2": 3.5,
    "1:4": 7.2,
    "1:8": 10.5,
    "1:16": 13.8,
    "1:32": 17.1,
    "1:64": 20.5,
}

# (drop, pass) insertion loss per leg
UNBALANCED_SPLIT_LOSSES: dict[str, tuple[float, float]] = {
    "05/95": (14.3, 0.8),
    "10/90": (11.0, 1.1),
    "20/80": (7.9, 1.6),
    "30/70": (6.1, 2.2),
    "40/60": (4.8, 2.9),
    "50/50": (3.7, 3.7),
}

DEFAULT_BALANCED_RATIO = "1:2"
DEFAULT_UNBALANCED_RATIO = "10/90"
UNBALANCED_PORT_COUNT = 2


def balanced_split_loss(ratio: str | None) -> float:
    """Table loss for a balanced ratio, 0.0 when unknown."""
    if ratio is None:
        return 0.0
    return BALANCED_SPLIT_LOSSES.get(ratio, 0.0)


def unbalanced_split_losses(ratio: str | None) -> tuple[float, float]:
    """(drop, pass) table losses for an unbalanced ratio, (0.0, 0.0) when unknown."""
    if ratio is None:
        return 0.0, 0.0
    return UNBALANCED_SPLIT_LOSSES.get(ratio, (0.0, 0.0))


def port_count_of(ratio: str | None) -> int | None:
    """
    Output port count of a balanced ratio like "1:8".

    Parsed from the ratio itself so ratios missing from the loss table still
    size the branch list. Returns None when the key does not parse.
    """
    if not ratio or ":" not in ratio:
        return None
    try:
        ports = int(ratio.split(":", 1)[1])
    except ValueError:
        return None
    return ports if ports > 0 else None


def length_in_kilometers(value: float | None, unit: LengthUnit | None) -> float:
    if value is None:
        return 0.0
    if unit is LengthUnit.METERS:
        return value / 1000
    return value


def convert_length(value: float | None, from_unit: LengthUnit | None, to_unit: LengthUnit) -> float:
    """Rewrite a length value so the physical length is preserved."""
    value = value or 0.0
    from_unit = from_unit or LengthUnit.KILOMETERS
    if from_unit is to_unit:
        return value
    if to_unit is LengthUnit.METERS:
        return value * 1000
    return value / 1000
