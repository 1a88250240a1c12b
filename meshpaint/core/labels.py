"""
Paint labels.

Leaf triangles carry one value of a small enumeration: NONE (unpainted),
the support enforcer/blocker pair, or a material (extruder) index. Material
indices reuse the integer range, so label 1 doubles as "material 1".
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional


class PaintLabel(IntEnum):
    NONE = 0
    ENFORCER = 1
    BLOCKER = 2


# Highest material index a label may carry.
MAX_LABEL = 16


def is_valid_label(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        v = int(value)
    except (TypeError, ValueError):
        return False
    if v != value:
        return False
    return 0 <= v <= MAX_LABEL


def coerce_label(value: Any) -> Optional[int]:
    """Return the label as a plain int, or None when it is out of range."""
    if not is_valid_label(value):
        return None
    return int(value)


def material_label(index: int) -> int:
    """Label used for material/extruder `index` (1-based)."""
    idx = int(index)
    if idx < 1 or idx > MAX_LABEL:
        raise ValueError(f"Material index out of range: {index!r} (1..{MAX_LABEL})")
    return idx
