"""
Core modules for MeshPaint
"""

from .mesh_loader import MeshLoader, MeshData
from .labels import PaintLabel, MAX_LABEL, material_label
from .geometry import MeshTransform
from .cursor import ClippingPlane, Cursor, CursorType
from .triangle_selector import TriangleSelector, InternalConsistencyError
from .patches import PatchAggregator, PatchSet, RenderPatchLayer, SeedFillPreview, TrianglePatch
from .serialization import PaintSnapshot, SnapshotFormatError
from .history import PaintHistory
from .gestures import GestureEvent, GestureKind, PaintSession, ToolType, WheelTarget
from .project_file import ProjectFormatError, load_paint_project, save_paint_project

__all__ = [
    # Mesh loading
    'MeshLoader',
    'MeshData',
    # Labels
    'PaintLabel',
    'MAX_LABEL',
    'material_label',
    # Geometry / cursors
    'MeshTransform',
    'ClippingPlane',
    'Cursor',
    'CursorType',
    # Paint engine
    'TriangleSelector',
    'InternalConsistencyError',
    # Patches
    'PatchAggregator',
    'PatchSet',
    'RenderPatchLayer',
    'SeedFillPreview',
    'TrianglePatch',
    # Persistence
    'PaintSnapshot',
    'SnapshotFormatError',
    'ProjectFormatError',
    'load_paint_project',
    'save_paint_project',
    # Interaction
    'PaintHistory',
    'GestureEvent',
    'GestureKind',
    'PaintSession',
    'ToolType',
    'WheelTarget',
]
