"""
MeshPaint - triangle paint-selection engine for 3D meshes
"""

__version__ = "0.1.0"
