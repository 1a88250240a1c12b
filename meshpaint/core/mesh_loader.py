"""
Mesh Loader Module
Level-0 mesh container handed to the paint engine, plus a thin file loader.

Supports: OBJ, PLY, STL, OFF, GLTF/GLB formats (via trimesh)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union
import numpy as np

try:
    import trimesh
except ImportError:
    raise ImportError("trimesh is required. Install with: pip install trimesh")


@dataclass
class MeshData:
    """
    Indexed triangle mesh in mesh-local coordinates.

    Attributes:
        vertices: (N, 3) vertex positions
        faces: (M, 3) triangle vertex indices
        face_normals: (M, 3) unit face normals (optional, computed on demand)
        unit: coordinate unit ('mm', 'cm', 'm')
        filepath: source file path
    """
    vertices: np.ndarray
    faces: np.ndarray
    face_normals: Optional[np.ndarray] = None
    unit: str = 'mm'
    filepath: Optional[Path] = None

    # Computed properties cache
    _bounds: Optional[np.ndarray] = field(default=None, repr=False)
    _face_areas: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)

        if self.face_normals is not None:
            self.face_normals = np.asarray(self.face_normals, dtype=np.float64)

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        return len(self.faces)

    @property
    def bounds(self) -> np.ndarray:
        """Bounding box [[min_x, min_y, min_z], [max_x, max_y, max_z]]"""
        if self._bounds is None:
            if self.n_vertices == 0:
                self._bounds = np.zeros((2, 3), dtype=np.float64)
            else:
                self._bounds = np.array([
                    self.vertices.min(axis=0),
                    self.vertices.max(axis=0)
                ])
        return self._bounds

    @property
    def extents(self) -> np.ndarray:
        return self.bounds[1] - self.bounds[0]

    @property
    def face_areas(self) -> np.ndarray:
        """(M,) triangle areas"""
        if self._face_areas is None:
            if self.n_faces == 0:
                self._face_areas = np.zeros((0,), dtype=np.float64)
            else:
                v0 = self.vertices[self.faces[:, 0]]
                v1 = self.vertices[self.faces[:, 1]]
                v2 = self.vertices[self.faces[:, 2]]
                cross = np.cross(v1 - v0, v2 - v0)
                self._face_areas = np.linalg.norm(cross, axis=1) / 2.0
        return self._face_areas

    @property
    def surface_area(self) -> float:
        return float(self.face_areas.sum())

    def compute_normals(self, *, force: bool = False) -> np.ndarray:
        """Compute unit face normals (degenerate faces get a zero normal)."""
        if force:
            self.face_normals = None

        if self.face_normals is None:
            if self.n_faces == 0:
                self.face_normals = np.zeros((0, 3), dtype=np.float64)
            else:
                v0 = self.vertices[self.faces[:, 0]]
                v1 = self.vertices[self.faces[:, 1]]
                v2 = self.vertices[self.faces[:, 2]]

                cross = np.cross(v1 - v0, v2 - v0)
                norms = np.linalg.norm(cross, axis=1, keepdims=True)
                norms[norms == 0] = 1  # avoid division by zero
                self.face_normals = cross / norms
        return self.face_normals

    def welded(self, *, decimals: int = 9) -> 'MeshData':
        """
        Return a copy with coincident vertices merged.

        Triangle soups (typical for STL) repeat each corner per face; the paint
        engine finds neighbors by shared vertex indices, so those duplicates
        must be collapsed. Face order is preserved.
        """
        if self.n_vertices == 0:
            return MeshData(vertices=self.vertices.copy(), faces=self.faces.copy(),
                            unit=self.unit, filepath=self.filepath)

        keys = np.round(self.vertices, decimals=decimals)
        _, first_idx, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
        inverse = np.asarray(inverse).reshape(-1)
        if first_idx.shape[0] == self.n_vertices:
            return MeshData(vertices=self.vertices.copy(), faces=self.faces.copy(),
                            face_normals=self.face_normals, unit=self.unit, filepath=self.filepath)

        # Keep the earliest occurrence order so welded indices stay stable.
        order = np.argsort(first_idx, kind='stable')
        remap = np.empty_like(order)
        remap[order] = np.arange(order.shape[0])
        new_vertices = self.vertices[first_idx[order]]
        new_faces = remap[inverse][self.faces]

        return MeshData(
            vertices=new_vertices,
            faces=new_faces,
            face_normals=self.face_normals,
            unit=self.unit,
            filepath=self.filepath,
        )

    def to_trimesh(self) -> 'trimesh.Trimesh':
        return trimesh.Trimesh(vertices=self.vertices, faces=self.faces, process=False)

    @classmethod
    def from_trimesh(cls, mesh: 'trimesh.Trimesh',
                     filepath: Optional[Path] = None,
                     unit: str = 'mm') -> 'MeshData':
        return cls(
            vertices=np.asarray(mesh.vertices),
            faces=np.asarray(mesh.faces),
            unit=unit,
            filepath=filepath,
        )

    def extract_submesh(self, face_indices: np.ndarray) -> 'MeshData':
        """Extract the selected faces as a compact mesh"""
        face_indices = np.asarray(face_indices, dtype=np.int64).reshape(-1)
        selected_faces = self.faces[face_indices]

        unique_verts, inverse = np.unique(selected_faces.reshape(-1), return_inverse=True)
        new_faces = np.asarray(inverse).reshape(-1, 3)

        new_face_normals = self.face_normals[face_indices] if self.face_normals is not None else None

        return MeshData(
            vertices=self.vertices[unique_verts],
            faces=new_faces,
            face_normals=new_face_normals,
            unit=self.unit,
            filepath=self.filepath
        )


class MeshLoader:
    """
    Mesh file loader for the CLI.

    Supported formats:
        - OBJ (Wavefront)
        - PLY (Polygon File Format)
        - STL (Stereolithography)
        - OFF (Object File Format)
        - GLTF/GLB (GL Transmission Format)
    """

    SUPPORTED_FORMATS = {
        '.obj': 'Wavefront OBJ',
        '.ply': 'Polygon File Format',
        '.stl': 'Stereolithography',
        '.off': 'Object File Format',
        '.gltf': 'GL Transmission Format',
        '.glb': 'GL Transmission Format (Binary)',
    }

    def __init__(self, default_unit: str = 'mm'):
        self.default_unit = default_unit

    def load(self, filepath: Union[str, Path], unit: Optional[str] = None) -> MeshData:
        """
        Load a mesh file as a welded MeshData.

        Raises:
            FileNotFoundError: file does not exist
            ValueError: unsupported format or no mesh geometry
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"File not found: {filepath}")

        ext = filepath.suffix.lower()
        if ext not in self.SUPPORTED_FORMATS:
            raise ValueError(
                f"Unsupported format: {ext}\n"
                f"Supported formats: {list(self.SUPPORTED_FORMATS.keys())}"
            )

        unit = unit or self.default_unit

        mesh = trimesh.load(str(filepath), force='mesh', process=False)

        # Scenes are merged into a single mesh
        if isinstance(mesh, trimesh.Scene):
            meshes = [g for g in mesh.geometry.values() if isinstance(g, trimesh.Trimesh)]
            if len(meshes) == 0:
                raise ValueError(f"No valid mesh found in: {filepath}")
            mesh = trimesh.util.concatenate(meshes)

        if not isinstance(mesh, trimesh.Trimesh):
            raise TypeError(f"Expected trimesh.Trimesh, got {type(mesh).__name__}")

        mesh_data = MeshData.from_trimesh(mesh, filepath=filepath, unit=unit).welded()
        mesh_data.compute_normals()
        return mesh_data
