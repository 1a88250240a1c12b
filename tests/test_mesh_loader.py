import tempfile
import unittest
from pathlib import Path

import numpy as np
import trimesh

from meshpaint.core.mesh_loader import MeshData, MeshLoader
from tests.mesh_samples import make_square


class TestMeshData(unittest.TestCase):
    def test_areas_normals_bounds(self):
        mesh = make_square(2.0)
        np.testing.assert_allclose(mesh.face_areas, [2.0, 2.0])
        self.assertAlmostEqual(mesh.surface_area, 4.0)
        np.testing.assert_allclose(mesh.compute_normals(), [[0, 0, 1], [0, 0, 1]])
        np.testing.assert_allclose(mesh.extents, [2.0, 2.0, 0.0])

    def test_welding_soup_keeps_face_order(self):
        square = make_square()
        soup = MeshData(
            vertices=square.vertices[square.faces.reshape(-1)],
            faces=np.arange(6).reshape(2, 3),
        )
        welded = soup.welded()

        self.assertEqual(welded.n_vertices, 4)
        self.assertEqual(welded.n_faces, 2)
        np.testing.assert_allclose(welded.vertices[welded.faces], square.vertices[square.faces])
        # The diagonal is shared after welding.
        shared = set(welded.faces[0].tolist()) & set(welded.faces[1].tolist())
        self.assertEqual(len(shared), 2)

    def test_extract_submesh(self):
        sub = make_square().extract_submesh(np.array([1]))
        self.assertEqual(sub.n_faces, 1)
        self.assertEqual(sub.n_vertices, 3)
        self.assertAlmostEqual(sub.surface_area, 0.5)


class TestMeshLoader(unittest.TestCase):
    def test_load_stl_is_welded(self):
        square = make_square(3.0)
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "square.stl"
            trimesh.Trimesh(vertices=square.vertices, faces=square.faces, process=False).export(str(path))
            mesh = MeshLoader().load(path, unit="cm")

        self.assertEqual(mesh.n_faces, 2)
        self.assertEqual(mesh.n_vertices, 4)
        self.assertEqual(mesh.unit, "cm")
        self.assertEqual(mesh.filepath, path)
        self.assertAlmostEqual(mesh.surface_area, 9.0, places=5)
        self.assertIsNotNone(mesh.face_normals)

    def test_unsupported_and_missing(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "notes.txt"
            path.write_text("hello", encoding="utf-8")
            with self.assertRaises(ValueError):
                MeshLoader().load(path)
            with self.assertRaises(FileNotFoundError):
                MeshLoader().load(Path(td) / "missing.stl")


if __name__ == "__main__":
    unittest.main()
