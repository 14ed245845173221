"""
tests/test_mesh_validator.py: manifold checks, degeneracy, repair and
print preparation.
"""

import logging

import numpy as np
import pytest
import trimesh

from mesh_geometry import build_mesh, edge_face_counts, is_manifold, mesh_volume
from mesh_generator import generate_mesh
from mesh_validator import (
    find_degenerate_faces,
    find_isolated_vertices,
    find_non_manifold_vertices,
    minimum_wall_thickness,
    optimize_for_printing,
    repair_mesh,
    scale_mesh,
    validate_mesh,
)
from sculpture_types import MeshIntegrityWarning

# three triangles hinged on edge (0, 1)
FIN_VERTICES = np.array([
    [0, 0, 0], [1, 0, 0], [0, 1, 0], [0, -1, 0], [0, 0, 1],
], dtype=np.float64)
FIN_FACES = np.array([[0, 1, 2], [0, 1, 3], [0, 1, 4]])

# two fans that only touch at vertex 0
BOWTIE_VERTICES = np.array([
    [0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],
    [-1, 0, 0], [-1, -1, 0], [0, -1, 0],
], dtype=np.float64)
BOWTIE_FACES = np.array([[0, 1, 2], [0, 2, 3], [0, 4, 5], [0, 5, 6]])


def _kinds(report):
    return {w.kind for w in report.warnings}


class TestTopology:
    def test_cube_is_manifold(self, cube_mesh):
        counts = edge_face_counts(cube_mesh.faces)
        assert set(counts.values()) == {2}
        assert is_manifold(cube_mesh.faces)
        assert find_non_manifold_vertices(cube_mesh.faces) == ()

    def test_fin_edge(self):
        counts = edge_face_counts(FIN_FACES)
        assert counts[(0, 1)] == 3
        assert not is_manifold(FIN_FACES)

    def test_bowtie_vertex(self):
        assert is_manifold(BOWTIE_FACES)
        assert find_non_manifold_vertices(BOWTIE_FACES) == (0,)

    def test_degenerate_faces(self):
        vertices = np.array([[0, 0, 0], [1, 0, 0], [2, 0, 0], [0, 1, 0]], dtype=np.float64)
        faces = np.array([[0, 1, 3], [0, 1, 2], [0, 0, 3]])
        # collinear and repeated-corner triangles
        assert find_degenerate_faces(vertices, faces) == (1, 2)

    def test_isolated_vertices(self, cube_mesh):
        assert find_isolated_vertices(cube_mesh.vertex_count, cube_mesh.faces) == ()
        assert find_isolated_vertices(10, cube_mesh.faces) == (8, 9)


class TestValidateMesh:
    def test_cube_is_valid(self, cube_mesh):
        report = validate_mesh(cube_mesh)
        assert report.is_valid
        assert report.errors == ()
        assert report.boundary_edges == 0
        assert report.min_wall_thickness == pytest.approx(1.0)

    def test_non_manifold_edge_is_an_error(self):
        report = validate_mesh(build_mesh(FIN_VERTICES, FIN_FACES))
        assert not report.is_valid
        assert report.non_manifold_edges == 1
        assert "non_manifold_edges" in _kinds(report)
        assert report.suggestions

    def test_non_manifold_vertex_is_an_error(self):
        report = validate_mesh(build_mesh(BOWTIE_VERTICES, BOWTIE_FACES))
        assert not report.is_valid
        assert report.non_manifold_vertices == (0,)

    def test_findings_are_warnings_not_exceptions(self, caplog):
        vertices = np.vstack([FIN_VERTICES, [[5.0, 5.0, 5.0]]])
        with caplog.at_level(logging.WARNING, logger="mesh_validator"):
            report = validate_mesh(build_mesh(vertices, FIN_FACES))

        assert all(isinstance(w, MeshIntegrityWarning) for w in report.warnings)
        assert {"isolated_vertices", "boundary_edges"} <= _kinds(report)
        assert report.isolated_vertices == (5,)
        assert any("isolated" in r.getMessage() for r in caplog.records)

    def test_large_model_warning(self, cube_mesh):
        report = validate_mesh(scale_mesh(cube_mesh, 300.0))
        assert report.is_valid
        assert "large_model" in _kinds(report)

    def test_thin_wall_warning(self, cube_mesh):
        report = validate_mesh(scale_mesh(cube_mesh, 0.1))
        assert "thin_walls" in _kinds(report)

    def test_open_tube_boundary_is_not_logged_as_warning(self, features, caplog):
        with caplog.at_level(logging.INFO, logger="mesh_validator"):
            report = validate_mesh(generate_mesh(features))

        assert "boundary_edges" in _kinds(report)
        boundary = [r for r in caplog.records if "boundary edges" in r.getMessage()]
        assert boundary
        assert all(r.levelno == logging.INFO for r in boundary)


class TestRepair:
    def _dirty_cube(self, cube_mesh):
        vertices = np.vstack([cube_mesh.vertices, [[9.0, 9.0, 9.0]]])
        faces = np.vstack([cube_mesh.faces, [[0, 0, 1]]])
        uvs = np.arange(len(vertices) * 2, dtype=np.float64).reshape(-1, 2)
        return build_mesh(vertices, faces, uvs)

    def test_removes_degenerate_and_isolated(self, cube_mesh):
        dirty = self._dirty_cube(cube_mesh)
        repaired = repair_mesh(dirty)

        assert repaired.vertex_count == 8
        assert repaired.face_count == 12
        assert repaired.volume == pytest.approx(1.0)
        np.testing.assert_array_equal(repaired.uvs, dirty.uvs[:8])

    def test_remaps_face_indices(self):
        # vertex 0 is unused, so every index shifts down by one
        vertices = np.vstack([[[7.0, 7.0, 7.0]], FIN_VERTICES])
        repaired = repair_mesh(build_mesh(vertices, FIN_FACES + 1))
        np.testing.assert_array_equal(repaired.faces, FIN_FACES)
        np.testing.assert_array_equal(repaired.vertices, FIN_VERTICES)

    def test_idempotent(self, cube_mesh):
        once = repair_mesh(self._dirty_cube(cube_mesh))
        twice = repair_mesh(once)
        np.testing.assert_array_equal(once.vertices, twice.vertices)
        np.testing.assert_array_equal(once.faces, twice.faces)
        np.testing.assert_array_equal(once.normals, twice.normals)
        assert once.volume == twice.volume

    def test_valid_mesh_unchanged(self, features):
        mesh = generate_mesh(features)
        repaired = repair_mesh(mesh)
        assert repaired.vertex_count == mesh.vertex_count
        assert repaired.face_count == mesh.face_count
        np.testing.assert_array_equal(repaired.vertices, mesh.vertices)

    def test_normals_recomputed(self, cube_mesh):
        repaired = repair_mesh(self._dirty_cube(cube_mesh))
        np.testing.assert_allclose(np.linalg.norm(repaired.normals, axis=1), 1.0, atol=1e-9)
        # corner normals point away from the centre
        centre = np.array([0.5, 0.5, 0.5])
        outward = np.einsum('ij,ij->i', repaired.normals, repaired.vertices - centre)
        assert np.all(outward > 0)


class TestScaling:
    @pytest.mark.parametrize("factor", [0.5, 2.0, 3.7])
    def test_volume_and_area_laws(self, cube_mesh, factor):
        scaled = scale_mesh(cube_mesh, factor)
        assert scaled.volume == pytest.approx(cube_mesh.volume * factor ** 3)
        assert scaled.surface_area == pytest.approx(cube_mesh.surface_area * factor ** 2)
        assert scaled.bounding_box.max == pytest.approx((factor,) * 3)

    def test_scaling_generated_mesh(self, features):
        mesh = generate_mesh(features)
        scaled = scale_mesh(mesh, 2.0)
        assert scaled.surface_area == pytest.approx(mesh.surface_area * 4)
        np.testing.assert_allclose(scaled.normals, mesh.normals, atol=1e-12)

    def test_rejects_non_positive(self, cube_mesh):
        with pytest.raises(ValueError):
            scale_mesh(cube_mesh, 0.0)

    def test_volume_matches_trimesh(self, cube_mesh):
        reference = trimesh.Trimesh(np.array(cube_mesh.vertices), np.array(cube_mesh.faces),
                                    process=False)
        assert mesh_volume(cube_mesh.vertices, cube_mesh.faces) == pytest.approx(reference.volume)


class TestPrinting:
    def test_wall_thickness(self, cube_mesh):
        assert minimum_wall_thickness(cube_mesh.vertices) == pytest.approx(1.0)
        assert minimum_wall_thickness(np.zeros((1, 3))) == 0.0

    def test_wall_thickness_samples_large_meshes(self):
        vertices = np.column_stack([np.arange(1000.0), np.zeros(1000), np.zeros(1000)])
        # every 10th vertex is sampled
        assert minimum_wall_thickness(vertices) == pytest.approx(10.0)

    def test_optimize_scales_thin_mesh(self, cube_mesh):
        small = scale_mesh(cube_mesh, 0.1)
        optimized = optimize_for_printing(small)
        assert minimum_wall_thickness(optimized.vertices) >= 0.8 - 1e-9
        assert optimized.volume == pytest.approx(0.8 ** 3)

    def test_optimize_leaves_thick_mesh(self, cube_mesh):
        optimized = optimize_for_printing(cube_mesh)
        np.testing.assert_array_equal(optimized.vertices, cube_mesh.vertices)

    def test_wall_thickness_ignores_coincident_points(self):
        vertices = np.array([[0.0, 0.0, 0.0], [1e-15, 0.0, 0.0], [0.0, 2.0, 0.0]])
        assert minimum_wall_thickness(vertices) == pytest.approx(2.0)

    def test_generated_seam_is_not_a_wall(self, features):
        mesh = generate_mesh(features)
        assert validate_mesh(mesh).min_wall_thickness > 1e-9

    def test_optimize_generated_mesh(self, features):
        mesh = generate_mesh(features)
        optimized = optimize_for_printing(mesh)

        factor = max(optimized.bounding_box.size) / max(mesh.bounding_box.size)
        assert 1.0 <= factor < 1000.0
        assert minimum_wall_thickness(optimized.vertices) >= 0.8 - 1e-9
