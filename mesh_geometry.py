"""
Geometry helpers shared by the mesh generator and the validator

All functions take vertices as an (n, 3) array and faces as an (m, 3)
index array and return new arrays.
"""

from collections import Counter

import numpy as np

from sculpture_types import BoundingBox, Mesh


def _triangles(vertices, faces):
    """(m, 3, 3) corner positions of every face"""
    return np.asarray(vertices, dtype=np.float64)[np.asarray(faces, dtype=np.int64)]


def face_cross_products(vertices, faces):
    tri = _triangles(vertices, faces)
    if len(tri) == 0:
        return np.zeros((0, 3))
    return np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])


def face_areas(vertices, faces):
    return 0.5 * np.linalg.norm(face_cross_products(vertices, faces), axis=1)


def face_normals(vertices, faces):
    """Unit normal per face; zero-area faces get a zero vector"""
    cross = face_cross_products(vertices, faces)
    lengths = np.linalg.norm(cross, axis=1)
    normals = np.zeros_like(cross)
    nonzero = lengths > 0
    normals[nonzero] = cross[nonzero] / lengths[nonzero, None]
    return normals


def vertex_normals(vertices, faces):
    """Sum of adjacent unit face normals, renormalised per vertex"""
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    normals = np.zeros_like(vertices)

    per_face = face_normals(vertices, faces)
    for corner in range(3):
        np.add.at(normals, faces[:, corner], per_face)

    lengths = np.linalg.norm(normals, axis=1)
    nonzero = lengths > 0
    normals[nonzero] /= lengths[nonzero, None]
    return normals


def bounding_box(vertices):
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    if len(vertices) == 0:
        return BoundingBox(min=(0.0, 0.0, 0.0), max=(0.0, 0.0, 0.0))
    lo = vertices.min(axis=0)
    hi = vertices.max(axis=0)
    return BoundingBox(min=tuple(float(v) for v in lo), max=tuple(float(v) for v in hi))


def mesh_volume(vertices, faces):
    """|sum of signed tetrahedra (origin, v1, v2, v3)| / 6 (divergence theorem)"""
    tri = _triangles(vertices, faces)
    if len(tri) == 0:
        return 0.0
    signed = np.einsum('ij,ij->i', tri[:, 0], np.cross(tri[:, 1], tri[:, 2]))
    return float(abs(signed.sum()) / 6.0)


def surface_area(vertices, faces):
    return float(face_areas(vertices, faces).sum())


def edge_face_counts(faces):
    """Undirected edge (lo, hi) -> number of faces using it"""
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    edges = np.concatenate([faces[:, [0, 1]], faces[:, [1, 2]], faces[:, [2, 0]]])
    edges.sort(axis=1)
    return Counter(map(tuple, edges.tolist()))


def is_manifold(faces):
    """False when any edge borders more than two faces"""
    return all(count <= 2 for count in edge_face_counts(faces).values())


def build_mesh(vertices, faces, uvs=None):
    """Assemble a Mesh, computing every derived property once"""
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    return Mesh(
        vertices=vertices,
        faces=faces,
        normals=vertex_normals(vertices, faces),
        uvs=uvs,
        bounding_box=bounding_box(vertices),
        volume=mesh_volume(vertices, faces),
        surface_area=surface_area(vertices, faces),
        is_manifold=is_manifold(faces),
    )
