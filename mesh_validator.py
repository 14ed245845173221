"""
Mesh integrity checks and repair

Non-manifold edges and vertices make a mesh invalid. Everything else found
here (boundary edges, degenerate or isolated elements, thin walls, oversized
models) is a MeshIntegrityWarning: logged and reported, never raised.
"""

import logging
from collections import defaultdict

import numpy as np
from scipy.spatial.distance import pdist

from mesh_geometry import build_mesh, edge_face_counts, face_areas, is_manifold
from sculpture_types import MeshIntegrityWarning, MeshValidationReport

logger = logging.getLogger(__name__)

__all__ = [
    'edge_face_counts',
    'is_manifold',
    'find_degenerate_faces',
    'find_isolated_vertices',
    'find_non_manifold_vertices',
    'minimum_wall_thickness',
    'validate_mesh',
    'repair_mesh',
    'scale_mesh',
    'optimize_for_printing',
]

DEGENERATE_AREA = 1e-10
COINCIDENT_TOLERANCE = 1e-10
MIN_WALL_THICKNESS = 0.8  # mm, typical FDM nozzle
MAX_PRINT_DIMENSION = 200.0  # mm
WALL_SAMPLE_SIZE = 100


def find_degenerate_faces(vertices, faces):
    """Indices of faces with near-zero area or two coincident corners"""
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if len(faces) == 0:
        return ()

    tri = vertices[faces]

    def coincident(a, b):
        return np.all(np.abs(tri[:, a] - tri[:, b]) < COINCIDENT_TOLERANCE, axis=1)

    degenerate = coincident(0, 1) | coincident(1, 2) | coincident(2, 0)
    degenerate |= face_areas(vertices, faces) < DEGENERATE_AREA
    return tuple(int(i) for i in np.nonzero(degenerate)[0])


def find_isolated_vertices(vertex_count, faces):
    """Indices of vertices no face refers to"""
    used = np.zeros(vertex_count, dtype=bool)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1)
    used[faces] = True
    return tuple(int(i) for i in np.nonzero(~used)[0])


def find_non_manifold_vertices(faces):
    """Vertices whose faces do not form a single edge-connected fan

    Two faces around a vertex are connected when they share an edge through
    that vertex. Vertices with fewer than three faces are always accepted.
    """
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)

    fans = defaultdict(list)
    spokes = defaultdict(list)  # (vertex, neighbour) -> faces
    for f, (a, b, c) in enumerate(faces.tolist()):
        for v, p, q in ((a, b, c), (b, c, a), (c, a, b)):
            fans[v].append(f)
            spokes[(v, p)].append(f)
            spokes[(v, q)].append(f)

    parent = {}

    def find(node):
        while parent.setdefault(node, node) != node:
            parent[node] = parent[parent[node]]
            node = parent[node]
        return node

    for (v, _), shared in spokes.items():
        root = find((v, shared[0]))
        for f in shared[1:]:
            parent[find((v, f))] = root

    non_manifold = []
    for v in sorted(fans):
        fan = fans[v]
        if len(fan) < 3:
            continue
        if len({find((v, f)) for f in fan}) > 1:
            non_manifold.append(v)
    return tuple(non_manifold)


def minimum_wall_thickness(vertices):
    """Smallest distance between distinct points among up to 100 sampled vertices

    A rough proxy for printability; returns 0 when it cannot be measured.
    """
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    count = len(vertices)
    if count < 2:
        return 0.0

    step = max(1, count // min(WALL_SAMPLE_SIZE, count))
    distances = pdist(vertices[::step])
    distances = distances[distances > COINCIDENT_TOLERANCE]
    return float(distances.min()) if len(distances) else 0.0


def validate_mesh(mesh):
    """Check a mesh and describe every problem found

    Returns:
        MeshValidationReport; is_valid is False only for non-manifold
        edges or vertices. warnings holds a MeshIntegrityWarning for every
        finding, errors the messages of the ones that invalidate the mesh.
    """
    warnings = []
    errors = []
    suggestions = []

    def flag(kind, count, message, suggestion, fatal=False, level=logging.WARNING):
        warning = MeshIntegrityWarning(kind=kind, count=count, message=message)
        logger.log(level, "mesh integrity: %s", message)
        warnings.append(warning)
        if fatal:
            errors.append(message)
        if suggestion not in suggestions:
            suggestions.append(suggestion)

    counts = edge_face_counts(mesh.faces)
    non_manifold_edges = sum(1 for n in counts.values() if n > 2)
    boundary_edges = sum(1 for n in counts.values() if n == 1)
    non_manifold_vertices = find_non_manifold_vertices(mesh.faces)
    degenerate = find_degenerate_faces(mesh.vertices, mesh.faces)
    isolated = find_isolated_vertices(mesh.vertex_count, mesh.faces)
    thickness = minimum_wall_thickness(mesh.vertices)

    if non_manifold_edges:
        flag("non_manifold_edges", non_manifold_edges,
             f"{non_manifold_edges} edges are shared by more than two faces",
             "Use mesh repair algorithms to fix non-manifold edges", fatal=True)
    if non_manifold_vertices:
        flag("non_manifold_vertices", len(non_manifold_vertices),
             f"{len(non_manifold_vertices)} vertices are non-manifold",
             "Use vertex welding or mesh cleanup to fix non-manifold vertices", fatal=True)
    if boundary_edges:
        flag("boundary_edges", boundary_edges,
             f"{boundary_edges} boundary edges (shared by only one face)",
             "Close open boundaries before printing", level=logging.INFO)
    if degenerate:
        flag("degenerate_faces", len(degenerate),
             f"Found {len(degenerate)} degenerate triangles",
             "Consider increasing mesh resolution or smoothing parameters")
    if isolated:
        flag("isolated_vertices", len(isolated),
             f"Found {len(isolated)} isolated vertices",
             "Remove unused vertices to optimize mesh")
    if mesh.vertex_count and thickness < MIN_WALL_THICKNESS:
        flag("thin_walls", 1,
             f"Minimum wall thickness ({thickness:.2f}mm) may be too thin for 3D printing",
             "Consider scaling the model up or adjusting parameters for thicker walls")

    max_dimension = max(mesh.bounding_box.size)
    if max_dimension > MAX_PRINT_DIMENSION:
        flag("large_model", 1,
             f"Model is large ({max_dimension:.1f}mm max dimension)",
             "Consider scaling down for 3D printing or check printer bed size")

    return MeshValidationReport(
        is_valid=not errors,
        non_manifold_edges=non_manifold_edges,
        boundary_edges=boundary_edges,
        non_manifold_vertices=non_manifold_vertices,
        degenerate_faces=degenerate,
        isolated_vertices=isolated,
        min_wall_thickness=thickness,
        warnings=tuple(warnings),
        errors=tuple(errors),
        suggestions=tuple(suggestions),
    )


def repair_mesh(mesh):
    """New mesh without degenerate faces or unreferenced vertices

    Face indices are remapped onto the compacted vertex list (uvs follow
    their vertices) and every derived property is recomputed. Running it
    on its own output changes nothing.
    """
    vertices = np.asarray(mesh.vertices)
    faces = np.asarray(mesh.faces)
    uvs = mesh.uvs

    degenerate = find_degenerate_faces(vertices, faces)
    if degenerate:
        faces = np.delete(faces, degenerate, axis=0)

    isolated = find_isolated_vertices(len(vertices), faces)
    if isolated:
        keep = np.ones(len(vertices), dtype=bool)
        keep[list(isolated)] = False
        remap = np.cumsum(keep) - 1
        faces = remap[faces]
        vertices = vertices[keep]
        if uvs is not None:
            uvs = uvs[keep]

    if degenerate or isolated:
        logger.info("repaired mesh: removed %d degenerate faces and %d isolated vertices",
                    len(degenerate), len(isolated))

    return build_mesh(vertices, faces, uvs)


def scale_mesh(mesh, factor):
    """Uniformly scaled copy; volume scales by factor**3, area by factor**2"""
    if factor <= 0:
        raise ValueError(f"scale factor must be positive, got {factor}")
    return build_mesh(np.asarray(mesh.vertices) * factor, mesh.faces, mesh.uvs)


def optimize_for_printing(mesh, min_wall_thickness=MIN_WALL_THICKNESS):
    """Repair, then scale up until the sampled wall thickness is printable"""
    optimized = repair_mesh(mesh)

    thickness = minimum_wall_thickness(optimized.vertices)
    if 0 < thickness < min_wall_thickness:
        factor = min_wall_thickness / thickness
        logger.info("scaling mesh by %.3f for a %.2fmm minimum wall", factor, min_wall_thickness)
        optimized = scale_mesh(optimized, factor)

    return optimized
