"""
Mesh export for printing and web preview
Writes STL with numpy-stl, other formats through trimesh, and a Three.js
BufferGeometry JSON for the browser viewer
"""

import json
import logging
import os

import numpy as np
import stl
import trimesh

from mesh_geometry import build_mesh

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("stl", "obj", "gltf", "glb")


def save_stl(mesh, filename):
    """Export mesh to a binary STL file"""
    # create mesh object using numpy-stl
    audio_mesh = stl.mesh.Mesh(np.zeros(mesh.face_count, dtype=stl.mesh.Mesh.dtype))
    audio_mesh.vectors[:] = mesh.vertices[mesh.faces]
    audio_mesh.update_normals()

    audio_mesh.save(filename)
    logger.info("STL saved as %s (%d triangles)", filename, mesh.face_count)

    return filename


def load_stl(filename):
    """Read an STL back into an indexed Mesh (duplicate corners are merged)"""
    loaded = trimesh.load(filename, file_type='stl', force='mesh')
    return build_mesh(loaded.vertices, loaded.faces)


def mesh_to_trimesh(mesh):
    """trimesh view of a Mesh; geometry is passed through untouched"""
    return trimesh.Trimesh(
        vertices=np.array(mesh.vertices),
        faces=np.array(mesh.faces),
        vertex_normals=np.array(mesh.normals),
        process=False,
    )


def export_mesh(mesh, output_path, file_type=None):
    """Write a mesh as stl, obj, gltf or glb (taken from the suffix by default)"""
    if file_type is None:
        file_type = os.path.splitext(output_path)[1].lstrip('.').lower()
    if file_type not in EXPORT_FORMATS:
        raise ValueError(
            f"Unsupported export format {file_type!r}, valid options: {EXPORT_FORMATS}"
        )

    if file_type == "stl":
        return save_stl(mesh, output_path)

    mesh_to_trimesh(mesh).export(output_path, file_type=file_type)
    logger.info("exported %s", output_path)
    return output_path


def mesh_to_threejs_json(mesh, output_path=None):
    """Three.js BufferGeometry dict for a Mesh, optionally written to disk"""
    index_type = "Uint16Array" if mesh.vertex_count <= 65536 else "Uint32Array"

    attributes = {
        "position": {
            "itemSize": 3,
            "type": "Float32Array",
            "array": mesh.flat_vertices().tolist(),
        },
        "normal": {
            "itemSize": 3,
            "type": "Float32Array",
            "array": mesh.normals.reshape(-1).tolist(),
        },
    }
    if mesh.uvs is not None:
        attributes["uv"] = {
            "itemSize": 2,
            "type": "Float32Array",
            "array": mesh.uvs.reshape(-1).tolist(),
        }

    geometry = {
        "metadata": {
            "version": 4.5,
            "type": "BufferGeometry",
            "generator": "Audio Sculpture Mesh Exporter",
        },
        "data": {
            "attributes": attributes,
            "index": {
                "type": index_type,
                "array": mesh.flat_faces().tolist(),
            },
        },
    }

    if output_path is not None:
        with open(output_path, 'w') as f:
            json.dump(geometry, f)
        logger.debug("wrote preview geometry to %s", output_path)

    return geometry


def get_mesh_info(mesh):
    """Summary numbers shown next to the preview"""
    bbox = mesh.bounding_box
    return {
        "vertices_count": mesh.vertex_count,
        "faces_count": mesh.face_count,
        "bounds": [list(bbox.min), list(bbox.max)],
        "size": list(bbox.size),
        "volume": mesh.volume,
        "surface_area": mesh.surface_area,
        "is_manifold": mesh.is_manifold,
        "is_watertight": bool(mesh_to_trimesh(mesh).is_watertight),
    }


if __name__ == "__main__":
    # convert an existing STL to the web formats
    test_file = "test_sculpture.stl"
    if os.path.exists(test_file):
        print("Converting STL to web formats...")
        mesh = load_stl(test_file)

        for file_type in ("gltf", "obj"):
            out = export_mesh(mesh, test_file.replace('.stl', f'.{file_type}'))
            print(f"{file_type.upper()} file created: {out}")

        json_file = test_file.replace('.stl', '.json')
        mesh_to_threejs_json(mesh, json_file)
        print(f"Three.js JSON file created: {json_file}")

        print(f"Mesh info: {get_mesh_info(mesh)}")
    else:
        print("No test STL file found")
