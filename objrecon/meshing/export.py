"""
Mesh and Point Cloud Export

Write reconstruction artifacts to standard formats:
- PLY / OBJ / STL / GLB meshes (trimesh)
- PLY / PCD point clouds (open3d), NPY / XYZ (numpy)

Both functions log failures and return False instead of raising.

Usage:
    from objrecon.meshing.export import export_mesh
    export_mesh(mesh, "output/object.ply")
"""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np

from ..data.pointcloud import PointCloud
from .mesh import Mesh

logger = logging.getLogger(__name__)

MESH_FORMATS = {"ply", "obj", "stl", "glb"}
CLOUD_FORMATS = {"ply", "pcd", "npy", "xyz"}


def export_mesh(
    mesh: Mesh,
    output_path: Union[str, Path],
    format: Optional[str] = None
) -> bool:
    """
    Export mesh to file.

    Args:
        mesh: Mesh to write
        output_path: Output file path
        format: Force format, or auto-detect from extension

    Returns:
        True if successful
    """
    output_path = Path(output_path)

    if format is None:
        format = output_path.suffix.lower().lstrip(".")
    if format == "gltf":
        format = "glb"
    if format not in MESH_FORMATS:
        logger.warning(f"Unknown mesh format {format}, using PLY")
        format = "ply"
        output_path = output_path.with_suffix(".ply")

    try:
        import trimesh

        output_path.parent.mkdir(parents=True, exist_ok=True)

        tm = trimesh.Trimesh(
            vertices=mesh.vertices,
            faces=mesh.faces,
            vertex_normals=mesh.vertex_normals,
            process=False
        )
        tm.export(output_path, file_type=format)

        logger.debug(f"Exported mesh to {output_path}")
        return True

    except Exception as e:
        logger.error(f"Mesh export to {output_path} failed: {e}")
        return False


def export_pointcloud(
    cloud: PointCloud,
    output_path: Union[str, Path],
    format: Optional[str] = None
) -> bool:
    """
    Export point cloud to file.

    Args:
        cloud: PointCloud to write
        output_path: Output file path
        format: ply, pcd, npy or xyz (default: from extension)

    Returns:
        True if successful
    """
    output_path = Path(output_path)

    if format is None:
        format = output_path.suffix.lower().lstrip(".")
    if format not in CLOUD_FORMATS:
        logger.warning(f"Unknown point cloud format {format}, using PCD")
        format = "pcd"
        output_path = output_path.with_suffix(".pcd")

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if format == "npy":
            np.save(output_path, cloud.points)
        elif format == "xyz":
            # Simple text format
            np.savetxt(output_path, cloud.points, fmt="%.6f")
        else:
            import open3d as o3d

            if not o3d.io.write_point_cloud(str(output_path), cloud.to_open3d()):
                logger.error(f"open3d could not write {output_path}")
                return False

        logger.debug(f"Exported point cloud to {output_path}")
        return True

    except Exception as e:
        logger.error(f"Point cloud export to {output_path} failed: {e}")
        return False
