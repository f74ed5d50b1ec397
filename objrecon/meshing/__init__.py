"""Surface reconstruction, occlusion repair and export."""

from .mesh import Mesh
from .builder import MeshBuilder, point_cloud_to_mesh
from .occlusion import Hole, OcclusionReport, OcclusionRepairer
from .export import export_mesh, export_pointcloud

__all__ = [
    "Mesh",
    "MeshBuilder",
    "point_cloud_to_mesh",
    "Hole",
    "OcclusionReport",
    "OcclusionRepairer",
    "export_mesh",
    "export_pointcloud",
]
