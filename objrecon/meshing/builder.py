"""
Point Cloud to Mesh Conversion

Converts object candidate clouds to triangle meshes.
Supports:
- Ball Pivoting Algorithm (BPA) - primary, vertices are the input points
- Poisson Surface Reconstruction - optional, smoother but resamples vertices

Holes left by missing sensor coverage are kept as boundary edges; they are
handled by the occlusion repair stage.

Usage:
    from objrecon.meshing import MeshBuilder
    mesh = MeshBuilder().build_mesh(cloud)
"""

import logging
from typing import Optional

import numpy as np
import open3d as o3d

from ..config import MeshConfig
from ..data.pointcloud import PointCloud
from .mesh import Mesh

logger = logging.getLogger(__name__)

METHODS = ("ball_pivoting", "poisson")


class MeshBuilder:
    """Surface reconstruction from a single candidate cloud."""

    def __init__(self, config: Optional[MeshConfig] = None):
        self.config = config or MeshConfig()
        if self.config.METHOD not in METHODS:
            raise ValueError(f"Unknown mesh method {self.config.METHOD}, expected one of {METHODS}")

    def build_mesh(self, cloud: PointCloud) -> Mesh:
        """
        Convert a point cloud to a mesh.

        Args:
            cloud: Candidate point cloud

        Returns:
            Mesh; empty when the cloud is too small or reconstruction failed
        """
        cfg = self.config

        if cloud.num_points < cfg.MIN_POINTS:
            logger.warning(
                f"Cloud has {cloud.num_points} points (< {cfg.MIN_POINTS}), returning empty mesh"
            )
            return Mesh.empty()

        try:
            pcd = o3d.geometry.PointCloud()
            pcd.points = o3d.utility.Vector3dVector(cloud.points)

            # Estimate normals (required for meshing)
            if cloud.normals is not None:
                pcd.normals = o3d.utility.Vector3dVector(cloud.normals)
            else:
                pcd.estimate_normals(
                    search_param=o3d.geometry.KDTreeSearchParamHybrid(
                        radius=cfg.NORMAL_RADIUS, max_nn=cfg.NORMAL_MAX_NN
                    )
                )
                # Orient normals consistently
                pcd.orient_normals_consistent_tangent_plane(k=cfg.ORIENT_NORMALS_K)

            # Reconstruct mesh
            if cfg.METHOD == "ball_pivoting":
                mesh, method = self._ball_pivoting_reconstruction(pcd), "ball_pivoting"
                if cfg.POISSON_FALLBACK and len(mesh.triangles) < cfg.MIN_FACES:
                    logger.warning("BPA produced too few faces, trying Poisson")
                    mesh, method = self._poisson_reconstruction(pcd), "poisson"
            else:
                mesh, method = self._poisson_reconstruction(pcd), "poisson"

            mesh = _clean_mesh(mesh)
            mesh.compute_vertex_normals()

        except RuntimeError as e:
            logger.warning(f"Mesh reconstruction failed: {e}")
            return Mesh.empty()

        result = Mesh.from_open3d(mesh, method=method)

        if result.is_empty:
            logger.warning(f"{method} produced no faces for {cloud.num_points} points")
        else:
            logger.info(
                f"Built mesh ({method}): {result.num_vertices} vertices, {result.num_faces} faces"
            )
        return result

    def _ball_pivoting_reconstruction(self, pcd) -> "o3d.geometry.TriangleMesh":
        """
        Ball Pivoting Algorithm reconstruction.

        Good for point clouds with uniform density.
        """
        # Compute average distance for radius estimation
        distances = np.asarray(pcd.compute_nearest_neighbor_distance())
        avg_dist = float(np.mean(distances)) if len(distances) else 0.0

        if avg_dist <= 0:
            return o3d.geometry.TriangleMesh()

        # Ball pivoting radii (multiple scales)
        radii = [avg_dist * r for r in self.config.BALL_PIVOT_RADIUS_FACTORS]

        return o3d.geometry.TriangleMesh.create_from_point_cloud_ball_pivoting(
            pcd,
            o3d.utility.DoubleVector(radii)
        )

    def _poisson_reconstruction(self, pcd) -> "o3d.geometry.TriangleMesh":
        """
        Poisson Surface Reconstruction.

        Produces smoother surfaces, good for noisy data.
        """
        mesh, densities = o3d.geometry.TriangleMesh.create_from_point_cloud_poisson(
            pcd,
            depth=self.config.POISSON_DEPTH,
            linear_fit=True
        )

        # Remove low-density vertices (outside point cloud)
        densities = np.asarray(densities)
        if len(densities):
            threshold = np.quantile(densities, self.config.POISSON_DENSITY_QUANTILE)
            mesh.remove_vertices_by_mask(densities < threshold)

        return mesh


def _clean_mesh(mesh) -> "o3d.geometry.TriangleMesh":
    """Clean up mesh artifacts. Non-manifold edges are left for diagnosis."""
    mesh.remove_degenerate_triangles()
    mesh.remove_duplicated_triangles()
    mesh.remove_duplicated_vertices()
    mesh.remove_unreferenced_vertices()
    return mesh


def point_cloud_to_mesh(
    points: np.ndarray,
    method: str = "ball_pivoting"
) -> Mesh:
    """Convenience wrapper: (N, 3) array to Mesh with default settings."""
    config = MeshConfig(METHOD=method)
    return MeshBuilder(config).build_mesh(PointCloud.from_array(points))
