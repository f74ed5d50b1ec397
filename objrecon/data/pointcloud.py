"""
Point Cloud Container

Order-preserving point cloud with optional per-point colors and normals.
Empty clouds are valid and mean "no data".

Usage:
    from objrecon.data import PointCloud
    cloud = PointCloud.from_array(points)
    merged = PointCloud.concatenate([cloud_a, cloud_b])
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from ..errors import InvalidCloudError

logger = logging.getLogger(__name__)


def _as_points(array, name: str) -> np.ndarray:
    array = np.asarray(array, dtype=np.float64)
    if array.size == 0:
        return np.zeros((0, 3), dtype=np.float64)
    if array.ndim != 2 or array.shape[1] != 3:
        raise InvalidCloudError(f"{name} must have shape (N, 3), got {array.shape}")
    return array


@dataclass
class PointCloud:
    """Point cloud with optional colors and normals."""

    points: np.ndarray  # (N, 3)
    colors: Optional[np.ndarray] = None  # (N, 3) in [0, 1]
    normals: Optional[np.ndarray] = None  # (N, 3)

    def __post_init__(self):
        self.points = _as_points(self.points, "points")
        n = len(self.points)

        if self.colors is not None:
            self.colors = _as_points(self.colors, "colors")
            if len(self.colors) != n:
                raise InvalidCloudError(f"{len(self.colors)} colors for {n} points")
        if self.normals is not None:
            self.normals = _as_points(self.normals, "normals")
            if len(self.normals) != n:
                raise InvalidCloudError(f"{len(self.normals)} normals for {n} points")

    @property
    def num_points(self) -> int:
        return self.points.shape[0]

    def __len__(self) -> int:
        return self.num_points

    @property
    def is_empty(self) -> bool:
        return self.num_points == 0

    @classmethod
    def empty(cls) -> "PointCloud":
        return cls(points=np.zeros((0, 3), dtype=np.float64))

    @classmethod
    def from_array(
        cls,
        points: np.ndarray,
        colors: Optional[np.ndarray] = None,
        normals: Optional[np.ndarray] = None
    ) -> "PointCloud":
        return cls(points=points, colors=colors, normals=normals)

    def select(self, indices: np.ndarray) -> "PointCloud":
        """Subset of points, in the order given by `indices`."""
        indices = np.asarray(indices, dtype=np.int64)
        return PointCloud(
            points=self.points[indices],
            colors=None if self.colors is None else self.colors[indices],
            normals=None if self.normals is None else self.normals[indices],
        )

    @classmethod
    def concatenate(cls, clouds: Sequence["PointCloud"]) -> "PointCloud":
        """
        Stack clouds in the given order.

        Colors and normals survive only if every non-empty part carries them.
        No deduplication is done.
        """
        parts = [c for c in clouds if not c.is_empty]
        if not parts:
            return cls.empty()

        points = np.vstack([c.points for c in parts])

        colors = None
        if all(c.colors is not None for c in parts):
            colors = np.vstack([c.colors for c in parts])

        normals = None
        if all(c.normals is not None for c in parts):
            normals = np.vstack([c.normals for c in parts])

        return cls(points=points, colors=colors, normals=normals)

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Axis-aligned (min, max) corners. Zeros for an empty cloud."""
        if self.is_empty:
            return np.zeros(3), np.zeros(3)
        return self.points.min(axis=0), self.points.max(axis=0)

    def to_open3d(self):
        import open3d as o3d

        pcd = o3d.geometry.PointCloud()
        pcd.points = o3d.utility.Vector3dVector(self.points)
        if self.colors is not None:
            pcd.colors = o3d.utility.Vector3dVector(self.colors)
        if self.normals is not None:
            pcd.normals = o3d.utility.Vector3dVector(self.normals)
        return pcd

    @classmethod
    def from_open3d(cls, pcd) -> "PointCloud":
        points = np.asarray(pcd.points)
        colors = np.asarray(pcd.colors) if pcd.has_colors() else None
        normals = np.asarray(pcd.normals) if pcd.has_normals() else None
        return cls(points=points, colors=colors, normals=normals)
