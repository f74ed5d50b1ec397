"""
Robust Plane Fitting

RANSAC plane estimation (open3d) with an explicit random seed, used to strip the
support surface (table, floor) from a scene and as a standalone platform
extraction service.

Supported model types:
- plane: any orientation
- perpendicular_plane: plane perpendicular to an axis (normal along the axis)
- parallel_plane: plane parallel to an axis (normal orthogonal to the axis)

Usage:
    from objrecon.segmentation.plane import PlaneModelFitter
    fitter = PlaneModelFitter(seed=42)
    model = fitter.fit(cloud, distance_tolerance=0.01, max_iterations=1000)
    table = cloud.select(model.inliers)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union

import numpy as np

from ..data.pointcloud import PointCloud
from ..errors import InvalidRequestError

logger = logging.getLogger(__name__)

# Angular tolerance used when a constrained model is asked for with eps_angle=0
DEFAULT_EPS_ANGLE = 0.1


class PlaneModelType(Enum):
    """Plane model variants."""
    PLANE = "plane"
    PERPENDICULAR_PLANE = "perpendicular_plane"
    PARALLEL_PLANE = "parallel_plane"

    @classmethod
    def parse(cls, value: Union[str, "PlaneModelType"]) -> "PlaneModelType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(m.value for m in cls)
            raise InvalidRequestError(
                f"Unknown plane model type '{value}', expected one of: {names}"
            ) from None


@dataclass
class PlaneModel:
    """Fitted plane ax + by + cz + d = 0 and its inliers over the input cloud."""

    coefficients: np.ndarray  # (4,) with unit normal, zeros if no plane
    inliers: np.ndarray       # sorted indices into the input cloud
    num_points: int           # size of the input cloud

    @classmethod
    def empty(cls, num_points: int) -> "PlaneModel":
        return cls(
            coefficients=np.zeros(4),
            inliers=np.zeros(0, dtype=np.int64),
            num_points=num_points,
        )

    @property
    def normal(self) -> np.ndarray:
        return self.coefficients[:3]

    @property
    def offset(self) -> float:
        return float(self.coefficients[3])

    @property
    def num_inliers(self) -> int:
        return len(self.inliers)

    @property
    def is_empty(self) -> bool:
        return self.num_inliers == 0

    @property
    def inlier_ratio(self) -> float:
        if self.num_points == 0:
            return 0.0
        return self.num_inliers / self.num_points

    @property
    def outliers(self) -> np.ndarray:
        mask = np.ones(self.num_points, dtype=bool)
        mask[self.inliers] = False
        return np.flatnonzero(mask)

    def signed_distances(self, points: np.ndarray) -> np.ndarray:
        return np.asarray(points) @ self.normal + self.offset

    def distances(self, points: np.ndarray) -> np.ndarray:
        return np.abs(self.signed_distances(points))

    def project(self, points: np.ndarray) -> np.ndarray:
        """Orthogonal projection of points onto the plane."""
        points = np.asarray(points)
        return points - np.outer(self.signed_distances(points), self.normal)


def _points_of(cloud: Union[PointCloud, np.ndarray]) -> np.ndarray:
    if isinstance(cloud, PointCloud):
        return cloud.points
    return PointCloud.from_array(cloud).points


def _plane_from_points(sample: np.ndarray) -> Optional[np.ndarray]:
    """Plane through three points, None if they are collinear."""
    normal = np.cross(sample[1] - sample[0], sample[2] - sample[0])
    norm = np.linalg.norm(normal)
    if norm < 1e-12:
        return None
    normal = normal / norm
    return np.append(normal, -normal @ sample[0])


def _least_squares_plane(points: np.ndarray) -> Optional[np.ndarray]:
    """Total least squares plane via SVD of the centered points."""
    if len(points) < 3:
        return None
    centroid = points.mean(axis=0)
    try:
        _, _, vt = np.linalg.svd(points - centroid, full_matrices=False)
    except np.linalg.LinAlgError:
        return None
    normal = vt[-1]
    return np.append(normal, -normal @ centroid)


def _is_degenerate(points: np.ndarray) -> bool:
    """True when the points span no plane (coincident or collinear)."""
    spread = np.linalg.svd(points - points.mean(axis=0), compute_uv=False)
    return spread[1] <= 1e-9 * max(spread[0], 1e-12)


def _orient(plane: np.ndarray) -> np.ndarray:
    """Flip the plane so its normal points up, or along its dominant axis if vertical."""
    normal = plane[:3]
    if abs(normal[2]) > 1e-6:
        flip = normal[2] < 0
    else:
        dominant = int(np.argmax(np.abs(normal)))
        flip = normal[dominant] < 0
    return -plane if flip else plane


class PlaneModelFitter:
    """
    RANSAC plane fitter.

    Unconstrained planes come from open3d's `segment_plane`; the axis
    constrained model types run a numpy RANSAC that only scores planes
    within `eps_angle` of the constraint. Either way the winner is refit
    by least squares on its inliers.

    Holds configuration only. Every `fit` call reseeds from `seed`, so
    equal seeds give equal models.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        model_type: Union[str, PlaneModelType] = PlaneModelType.PLANE,
        axis: Sequence[float] = (0.0, 0.0, 1.0),
        eps_angle: float = 0.0
    ):
        self.seed = seed
        self.model_type = PlaneModelType.parse(model_type)

        axis = np.asarray(axis, dtype=np.float64)
        norm = np.linalg.norm(axis)
        if axis.shape != (3,) or norm < 1e-12:
            raise ValueError(f"axis must be a non-zero 3-vector, got {axis}")
        self.axis = axis / norm

        if eps_angle < 0:
            raise ValueError(f"eps_angle must be >= 0, got {eps_angle}")
        self.eps_angle = eps_angle or DEFAULT_EPS_ANGLE

    def _accepts(self, normal: np.ndarray) -> bool:
        if self.model_type is PlaneModelType.PLANE:
            return True
        alignment = abs(float(normal @ self.axis))
        if self.model_type is PlaneModelType.PERPENDICULAR_PLANE:
            return alignment >= np.cos(self.eps_angle)
        return alignment <= np.sin(self.eps_angle)

    def _segment_plane(
        self,
        points: np.ndarray,
        distance_tolerance: float,
        max_iterations: int
    ) -> Optional[np.ndarray]:
        """Unconstrained search via open3d's RANSAC."""
        import open3d as o3d

        if self.seed is not None:
            o3d.utility.random.seed(int(self.seed))

        pcd = PointCloud.from_array(points).to_open3d()
        try:
            plane, _ = pcd.segment_plane(
                distance_threshold=distance_tolerance,
                ransac_n=3,
                num_iterations=max_iterations,
            )
        except RuntimeError as e:
            logger.warning(f"open3d plane segmentation failed: {e}")
            return None

        plane = np.asarray(plane, dtype=np.float64)
        norm = np.linalg.norm(plane[:3])
        if not np.isfinite(norm) or norm < 1e-12:
            return None
        return plane / norm

    def _constrained_search(
        self,
        points: np.ndarray,
        distance_tolerance: float,
        max_iterations: int
    ) -> Optional[np.ndarray]:
        """RANSAC restricted to planes accepted by the axis constraint."""
        n = len(points)
        rng = np.random.default_rng(self.seed)

        best_plane = None
        best_count = 0

        for _ in range(max_iterations):
            sample = rng.choice(n, size=3, replace=False)
            plane = _plane_from_points(points[sample])

            if plane is None or not self._accepts(plane[:3]):
                continue

            count = int(np.count_nonzero(np.abs(points @ plane[:3] + plane[3]) <= distance_tolerance))

            # Strictly greater: ties keep the first plane found
            if count > best_count:
                best_plane, best_count = plane, count
                if count == n:
                    break

        return best_plane

    def fit(
        self,
        cloud: Union[PointCloud, np.ndarray],
        distance_tolerance: float,
        max_iterations: int
    ) -> PlaneModel:
        """
        Find the plane with the most inliers.

        Args:
            cloud: Input points
            distance_tolerance: Max point-to-plane distance of an inlier
            max_iterations: Number of random 3-point samples

        Returns:
            PlaneModel; zero inliers when no acceptable plane exists
        """
        if distance_tolerance <= 0:
            raise ValueError(f"distance_tolerance must be > 0, got {distance_tolerance}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")

        points = _points_of(cloud)
        n = len(points)

        if n < 3:
            logger.debug(f"Plane fit skipped: only {n} points")
            return PlaneModel.empty(n)

        if _is_degenerate(points):
            logger.debug("Plane fit skipped: points are collinear")
            return PlaneModel.empty(n)

        if self.model_type is PlaneModelType.PLANE:
            best_plane = self._segment_plane(points, distance_tolerance, max_iterations)
        else:
            best_plane = self._constrained_search(points, distance_tolerance, max_iterations)

        if best_plane is None:
            logger.debug("No acceptable plane found")
            return PlaneModel.empty(n)

        best_mask = np.abs(points @ best_plane[:3] + best_plane[3]) <= distance_tolerance
        best_count = int(best_mask.sum())
        if best_count < 3:
            logger.debug(f"Plane has only {best_count} inliers")
            return PlaneModel.empty(n)

        # Refine on the consensus set
        refined = _least_squares_plane(points[best_mask])
        if refined is not None and self._accepts(refined[:3]):
            refined_mask = np.abs(points @ refined[:3] + refined[3]) <= distance_tolerance
            if int(refined_mask.sum()) >= best_count:
                best_plane, best_mask = refined, refined_mask

        model = PlaneModel(
            coefficients=_orient(best_plane),
            inliers=np.flatnonzero(best_mask).astype(np.int64),
            num_points=n,
        )

        logger.debug(
            f"Plane {np.round(model.coefficients, 4).tolist()}: "
            f"{model.num_inliers}/{n} inliers"
        )
        return model


def fit_plane(
    cloud: Union[PointCloud, np.ndarray],
    distance_tolerance: float = 0.01,
    max_iterations: int = 1000,
    seed: Optional[int] = None
) -> PlaneModel:
    """Unconstrained plane fit with default settings."""
    return PlaneModelFitter(seed=seed).fit(cloud, distance_tolerance, max_iterations)


def extract_platform(
    cloud: Union[PointCloud, np.ndarray],
    distance_tolerance: float = 0.01,
    model_type: Union[str, PlaneModelType] = "plane",
    max_iterations: int = 1000,
    seed: Optional[int] = None,
    axis: Sequence[float] = (0.0, 0.0, 1.0),
    eps_angle: float = 0.0,
    project_inliers: bool = False
) -> PointCloud:
    """
    Isolate the dominant plane of a cloud (table top, floor, shelf).

    Args:
        cloud: Input cloud
        distance_tolerance: Inlier distance threshold
        model_type: plane, perpendicular_plane or parallel_plane
        max_iterations: RANSAC iterations
        seed: RANSAC seed
        axis: Reference axis for constrained model types
        eps_angle: Angular tolerance in radians for constrained model types
        project_inliers: Snap the returned points onto the fitted plane

    Returns:
        PointCloud of the plane inliers (empty if no plane was found)
    """
    if not isinstance(cloud, PointCloud):
        cloud = PointCloud.from_array(cloud)

    fitter = PlaneModelFitter(
        seed=seed, model_type=model_type, axis=axis, eps_angle=eps_angle
    )
    model = fitter.fit(cloud, distance_tolerance, max_iterations)

    platform = cloud.select(model.inliers)
    if project_inliers and not platform.is_empty:
        platform.points = model.project(platform.points)

    logger.info(
        f"Extracted platform ({fitter.model_type.value}): "
        f"{platform.num_points}/{cloud.num_points} points"
    )
    return platform
