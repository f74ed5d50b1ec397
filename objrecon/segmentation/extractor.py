"""
Object Candidate Extraction

Removes the dominant support plane from an accumulated scene and splits
what is left into spatially separate object candidates.

Usage:
    from objrecon.segmentation import CandidateExtractor
    extractor = CandidateExtractor(default_config.segmentation, seed=42)
    candidates = extractor.extract(cloud)
    for candidate in candidates:
        ...
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

import numpy as np

from ..config import SegmentationConfig
from ..data.pointcloud import PointCloud
from .clustering import euclidean_clusters
from .plane import PlaneModel, PlaneModelFitter

logger = logging.getLogger(__name__)

# RGB per candidate for visualization, cycled
CANDIDATE_COLORS = [
    (0.90, 0.10, 0.10),
    (0.10, 0.70, 0.10),
    (0.10, 0.30, 0.90),
    (0.90, 0.70, 0.10),
    (0.60, 0.10, 0.80),
    (0.10, 0.80, 0.80),
]


@dataclass
class Candidate:
    """One object hypothesis and where its points came from."""

    cloud: PointCloud
    source_indices: np.ndarray  # indices into the extracted scene cloud

    @property
    def num_points(self) -> int:
        return self.cloud.num_points


@dataclass
class CandidateSet:
    """
    Ordered, disjoint object candidates of one scene.

    Behaves as a sequence of PointCloud. The removed plane and the
    plane-free remainder are kept for diagnostics.
    """

    candidates: List[Candidate] = field(default_factory=list)
    plane: Optional[PlaneModel] = None
    remaining: PointCloud = field(default_factory=PointCloud.empty)

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self) -> Iterator[PointCloud]:
        return (c.cloud for c in self.candidates)

    def __getitem__(self, index: int) -> PointCloud:
        return self.candidates[index].cloud

    @property
    def is_empty(self) -> bool:
        return len(self.candidates) == 0

    @property
    def clouds(self) -> List[PointCloud]:
        return [c.cloud for c in self.candidates]

    @property
    def source_indices(self) -> List[np.ndarray]:
        return [c.source_indices for c in self.candidates]


class CandidateExtractor:
    """
    Plane removal followed by Euclidean clustering.

    Stateless between calls: the fitter only carries configuration.
    """

    def __init__(
        self,
        config: Optional[SegmentationConfig] = None,
        seed: Optional[int] = None,
        fitter: Optional[PlaneModelFitter] = None,
        broadcaster=None
    ):
        """
        Args:
            config: Segmentation thresholds
            seed: RANSAC seed, used when config.SEED is None
            fitter: Custom plane fitter (built from config if None)
            broadcaster: ResultBroadcaster used by publish()
        """
        self.config = config or SegmentationConfig()
        self.broadcaster = broadcaster

        if fitter is None:
            fitter = PlaneModelFitter(
                seed=self.config.SEED if self.config.SEED is not None else seed,
                model_type=self.config.PLANE_MODEL_TYPE,
                axis=self.config.PLANE_AXIS,
                eps_angle=self.config.PLANE_EPS_ANGLE,
            )
        self.fitter = fitter

    def extract(self, cloud: PointCloud) -> CandidateSet:
        """
        Split a scene into object candidates.

        Args:
            cloud: Accumulated scene

        Returns:
            CandidateSet, empty when nothing but the support plane (or
            nothing at all) is in the scene
        """
        if cloud.is_empty:
            logger.info("Empty cloud, no candidates")
            return CandidateSet()

        cfg = self.config

        # Step 1: support plane removal
        plane = self.fitter.fit(
            cloud, cfg.PLANE_DISTANCE_TOLERANCE, cfg.PLANE_MAX_ITERATIONS
        )

        covers_cloud = plane.num_inliers == cloud.num_points
        if not plane.is_empty and (
            covers_cloud or plane.inlier_ratio >= cfg.MIN_PLANE_INLIER_RATIO
        ):
            working = plane.outliers
            logger.info(
                f"Removed support plane: {plane.num_inliers}/{cloud.num_points} points"
            )
        else:
            logger.info(
                f"No support plane ({plane.num_inliers}/{cloud.num_points} inliers), "
                "clustering the whole cloud"
            )
            plane = PlaneModel.empty(cloud.num_points)
            working = np.arange(cloud.num_points, dtype=np.int64)

        remaining = cloud.select(working)

        # Step 2: clustering
        clusters = euclidean_clusters(
            remaining.points,
            radius=cfg.CLUSTER_TOLERANCE,
            min_points=cfg.MIN_CLUSTER_SIZE,
            max_points=cfg.MAX_CLUSTER_SIZE,
        )

        candidates = []
        for local in clusters:
            source = working[local]
            candidates.append(Candidate(cloud=cloud.select(source), source_indices=source))

        for i, candidate in enumerate(candidates):
            logger.debug(f"  Candidate {i}: {candidate.num_points} points")
        logger.info(f"Extracted {len(candidates)} object candidates")

        return CandidateSet(candidates=candidates, plane=plane, remaining=remaining)

    def publish(self, candidates: CandidateSet) -> None:
        """Broadcast candidates for external inspection."""
        if self.broadcaster is None or len(candidates) == 0:
            return

        for i, cloud in enumerate(candidates):
            self.broadcaster.broadcast(
                "object_candidates",
                {
                    "name": f"candidate_{i}",
                    "index": i,
                    "points": cloud.points,
                    "color": CANDIDATE_COLORS[i % len(CANDIDATE_COLORS)],
                },
            )
