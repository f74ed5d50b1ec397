"""
Configuration for object reconstruction.
All tunable thresholds of the pipeline stages live here.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from pathlib import Path


@dataclass
class SegmentationConfig:
    """Support plane removal and candidate clustering."""

    # Plane fit (RANSAC)
    PLANE_DISTANCE_TOLERANCE: float = 0.01  # meters
    PLANE_MAX_ITERATIONS: int = 1000
    PLANE_MODEL_TYPE: str = "plane"  # plane | perpendicular_plane | parallel_plane
    PLANE_AXIS: Tuple[float, float, float] = (0.0, 0.0, 1.0)
    PLANE_EPS_ANGLE: float = 0.0  # radians, 0 → default for constrained types

    # Planes covering a smaller share of the cloud are not removed (0 → always remove)
    MIN_PLANE_INLIER_RATIO: float = 0.0

    # Euclidean clustering
    CLUSTER_TOLERANCE: float = 0.02  # neighbor radius, meters
    MIN_CLUSTER_SIZE: int = 50
    MAX_CLUSTER_SIZE: Optional[int] = None

    # RANSAC seed (None → Config.SEED)
    SEED: Optional[int] = None


@dataclass
class MeshConfig:
    """Surface reconstruction."""

    METHOD: str = "ball_pivoting"  # or "poisson"
    MIN_POINTS: int = 4

    # Normal estimation
    NORMAL_RADIUS: float = 0.05
    NORMAL_MAX_NN: int = 30
    ORIENT_NORMALS_K: int = 10

    # Ball pivoting radii as multiples of mean NN distance
    BALL_PIVOT_RADIUS_FACTORS: List[float] = field(
        default_factory=lambda: [1.0, 2.0, 4.0]
    )
    MIN_FACES: int = 10

    # Poisson
    POISSON_DEPTH: int = 8
    POISSON_DENSITY_QUANTILE: float = 0.05
    POISSON_FALLBACK: bool = False  # Poisson vertices are not input points


@dataclass
class RepairConfig:
    """Occlusion hole detection and filling."""

    MIN_HOLE_EDGES: int = 3
    MAX_HOLE_EDGES: Optional[int] = None  # larger holes are reported, not filled


@dataclass
class PipelineConfig:
    """Orchestration of one reconstruction request."""

    FRAME_COUNT: int = 1
    REPAIR_MODE: str = "repair"  # repair | detect_only | skip
    REJECT_CONCURRENT: bool = False  # False → queue behind the running request

    # Diagnostic artifacts
    OUTPUT_DIR: Optional[Path] = None
    CLOUD_FORMAT: str = "pcd"
    MESH_FORMAT: str = "ply"


@dataclass
class Config:
    """Master configuration combining all sub-configs."""

    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    mesh: MeshConfig = field(default_factory=MeshConfig)
    repair: RepairConfig = field(default_factory=RepairConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    # Versioning
    VERSION: str = "objrecon_v0.1.0"

    # Random seed for reproducibility
    SEED: int = 42


# Default config instance
default_config = Config()
