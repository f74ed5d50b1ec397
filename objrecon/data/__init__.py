"""Point cloud containers, sensor frame sources and accumulation."""

from .pointcloud import PointCloud
from .sources import (
    FrameSource,
    IterableFrameSource,
    QueueFrameSource,
    DirectoryFrameSource,
    load_point_cloud,
)
from .accumulator import PointCloudAccumulator
from .synthetic import SceneConfig, SyntheticFrameSource, make_scene

__all__ = [
    "PointCloud",
    "FrameSource",
    "IterableFrameSource",
    "QueueFrameSource",
    "DirectoryFrameSource",
    "load_point_cloud",
    "PointCloudAccumulator",
    "SceneConfig",
    "SyntheticFrameSource",
    "make_scene",
]
