"""
Point Cloud Accumulation

Merges successive sensor frames into one cloud, in arrival order.
Frames are assumed to be co-registered already; nothing is deduplicated,
filtered or aligned here.
"""

import logging

from .pointcloud import PointCloud
from .sources import FrameSource

logger = logging.getLogger(__name__)


class PointCloudAccumulator:
    """Pulls a fixed number of frames from a source and concatenates them."""

    def __init__(self, source: FrameSource):
        self.source = source

    def accumulate(self, frame_count: int) -> PointCloud:
        """
        Block until `frame_count` frames have arrived and merge them.

        Args:
            frame_count: Number of frames to pull (0 returns an empty cloud)

        Returns:
            Combined PointCloud

        Raises:
            SensorExhaustedError: the source ran out before `frame_count` frames
        """
        if frame_count < 0:
            raise ValueError(f"frame_count must be >= 0, got {frame_count}")

        if frame_count == 0:
            return PointCloud.empty()

        frames = []
        for i in range(frame_count):
            frame = self.source.next_frame()
            logger.debug(f"Frame {i + 1}/{frame_count}: {frame.num_points} points")
            frames.append(frame)

        cloud = PointCloud.concatenate(frames)
        logger.info(f"Accumulated {frame_count} frames into {cloud.num_points} points")
        return cloud
