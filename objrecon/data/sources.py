"""
Sensor Frame Sources

A frame source hands out one point-cloud frame per `next_frame()` call,
blocking until a frame is available. Sources raise SensorExhaustedError
when they cannot deliver.

Available sources:
- IterableFrameSource: frames from a list / generator
- QueueFrameSource: frames pushed by a sensor callback (thread-safe)
- DirectoryFrameSource: frames stored as .ply / .pcd / .npy files

Usage:
    from objrecon.data.sources import DirectoryFrameSource
    source = DirectoryFrameSource("scans/")
    frame = source.next_frame()
"""

import logging
import queue
from pathlib import Path
from typing import Iterable, List, Optional, Union

import numpy as np

from ..errors import SensorExhaustedError
from .pointcloud import PointCloud

logger = logging.getLogger(__name__)

FRAME_EXTENSIONS = {".ply", ".pcd", ".npy", ".xyz"}


def _to_cloud(frame) -> PointCloud:
    if isinstance(frame, PointCloud):
        return frame
    return PointCloud.from_array(np.asarray(frame))


def load_point_cloud(path: Union[str, Path]) -> PointCloud:
    """
    Load a point cloud file.

    Args:
        path: .ply / .pcd / .xyz (via open3d) or .npy (N, 3) array

    Returns:
        PointCloud
    """
    path = Path(path)

    if path.suffix.lower() == ".npy":
        return PointCloud.from_array(np.load(path))

    import open3d as o3d

    pcd = o3d.io.read_point_cloud(str(path))
    return PointCloud.from_open3d(pcd)


class FrameSource:
    """Base class for sensor frame sources."""

    def next_frame(self) -> PointCloud:
        raise NotImplementedError


class IterableFrameSource(FrameSource):
    """Frames from an in-memory iterable of PointCloud or (N, 3) arrays."""

    def __init__(self, frames: Iterable):
        self._frames = iter(frames)
        self.frames_delivered = 0

    def next_frame(self) -> PointCloud:
        try:
            frame = next(self._frames)
        except StopIteration:
            raise SensorExhaustedError(
                f"Frame source exhausted after {self.frames_delivered} frames"
            ) from None

        self.frames_delivered += 1
        return _to_cloud(frame)


class QueueFrameSource(FrameSource):
    """
    Frames pushed asynchronously by a sensor driver.

    `push` is meant to be called from the sensor callback thread;
    `next_frame` blocks until a frame arrives or `timeout` expires.
    """

    def __init__(self, timeout: Optional[float] = None, maxsize: int = 0):
        """
        Args:
            timeout: Seconds to wait per frame (None = wait forever)
            maxsize: Queue bound, 0 = unbounded
        """
        self.timeout = timeout
        self._queue: "queue.Queue[PointCloud]" = queue.Queue(maxsize=maxsize)

    def push(self, frame) -> None:
        self._queue.put(_to_cloud(frame))

    def pending(self) -> int:
        return self._queue.qsize()

    def next_frame(self) -> PointCloud:
        try:
            return self._queue.get(timeout=self.timeout)
        except queue.Empty:
            raise SensorExhaustedError(
                f"No frame received within {self.timeout}s"
            ) from None


class DirectoryFrameSource(FrameSource):
    """Frames read in sorted filename order from a directory."""

    def __init__(self, directory: Union[str, Path], pattern: str = "*"):
        self.directory = Path(directory)
        if not self.directory.is_dir():
            raise SensorExhaustedError(f"Frame directory not found: {self.directory}")

        self.files: List[Path] = sorted(
            f for f in self.directory.glob(pattern)
            if f.suffix.lower() in FRAME_EXTENSIONS
        )
        self._position = 0

        logger.info(f"Found {len(self.files)} frames in {self.directory}")

    def next_frame(self) -> PointCloud:
        if self._position >= len(self.files):
            raise SensorExhaustedError(
                f"No more frames in {self.directory} ({len(self.files)} total)"
            )

        path = self.files[self._position]
        self._position += 1

        try:
            cloud = load_point_cloud(path)
        except (OSError, ValueError) as e:
            raise SensorExhaustedError(f"Could not read frame {path}: {e}") from e
        logger.debug(f"Loaded frame {path.name}: {cloud.num_points} points")
        return cloud
