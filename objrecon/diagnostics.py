"""
Diagnostic Sinks and Result Broadcasting

Intermediate artifacts of each pipeline stage are written to an artifact
sink for offline inspection. Sinks are best-effort: they report failure
through their return value and the pipeline carries on.

The broadcaster hands candidates and result meshes to any subscribed
viewer. Delivery is fire-and-forget.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .data.pointcloud import PointCloud
from .meshing.export import export_mesh, export_pointcloud
from .meshing.mesh import Mesh

logger = logging.getLogger(__name__)


def default_output_directory(base: Union[str, Path] = "output") -> Path:
    """Timestamped directory under `base` for one session's artifacts."""
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return Path(base) / stamp


class ArtifactSink:
    """Accepts named clouds and meshes. Returns True when persisted."""

    def write_cloud(self, name: str, cloud: PointCloud) -> bool:
        raise NotImplementedError

    def write_mesh(self, name: str, mesh: Mesh) -> bool:
        raise NotImplementedError


class NullArtifactSink(ArtifactSink):
    """Discards everything."""

    def write_cloud(self, name: str, cloud: PointCloud) -> bool:
        return True

    def write_mesh(self, name: str, mesh: Mesh) -> bool:
        return True


class MemoryArtifactSink(ArtifactSink):
    """Keeps artifacts in memory, in write order."""

    def __init__(self):
        self.clouds: Dict[str, PointCloud] = {}
        self.meshes: Dict[str, Mesh] = {}
        self.names: List[str] = []

    def write_cloud(self, name: str, cloud: PointCloud) -> bool:
        self.clouds[name] = cloud
        self.names.append(name)
        return True

    def write_mesh(self, name: str, mesh: Mesh) -> bool:
        self.meshes[name] = mesh
        self.names.append(name)
        return True


class DirectoryArtifactSink(ArtifactSink):
    """Writes artifacts as files into a directory."""

    def __init__(
        self,
        directory: Union[str, Path],
        cloud_format: str = "pcd",
        mesh_format: str = "ply"
    ):
        self.directory = Path(directory)
        self.cloud_format = cloud_format
        self.mesh_format = mesh_format

        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"Writing diagnostic artifacts to {self.directory}")

    def write_cloud(self, name: str, cloud: PointCloud) -> bool:
        path = self.directory / f"{name}.{self.cloud_format}"
        return export_pointcloud(cloud, path, format=self.cloud_format)

    def write_mesh(self, name: str, mesh: Mesh) -> bool:
        path = self.directory / f"{name}.{self.mesh_format}"
        return export_mesh(mesh, path, format=self.mesh_format)


class ResultBroadcaster:
    """Topic-based fan-out to subscriber callbacks."""

    def __init__(self):
        self._subscribers: List[Tuple[Optional[str], Callable[[str, Any], None]]] = []

    def subscribe(
        self,
        callback: Callable[[str, Any], None],
        topic: Optional[str] = None
    ) -> None:
        """Register `callback(topic, payload)`; topic None receives everything."""
        self._subscribers.append((topic, callback))

    def broadcast(self, topic: str, payload: Any) -> None:
        for wanted, callback in self._subscribers:
            if wanted is not None and wanted != topic:
                continue
            try:
                callback(topic, payload)
            except Exception as e:
                logger.warning(f"Subscriber for '{topic}' failed: {e}")
