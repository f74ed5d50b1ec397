"""
Synthetic Tabletop Scenes

Generates co-registered point-cloud frames of a simple scene: a planar
tabletop and, optionally, a box-shaped object with one face left out to
simulate a region the sensor never saw.

Usage:
    from objrecon.data.synthetic import SyntheticFrameSource
    source = SyntheticFrameSource(num_frames=3)
    frame = source.next_frame()
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..errors import SensorExhaustedError
from .pointcloud import PointCloud
from .sources import FrameSource

logger = logging.getLogger(__name__)

BOX_FACES = ("bottom", "top", "front", "back", "left", "right")


@dataclass
class SceneConfig:
    """Geometry of the synthetic scene (meters)."""

    # Tabletop in the z=0 plane
    table_size: Tuple[float, float] = (1.0, 1.0)
    table_spacing: float = 0.01

    # Box object
    include_object: bool = True
    box_size: Tuple[float, float, float] = (0.1, 0.1, 0.1)
    box_center_xy: Tuple[float, float] = (0.0, 0.0)
    box_lift: float = 0.03  # gap between table and box bottom
    box_spacing: float = 0.005
    open_face: Optional[str] = "top"  # face with no samples, None = closed

    # Sensor noise
    noise_std: float = 0.0005


def _grid(u_size: float, v_size: float, spacing: float) -> np.ndarray:
    """Cell-centered (u, v) grid covering [0, u_size] x [0, v_size]."""
    nu = max(1, int(round(u_size / spacing)))
    nv = max(1, int(round(v_size / spacing)))
    u = (np.arange(nu) + 0.5) * (u_size / nu)
    v = (np.arange(nv) + 0.5) * (v_size / nv)
    uu, vv = np.meshgrid(u, v, indexing="ij")
    return np.stack([uu.ravel(), vv.ravel()], axis=1)


def make_tabletop(
    size: Tuple[float, float] = (1.0, 1.0),
    spacing: float = 0.01,
    height: float = 0.0
) -> np.ndarray:
    """Points of a horizontal rectangle centered on the origin at z=height."""
    uv = _grid(size[0], size[1], spacing)
    points = np.zeros((len(uv), 3))
    points[:, 0] = uv[:, 0] - size[0] / 2
    points[:, 1] = uv[:, 1] - size[1] / 2
    points[:, 2] = height
    return points


def make_open_box(
    size: Tuple[float, float, float] = (0.1, 0.1, 0.1),
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0),
    spacing: float = 0.005,
    open_face: Optional[str] = "top"
) -> np.ndarray:
    """
    Surface samples of an axis-aligned box.

    Args:
        size: (sx, sy, sz) extents
        origin: minimum corner
        spacing: sample spacing on each face
        open_face: one of BOX_FACES to leave unsampled, or None

    Returns:
        (N, 3) points; faces do not share samples along their edges
    """
    if open_face is not None and open_face not in BOX_FACES:
        raise ValueError(f"Unknown face {open_face}, expected one of {BOX_FACES}")

    sx, sy, sz = size
    ox, oy, oz = origin
    faces = []

    def add(name, uv, build):
        if name != open_face:
            faces.append(build(uv))

    uv_xy = _grid(sx, sy, spacing)
    uv_xz = _grid(sx, sz, spacing)
    uv_yz = _grid(sy, sz, spacing)

    add("bottom", uv_xy, lambda g: np.column_stack([ox + g[:, 0], oy + g[:, 1], np.full(len(g), oz)]))
    add("top", uv_xy, lambda g: np.column_stack([ox + g[:, 0], oy + g[:, 1], np.full(len(g), oz + sz)]))
    add("front", uv_xz, lambda g: np.column_stack([ox + g[:, 0], np.full(len(g), oy), oz + g[:, 1]]))
    add("back", uv_xz, lambda g: np.column_stack([ox + g[:, 0], np.full(len(g), oy + sy), oz + g[:, 1]]))
    add("left", uv_yz, lambda g: np.column_stack([np.full(len(g), ox), oy + g[:, 0], oz + g[:, 1]]))
    add("right", uv_yz, lambda g: np.column_stack([np.full(len(g), ox + sx), oy + g[:, 0], oz + g[:, 1]]))

    return np.vstack(faces)


def make_scene(
    config: Optional[SceneConfig] = None,
    seed: Optional[int] = None
) -> PointCloud:
    """One noisy frame of the configured scene."""
    config = config or SceneConfig()
    rng = np.random.default_rng(seed)

    parts = [make_tabletop(config.table_size, config.table_spacing)]

    if config.include_object:
        sx, sy, _ = config.box_size
        cx, cy = config.box_center_xy
        origin = (cx - sx / 2, cy - sy / 2, config.box_lift)
        parts.append(make_open_box(
            config.box_size, origin, config.box_spacing, config.open_face
        ))

    points = np.vstack(parts)
    if config.noise_std > 0:
        points = points + rng.normal(0.0, config.noise_std, size=points.shape)

    return PointCloud.from_array(points)


class SyntheticFrameSource(FrameSource):
    """Noisy frames of a fixed synthetic scene; exhausted after `num_frames`."""

    def __init__(
        self,
        num_frames: int = 3,
        config: Optional[SceneConfig] = None,
        seed: int = 0
    ):
        self.num_frames = num_frames
        self.config = config or SceneConfig()
        self.seed = seed
        self._delivered = 0

    def next_frame(self) -> PointCloud:
        if self._delivered >= self.num_frames:
            raise SensorExhaustedError(
                f"Synthetic source exhausted after {self.num_frames} frames"
            )

        frame = make_scene(self.config, seed=self.seed + self._delivered)
        self._delivered += 1
        return frame
