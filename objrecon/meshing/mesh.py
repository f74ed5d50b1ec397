"""
Triangle Mesh Container

Vertices plus faces with the edge bookkeeping needed to find holes.
A boundary edge is an edge used by exactly one face.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..errors import MalformedMeshError

logger = logging.getLogger(__name__)

Edge = Tuple[int, int]


@dataclass
class Mesh:
    """Surface mesh."""

    vertices: np.ndarray  # (V, 3) vertex positions
    faces: np.ndarray     # (F, 3) vertex indices
    vertex_normals: Optional[np.ndarray] = None  # (V, 3)

    # Reconstruction method that produced the mesh
    method: str = "unknown"

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)

        faces = np.asarray(self.faces, dtype=np.int64)
        if faces.size == 0:
            faces = np.zeros((0, 3), dtype=np.int64)
        if faces.ndim != 2 or faces.shape[1] != 3:
            raise MalformedMeshError(f"faces must have shape (F, 3), got {faces.shape}")
        if faces.size and (faces.min() < 0 or faces.max() >= len(self.vertices)):
            raise MalformedMeshError(
                f"face indices must lie in [0, {len(self.vertices)}), "
                f"got [{faces.min()}, {faces.max()}]"
            )
        self.faces = faces

        if self.vertex_normals is not None:
            self.vertex_normals = np.asarray(self.vertex_normals, dtype=np.float64)
            if self.vertex_normals.shape != self.vertices.shape:
                self.vertex_normals = None

    @classmethod
    def empty(cls, method: str = "empty") -> "Mesh":
        return cls(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3), dtype=np.int64), method=method)

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    @property
    def num_faces(self) -> int:
        return len(self.faces)

    @property
    def is_empty(self) -> bool:
        return self.num_faces == 0

    def directed_edges(self) -> np.ndarray:
        """(3F, 2) edges as they appear in each face's winding, face by face."""
        if self.is_empty:
            return np.zeros((0, 2), dtype=np.int64)
        nxt = np.roll(self.faces, -1, axis=1)
        return np.stack([self.faces, nxt], axis=2).reshape(-1, 2)

    def edge_counts(self) -> Dict[Edge, int]:
        """Undirected edge (low, high) -> number of incident faces."""
        edges = np.sort(self.directed_edges(), axis=1)
        if len(edges) == 0:
            return {}
        unique, counts = np.unique(edges, axis=0, return_counts=True)
        return {(int(a), int(b)): int(c) for (a, b), c in zip(unique, counts)}

    def boundary_edges(self) -> List[Edge]:
        """Edges used by exactly one face, directed as in that face."""
        counts = self.edge_counts()
        return [
            (int(a), int(b)) for a, b in self.directed_edges()
            if counts[(min(a, b), max(a, b))] == 1
        ]

    def non_manifold_edges(self) -> List[Edge]:
        """Undirected edges shared by more than two faces."""
        return sorted(e for e, c in self.edge_counts().items() if c > 2)

    @property
    def is_watertight(self) -> bool:
        if self.is_empty:
            return False
        return all(c == 2 for c in self.edge_counts().values())

    @property
    def surface_area(self) -> float:
        if self.is_empty:
            return 0.0
        tri = self.vertices[self.faces]
        cross = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
        return float(0.5 * np.linalg.norm(cross, axis=1).sum())

    def to_trimesh(self):
        import trimesh

        return trimesh.Trimesh(
            vertices=self.vertices,
            faces=self.faces,
            vertex_normals=self.vertex_normals,
            process=False,
        )

    def to_open3d(self):
        import open3d as o3d

        mesh = o3d.geometry.TriangleMesh()
        mesh.vertices = o3d.utility.Vector3dVector(self.vertices)
        mesh.triangles = o3d.utility.Vector3iVector(self.faces.astype(np.int32))
        if self.vertex_normals is not None:
            mesh.vertex_normals = o3d.utility.Vector3dVector(self.vertex_normals)
        return mesh

    @classmethod
    def from_open3d(cls, mesh, method: str = "unknown") -> "Mesh":
        normals = None
        if mesh.has_vertex_normals():
            normals = np.asarray(mesh.vertex_normals)
        return cls(
            vertices=np.asarray(mesh.vertices),
            faces=np.asarray(mesh.triangles),
            vertex_normals=normals,
            method=method,
        )
