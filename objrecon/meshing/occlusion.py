"""
Occlusion Hole Detection and Repair

Parts of an object the sensor never saw show up in the reconstructed mesh
as holes: closed loops of boundary edges. Detection walks the boundary
edge set once and groups every boundary edge into exactly one hole loop,
or reports it as dangling when the boundary does not close into a cycle
(inconsistent face winding, non-manifold geometry).

Repair closes each hole with a triangle fan around a new centroid vertex.
Existing vertices are never moved.

Usage:
    from objrecon.meshing import OcclusionRepairer
    repairer = OcclusionRepairer()
    report = repairer.detect_occlusion(mesh)
    repaired = repairer.repair_holes(mesh, report)
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from ..config import RepairConfig
from .mesh import Edge, Mesh

logger = logging.getLogger(__name__)


@dataclass
class Hole:
    """Closed boundary loop, vertices in traversal order."""

    vertices: Tuple[int, ...]
    edges: Tuple[Edge, ...]
    too_large: bool = False

    def __len__(self) -> int:
        return len(self.edges)

    def perimeter(self, mesh: Mesh) -> float:
        a = mesh.vertices[[e[0] for e in self.edges]]
        b = mesh.vertices[[e[1] for e in self.edges]]
        return float(np.linalg.norm(b - a, axis=1).sum())

    def centroid(self, mesh: Mesh) -> np.ndarray:
        return mesh.vertices[list(self.vertices)].mean(axis=0)


@dataclass
class OcclusionReport:
    """Holes found in a mesh plus boundary edges that could not be closed."""

    holes: List[Hole] = field(default_factory=list)
    dangling_edges: List[Edge] = field(default_factory=list)
    non_manifold_edges: List[Edge] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.holes)

    def __iter__(self) -> Iterator[Hole]:
        return iter(self.holes)

    def __getitem__(self, index: int) -> Hole:
        return self.holes[index]

    @property
    def num_holes(self) -> int:
        return len(self.holes)

    @property
    def has_holes(self) -> bool:
        return len(self.holes) > 0

    @property
    def is_manifold(self) -> bool:
        return not self.dangling_edges and not self.non_manifold_edges

    def summary(self) -> Dict[str, int]:
        return {
            "holes": self.num_holes,
            "hole_edges": sum(len(h) for h in self.holes),
            "dangling_edges": len(self.dangling_edges),
            "non_manifold_edges": len(self.non_manifold_edges),
        }


class OcclusionRepairer:
    """Stateless hole detector and filler."""

    def __init__(self, config: Optional[RepairConfig] = None):
        self.config = config or RepairConfig()

    def detect_occlusion(self, mesh: Mesh) -> OcclusionReport:
        """
        Find all holes of a mesh in one pass over its boundary edges.

        Args:
            mesh: Mesh to analyze

        Returns:
            OcclusionReport; every boundary edge is in exactly one hole or
            in `dangling_edges`
        """
        report = OcclusionReport(non_manifold_edges=mesh.non_manifold_edges())

        boundary = mesh.boundary_edges()
        if not boundary:
            logger.debug("No boundary edges")
            return report

        outgoing: Dict[int, List[int]] = defaultdict(list)
        for i, (a, _) in enumerate(boundary):
            outgoing[a].append(i)

        used = [False] * len(boundary)

        def next_edge(vertex: int) -> Optional[int]:
            for j in outgoing.get(vertex, ()):
                if not used[j]:
                    return j
            return None

        for start in range(len(boundary)):
            if used[start]:
                continue

            used[start] = True
            path_vertices = [boundary[start][0]]
            path_edges = [start]
            position = {boundary[start][0]: 0}
            current = boundary[start][1]

            while path_edges:
                if current in position:
                    # Closed a loop; at pinch vertices this is a sub-loop of the walk
                    k = position[current]
                    loop_edges = path_edges[k:]
                    report.holes.append(self._make_hole(
                        [boundary[j] for j in loop_edges]
                    ))
                    for v in path_vertices[k:]:
                        del position[v]
                    del path_vertices[k:]
                    del path_edges[k:]
                    if not path_edges:
                        break

                j = next_edge(current)
                if j is None:
                    # Dead end: give up on the last edge and resume from its tail
                    report.dangling_edges.append(boundary[path_edges.pop()])
                    current = path_vertices.pop()
                    del position[current]
                    continue

                used[j] = True
                position[current] = len(path_vertices)
                path_vertices.append(current)
                path_edges.append(j)
                current = boundary[j][1]

        if report.dangling_edges:
            logger.warning(
                f"{len(report.dangling_edges)} boundary edges do not form closed loops"
            )
        if report.non_manifold_edges:
            logger.warning(f"{len(report.non_manifold_edges)} non-manifold edges")

        logger.info(
            f"Detected {report.num_holes} holes "
            f"({sum(len(h) for h in report.holes)} boundary edges)"
        )
        return report

    def _make_hole(self, edges: List[Edge]) -> Hole:
        max_edges = self.config.MAX_HOLE_EDGES
        return Hole(
            vertices=tuple(e[0] for e in edges),
            edges=tuple(edges),
            too_large=max_edges is not None and len(edges) > max_edges,
        )

    def repair_holes(self, mesh: Mesh, holes: Iterable[Hole]) -> Mesh:
        """
        Close holes with new faces.

        Triangular holes get one face; larger ones a fan around a new
        vertex at the loop centroid. Fill faces are wound opposite to the
        boundary direction so they agree with their neighbors.

        Args:
            mesh: Mesh the holes were detected on
            holes: Holes (or an OcclusionReport) to fill

        Returns:
            New Mesh; the input is not modified
        """
        vertices = [mesh.vertices]
        faces = [mesh.faces]
        next_index = mesh.num_vertices
        filled = 0
        skipped = 0

        for hole in holes:
            loop = list(hole.vertices)
            if hole.too_large or len(loop) < self.config.MIN_HOLE_EDGES:
                skipped += 1
                continue

            if len(loop) == 3:
                v0, v1, v2 = loop
                faces.append(np.array([[v0, v2, v1]], dtype=np.int64))
            else:
                vertices.append(hole.centroid(mesh)[np.newaxis])
                center = next_index
                next_index += 1
                fan = [
                    [loop[(i + 1) % len(loop)], loop[i], center]
                    for i in range(len(loop))
                ]
                faces.append(np.asarray(fan, dtype=np.int64))
            filled += 1

        if filled == 0:
            if skipped:
                logger.info(f"No holes filled ({skipped} skipped)")
            return mesh

        repaired = Mesh(
            vertices=np.vstack(vertices),
            faces=np.vstack(faces),
            method=f"{mesh.method}_repaired",
        )

        logger.info(
            f"Filled {filled} holes ({skipped} skipped): "
            f"+{repaired.num_vertices - mesh.num_vertices} vertices, "
            f"+{repaired.num_faces - mesh.num_faces} faces"
        )
        return repaired
