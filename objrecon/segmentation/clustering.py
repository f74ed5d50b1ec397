"""
Euclidean Cluster Extraction

Groups points that are connected through chains of neighbors closer than
a fixed radius. Clusters are grown breadth-first from the lowest unvisited
index, so the output order follows the order in which each cluster's seed
appears in the input.
"""

import logging
from collections import deque
from typing import List, Optional

import numpy as np
from scipy.spatial import cKDTree

logger = logging.getLogger(__name__)


def euclidean_clusters(
    points: np.ndarray,
    radius: float,
    min_points: int = 1,
    max_points: Optional[int] = None
) -> List[np.ndarray]:
    """
    Radius-connected components of a point set.

    Args:
        points: (N, 3) points
        radius: Neighbor distance linking two points
        min_points: Smaller clusters are dropped as noise
        max_points: Larger clusters are dropped (None = no limit)

    Returns:
        List of sorted index arrays, one per kept cluster, in seed order
    """
    if radius <= 0:
        raise ValueError(f"radius must be > 0, got {radius}")

    points = np.asarray(points, dtype=np.float64)
    n = len(points)
    if n == 0:
        return []

    tree = cKDTree(points)
    visited = np.zeros(n, dtype=bool)
    clusters = []
    dropped = 0

    for seed in range(n):
        if visited[seed]:
            continue

        visited[seed] = True
        members = [seed]
        frontier = deque([seed])

        while frontier:
            current = frontier.popleft()
            for neighbor in tree.query_ball_point(points[current], radius):
                if not visited[neighbor]:
                    visited[neighbor] = True
                    members.append(neighbor)
                    frontier.append(neighbor)

        size = len(members)
        if size < min_points or (max_points is not None and size > max_points):
            dropped += 1
            continue

        clusters.append(np.sort(np.asarray(members, dtype=np.int64)))

    logger.debug(
        f"Clustering (r={radius}): {len(clusters)} clusters kept, {dropped} dropped"
    )
    return clusters
