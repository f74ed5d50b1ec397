#!/usr/bin/env python
"""
Platform Extraction Script

Isolate the dominant plane (table, floor, shelf) of a point cloud.

Usage:
    python scripts/extract_platform.py \
        --input scene.pcd \
        --output table.pcd \
        --model_type perpendicular_plane
"""

import sys
import argparse
import logging
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from objrecon.data import load_point_cloud
from objrecon.meshing import export_pointcloud
from objrecon.service import PlaneExtractionRequest, ObjectReconstructionService

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(
        description="Extract the dominant plane of a point cloud",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("--input", type=Path, required=True, help="Input cloud (.ply, .pcd, .npy)")
    parser.add_argument("--output", type=Path, required=True, help="Output cloud")
    parser.add_argument("--distance", type=float, default=0.01, help="Inlier distance (meters)")
    parser.add_argument(
        "--model_type",
        type=str,
        default="plane",
        choices=["plane", "perpendicular_plane", "parallel_plane"],
        help="Plane model type"
    )
    parser.add_argument("--iterations", type=int, default=1000, help="RANSAC iterations")
    parser.add_argument("--seed", type=int, default=None, help="RANSAC seed")
    parser.add_argument("--project", action="store_true", help="Project inliers onto the plane")
    parser.add_argument("--verbose", action="store_true", help="Verbose output")

    return parser.parse_args()


def main():
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s"
    )

    if not args.input.exists():
        logger.error(f"Input file not found: {args.input}")
        return 1

    cloud = load_point_cloud(args.input)
    logger.info(f"Loaded {cloud.num_points} points from {args.input}")

    # The platform capability does not need a running pipeline
    service = ObjectReconstructionService()
    response = service.extract_platform(PlaneExtractionRequest(
        cloud=cloud,
        distance_tolerance=args.distance,
        model_type=args.model_type,
        max_iterations=args.iterations,
        seed=args.seed,
        project_inliers=args.project
    ))

    if not response.success:
        logger.error(f"No platform found{': ' + response.error if response.error else ''}")
        return 1

    if not export_pointcloud(response.platform, args.output):
        return 1

    logger.info(f"Saved {response.platform.num_points} platform points to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
