#!/usr/bin/env python
"""
Object Reconstruction Script

Accumulate sensor frames, extract object candidates, mesh them and fill
occlusion holes.

Usage:
    python scripts/reconstruct.py \
        --input scans/ \
        --frames 3 \
        --output output/

Synthetic demo scene (table + box with an open top):
    python scripts/reconstruct.py --synthetic --frames 3 --output output/
"""

import sys
import argparse
import logging
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from objrecon.config import Config
from objrecon.data import DirectoryFrameSource, SyntheticFrameSource
from objrecon.diagnostics import DirectoryArtifactSink, default_output_directory
from objrecon.errors import SensorExhaustedError
from objrecon.meshing import export_mesh
from objrecon.pipeline import ReconstructionPipeline
from objrecon.service import FixOcclusionRequest, ObjectReconstructionService

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(
        description="Reconstruct object meshes from point-cloud frames",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--input",
        type=Path,
        help="Directory of frame files (.ply, .pcd, .npy)"
    )
    source.add_argument(
        "--synthetic",
        action="store_true",
        help="Use a synthetic tabletop scene"
    )

    parser.add_argument(
        "--frames",
        type=int,
        default=1,
        help="Number of frames to accumulate"
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output directory (default: timestamped directory under output/)"
    )
    parser.add_argument(
        "--repair_mode",
        type=str,
        default="repair",
        choices=["repair", "detect_only", "skip"],
        help="Occlusion stage behavior"
    )
    parser.add_argument(
        "--mesh_method",
        type=str,
        default="ball_pivoting",
        choices=["ball_pivoting", "poisson"],
        help="Mesh reconstruction method"
    )
    parser.add_argument(
        "--cluster_tolerance",
        type=float,
        default=None,
        help="Neighbor radius for candidate clustering (meters)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="RANSAC random seed"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Verbose output"
    )

    return parser.parse_args()


def main():
    args = parse_args()

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s"
    )

    config = Config(SEED=args.seed)
    config.mesh.METHOD = args.mesh_method
    if args.cluster_tolerance is not None:
        config.segmentation.CLUSTER_TOLERANCE = args.cluster_tolerance

    output_dir = args.output or default_output_directory()

    # Frame source
    if args.synthetic:
        logger.info("Using synthetic tabletop scene")
        source = SyntheticFrameSource(num_frames=args.frames, seed=args.seed)
    else:
        try:
            source = DirectoryFrameSource(args.input)
        except SensorExhaustedError as e:
            logger.error(str(e))
            return 1

    sink = DirectoryArtifactSink(
        output_dir / "debug",
        cloud_format=config.pipeline.CLOUD_FORMAT,
        mesh_format=config.pipeline.MESH_FORMAT
    )
    pipeline = ReconstructionPipeline(source, config=config, sink=sink)
    service = ObjectReconstructionService(pipeline)

    response = service.fix_occlusions(FixOcclusionRequest(
        frame_count=args.frames,
        repair_mode=args.repair_mode
    ))

    if response.error:
        logger.error(f"Reconstruction failed: {response.error}")
        return 1

    if not response.success:
        logger.warning("No reconstructible object found")
        return 1

    result = service.last_result
    for i, mesh in enumerate(result.meshes):
        path = output_dir / f"object_{i}.ply"
        if export_mesh(mesh, path):
            logger.info(f"  Object {i}: {mesh.num_vertices} vertices, {mesh.num_faces} faces -> {path}")

    # Print summary
    print("\n" + "=" * 50)
    print("Reconstruction Complete!")
    print("=" * 50)
    print(f"Candidates: {result.num_candidates}")
    print(f"Meshes: {result.num_meshes}")
    for i, report in enumerate(result.reports):
        print(f"Object {i} holes: {report.num_holes}, dangling edges: {len(report.dangling_edges)}")
    print(f"Output: {output_dir}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
