"""
Object Reconstruction Service

Request/response handlers behind which a transport (RPC server, message
bus, CLI) exposes the pipeline:

- fix_occlusions: run the full reconstruction on current sensor data
- extract_platform: isolate the dominant plane of a given cloud

Usage:
    from objrecon.service import ObjectReconstructionService, FixOcclusionRequest
    service = ObjectReconstructionService(pipeline)
    response = service.fix_occlusions(FixOcclusionRequest())
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from .data.pointcloud import PointCloud
from .errors import ReconstructionError
from .pipeline import ReconstructionPipeline, ReconstructionRequest, ReconstructionResult
from .segmentation.plane import PlaneModelType, extract_platform

logger = logging.getLogger(__name__)


@dataclass
class FixOcclusionRequest:
    """No fields are required; the pipeline uses the current sensor data."""
    frame_count: Optional[int] = None
    repair_mode: Optional[str] = None


@dataclass
class FixOcclusionResponse:
    success: bool
    num_meshes: int = 0
    error: Optional[str] = None


@dataclass
class PlaneExtractionRequest:
    cloud: Union[PointCloud, np.ndarray]
    distance_tolerance: float = 0.01
    model_type: str = "plane"
    max_iterations: int = 1000
    seed: Optional[int] = None
    axis: Sequence[float] = (0.0, 0.0, 1.0)
    eps_angle: float = 0.0
    project_inliers: bool = False


@dataclass
class PlaneExtractionResponse:
    success: bool
    platform: PointCloud
    error: Optional[str] = None


class ObjectReconstructionService:
    """Translates service requests into pipeline runs."""

    def __init__(self, pipeline: Optional[ReconstructionPipeline] = None):
        """
        Args:
            pipeline: Pipeline serving fix_occlusions; platform extraction
                works without one
        """
        self.pipeline = pipeline
        self.last_result: Optional[ReconstructionResult] = None

    def fix_occlusions(self, request: Optional[FixOcclusionRequest] = None) -> FixOcclusionResponse:
        """
        Run the reconstruction pipeline.

        success=False with no error means no reconstructible object was
        found. A hard failure (sensor, malformed request, busy) also
        answers success=False and carries the reason in `error`.
        """
        request = request or FixOcclusionRequest()

        if self.pipeline is None:
            return FixOcclusionResponse(success=False, error="No reconstruction pipeline configured")

        try:
            result = self.pipeline.run(ReconstructionRequest(
                frame_count=request.frame_count,
                repair_mode=request.repair_mode,
            ))
        except ReconstructionError as e:
            logger.error(f"FixOcclusions failed: {e}")
            self.last_result = None
            return FixOcclusionResponse(success=False, error=str(e))

        self.last_result = result
        return FixOcclusionResponse(success=result.success, num_meshes=result.num_meshes)

    def extract_platform(self, request: PlaneExtractionRequest) -> PlaneExtractionResponse:
        """Standalone plane isolation (table / floor removal)."""
        try:
            model_type = PlaneModelType.parse(request.model_type)
            platform = extract_platform(
                request.cloud,
                distance_tolerance=request.distance_tolerance,
                model_type=model_type,
                max_iterations=request.max_iterations,
                seed=request.seed,
                axis=request.axis,
                eps_angle=request.eps_angle,
                project_inliers=request.project_inliers,
            )
        except ValueError as e:
            logger.error(f"ExtractPlatform failed: {e}")
            return PlaneExtractionResponse(success=False, platform=PointCloud.empty(), error=str(e))

        return PlaneExtractionResponse(success=not platform.is_empty, platform=platform)
