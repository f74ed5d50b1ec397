"""
Object Reconstruction Pipeline

State machine that turns sensor frames into repaired object meshes:

    IDLE -> ACCUMULATING -> EXTRACTING -> NO_CANDIDATES
                                       -> MESHING -> DONE

Each request gets its own RequestContext; nothing from a previous request
is kept on the pipeline. Every stage's artifact is persisted to the
diagnostic sink under a stage-numbered name. Sink failures are logged and
ignored; only sensor exhaustion or a malformed request fails a request.

Usage:
    from objrecon.pipeline import ReconstructionPipeline
    pipeline = ReconstructionPipeline(source, sink=DirectoryArtifactSink("out"))
    result = pipeline.run()
    if result.success:
        meshes = result.meshes
"""

import logging
import numbers
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from .config import Config, default_config
from .data.accumulator import PointCloudAccumulator
from .data.pointcloud import PointCloud
from .data.sources import FrameSource
from .diagnostics import ArtifactSink, NullArtifactSink, ResultBroadcaster
from .errors import InvalidRequestError, PipelineBusyError, ReconstructionError
from .meshing.builder import MeshBuilder
from .meshing.mesh import Mesh
from .meshing.occlusion import OcclusionReport, OcclusionRepairer
from .segmentation.extractor import CandidateExtractor, CandidateSet

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    """Stages of one reconstruction request."""
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    EXTRACTING = "extracting"
    NO_CANDIDATES = "no_candidates"
    MESHING = "meshing"
    DONE = "done"
    FAILED = "failed"


class RepairMode(Enum):
    """What the occlusion stage does with each mesh."""
    REPAIR = "repair"            # detect, fill, return the filled mesh
    DETECT_ONLY = "detect_only"  # detect and report, return the mesh unchanged
    SKIP = "skip"                # no occlusion stage

    @classmethod
    def parse(cls, value: Union[str, "RepairMode"]) -> "RepairMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(m.value for m in cls)
            raise InvalidRequestError(
                f"Unknown repair mode '{value}', expected one of: {names}"
            ) from None


@dataclass
class ReconstructionRequest:
    """Optional per-request overrides of the pipeline config."""
    frame_count: Optional[int] = None
    repair_mode: Optional[Union[str, RepairMode]] = None


@dataclass
class ReconstructionResult:
    """Terminal output of one request."""
    success: bool
    meshes: List[Mesh] = field(default_factory=list)
    state: PipelineState = PipelineState.IDLE
    reports: List[OcclusionReport] = field(default_factory=list)
    num_candidates: int = 0
    request_id: str = ""
    stage_durations: Dict[str, float] = field(default_factory=dict)

    @property
    def num_meshes(self) -> int:
        return len(self.meshes)


@dataclass
class RequestContext:
    """Working state of a single request."""
    request_id: str
    frame_count: int
    repair_mode: RepairMode
    state: PipelineState = PipelineState.IDLE
    cloud: Optional[PointCloud] = None
    candidates: Optional[CandidateSet] = None
    meshes: List[Mesh] = field(default_factory=list)
    reports: List[OcclusionReport] = field(default_factory=list)
    stage_durations: Dict[str, float] = field(default_factory=dict)

    def transition(self, state: PipelineState) -> None:
        logger.info(f"[{self.request_id}] {self.state.value} -> {state.value}")
        self.state = state

    def result(self, success: bool) -> ReconstructionResult:
        return ReconstructionResult(
            success=success,
            meshes=list(self.meshes) if success else [],
            state=self.state,
            reports=list(self.reports),
            num_candidates=0 if self.candidates is None else len(self.candidates),
            request_id=self.request_id,
            stage_durations=dict(self.stage_durations),
        )


class ReconstructionPipeline:
    """
    Orchestrates accumulation, extraction, meshing and occlusion repair.

    Requests are serialized: a second request waits for the running one,
    or is rejected with PipelineBusyError when the config says so.
    """

    def __init__(
        self,
        source: FrameSource,
        config: Optional[Config] = None,
        sink: Optional[ArtifactSink] = None,
        broadcaster: Optional[ResultBroadcaster] = None,
        extractor: Optional[CandidateExtractor] = None,
        mesh_builder: Optional[MeshBuilder] = None,
        repairer: Optional[OcclusionRepairer] = None
    ):
        """
        Args:
            source: Sensor frame source
            config: Pipeline configuration (default_config if None)
            sink: Diagnostic artifact sink (discard if None)
            broadcaster: Receives candidates and result meshes
            extractor, mesh_builder, repairer: Stage overrides
        """
        self.config = config or default_config
        self.sink = sink or NullArtifactSink()
        self.broadcaster = broadcaster or ResultBroadcaster()

        self.accumulator = PointCloudAccumulator(source)
        self.extractor = extractor or CandidateExtractor(
            self.config.segmentation,
            seed=self.config.SEED,
            broadcaster=self.broadcaster,
        )
        self.mesh_builder = mesh_builder or MeshBuilder(self.config.mesh)
        self.repairer = repairer or OcclusionRepairer(self.config.repair)

        self._lock = threading.Lock()
        self.last_state = PipelineState.IDLE

    def run(self, request: Optional[ReconstructionRequest] = None) -> ReconstructionResult:
        """
        Process one "fix occlusions" request.

        Args:
            request: Overrides, or None for config defaults

        Returns:
            ReconstructionResult; success=False means no object was found

        Raises:
            SensorExhaustedError: frames could not be accumulated
            InvalidCloudError: a frame is not an (N, 3) point array
            InvalidRequestError: malformed request
            PipelineBusyError: another request is running and
                REJECT_CONCURRENT is set
        """
        ctx = self._create_context(request or ReconstructionRequest())

        if self.config.pipeline.REJECT_CONCURRENT:
            if not self._lock.acquire(blocking=False):
                raise PipelineBusyError("A reconstruction request is already running")
        else:
            self._lock.acquire()

        try:
            return self._process(ctx)
        finally:
            self.last_state = ctx.state
            self._lock.release()

    def _create_context(self, request: ReconstructionRequest) -> RequestContext:
        pipeline_cfg = self.config.pipeline

        frame_count = request.frame_count
        if frame_count is None:
            frame_count = pipeline_cfg.FRAME_COUNT
        if not isinstance(frame_count, numbers.Integral) or frame_count < 0:
            raise InvalidRequestError(f"frame_count must be a non-negative int, got {frame_count!r}")

        repair_mode = RepairMode.parse(
            request.repair_mode if request.repair_mode is not None else pipeline_cfg.REPAIR_MODE
        )

        return RequestContext(
            request_id=uuid.uuid4().hex[:8],
            frame_count=frame_count,
            repair_mode=repair_mode,
        )

    def _process(self, ctx: RequestContext) -> ReconstructionResult:
        start = time.time()

        # Accumulate
        ctx.transition(PipelineState.ACCUMULATING)
        try:
            with self._timed(ctx, "accumulate"):
                ctx.cloud = self.accumulator.accumulate(ctx.frame_count)
        except ReconstructionError as e:
            ctx.transition(PipelineState.FAILED)
            logger.error(f"[{ctx.request_id}] Accumulation failed: {e}")
            raise

        self._persist_cloud("01-AccumulatedPointCloud", ctx.cloud)

        # Extract
        ctx.transition(PipelineState.EXTRACTING)
        with self._timed(ctx, "extract"):
            ctx.candidates = self.extractor.extract(ctx.cloud)

        if ctx.candidates.plane is not None and not ctx.candidates.plane.is_empty:
            self._persist_cloud(
                "00-Debugging-PlaneInliers", ctx.cloud.select(ctx.candidates.plane.inliers)
            )
        self._persist_cloud("00-Debugging-Remaining", ctx.candidates.remaining)

        if len(ctx.candidates) == 0:
            ctx.transition(PipelineState.NO_CANDIDATES)
            logger.info(f"[{ctx.request_id}] No object candidates found")
            return ctx.result(success=False)

        self.extractor.publish(ctx.candidates)
        for i, candidate in enumerate(ctx.candidates):
            self._persist_cloud(f"02-ObjectCandidates-{i}", candidate)

        # Mesh and repair
        ctx.transition(PipelineState.MESHING)
        with self._timed(ctx, "mesh"):
            for i, candidate in enumerate(ctx.candidates):
                mesh = self._process_candidate(ctx, i, candidate)
                ctx.meshes.append(mesh)
                self.broadcaster.broadcast(
                    "mesh_marker",
                    {
                        "name": f"object_{i}",
                        "index": i,
                        "vertices": mesh.vertices,
                        "faces": mesh.faces,
                    },
                )

        ctx.transition(PipelineState.DONE)
        empty = sum(1 for m in ctx.meshes if m.is_empty)
        logger.info(
            f"[{ctx.request_id}] Reconstructed {len(ctx.meshes)} meshes "
            f"({empty} empty) in {time.time() - start:.2f}s"
        )
        return ctx.result(success=True)

    def _process_candidate(self, ctx: RequestContext, index: int, candidate: PointCloud) -> Mesh:
        logger.info(f"[{ctx.request_id}] Candidate {index}: {candidate.num_points} points")

        mesh = self.mesh_builder.build_mesh(candidate)
        self._persist_mesh(f"03-ObjectCandidate-{index}", mesh)

        if ctx.repair_mode is RepairMode.SKIP:
            return mesh

        if mesh.is_empty:
            logger.warning(f"[{ctx.request_id}] Candidate {index} produced an empty mesh")
            ctx.reports.append(OcclusionReport())
            return mesh

        report = self.repairer.detect_occlusion(mesh)
        ctx.reports.append(report)

        if not report.is_manifold:
            logger.warning(
                f"[{ctx.request_id}] Candidate {index} boundary is not manifold: {report.summary()}"
            )

        if ctx.repair_mode is RepairMode.DETECT_ONLY or not report.has_holes:
            return mesh

        repaired = self.repairer.repair_holes(mesh, report)
        remaining = self.repairer.detect_occlusion(repaired)
        logger.info(
            f"[{ctx.request_id}] Candidate {index}: {report.num_holes} holes before repair, "
            f"{remaining.num_holes} after"
        )
        self._persist_mesh(f"04-RepairedMesh-{index}", repaired)
        return repaired

    @contextmanager
    def _timed(self, ctx: RequestContext, stage: str):
        start = time.time()
        try:
            yield
        finally:
            ctx.stage_durations[stage] = time.time() - start
            logger.debug(f"[{ctx.request_id}] Stage {stage} took {ctx.stage_durations[stage]:.3f}s")

    def _persist_cloud(self, name: str, cloud: PointCloud) -> None:
        try:
            ok = self.sink.write_cloud(name, cloud)
        except Exception as e:
            logger.warning(f"Could not persist {name}: {e}")
            return
        if not ok:
            logger.warning(f"Could not persist {name}")

    def _persist_mesh(self, name: str, mesh: Mesh) -> None:
        try:
            ok = self.sink.write_mesh(name, mesh)
        except Exception as e:
            logger.warning(f"Could not persist {name}: {e}")
            return
        if not ok:
            logger.warning(f"Could not persist {name}")
