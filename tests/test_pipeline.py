"""
Unit tests for the reconstruction pipeline and service.

Run with: pytest tests/ -v
"""

import sys
import threading
from pathlib import Path

import numpy as np
import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from objrecon.data import FrameSource, PointCloud
from objrecon.diagnostics import ArtifactSink
from objrecon.meshing import Mesh


# Unit cube corners; 1 selects the max bound on that axis
BOX_CORNERS = np.array([
    [0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],
    [0, 0, 1], [1, 0, 1], [1, 1, 1], [0, 1, 1],
])

# face -> (axis, max side?, outward-wound triangles)
BOX_FACES = {
    "bottom": (2, False, [[0, 2, 1], [0, 3, 2]]),
    "top": (2, True, [[4, 5, 6], [4, 6, 7]]),
    "front": (1, False, [[0, 1, 5], [0, 5, 4]]),
    "back": (1, True, [[2, 3, 7], [2, 7, 6]]),
    "left": (0, False, [[3, 0, 4], [3, 4, 7]]),
    "right": (0, True, [[1, 2, 6], [1, 6, 5]]),
}


class BoundingBoxMeshBuilder:
    """
    Meshes a candidate as its bounding box.

    A box face is only emitted when the cloud has samples near the middle
    of it, so unobserved faces come out as holes.
    """

    TOLERANCE = 0.005

    def __init__(self):
        self.calls = 0

    def build_mesh(self, cloud):
        self.calls += 1
        if cloud.is_empty:
            return Mesh.empty()

        lo, hi = cloud.bounds()
        center = (lo + hi) / 2
        half = (hi - lo) / 2
        points = cloud.points

        faces = []
        for axis, max_side, triangles in BOX_FACES.values():
            coordinate = hi[axis] if max_side else lo[axis]
            others = [a for a in range(3) if a != axis]
            on_face = np.abs(points[:, axis] - coordinate) < self.TOLERANCE
            inner = np.all(np.abs(points[:, others] - center[others]) < half[others] / 2, axis=1)
            if np.any(on_face & inner):
                faces.extend(triangles)

        return Mesh(
            vertices=np.where(BOX_CORNERS > 0, hi, lo),
            faces=np.array(faces),
            method="bounding_box",
        )


class BlockingFrameSource(FrameSource):
    """Blocks in next_frame until released."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def next_frame(self):
        self.started.set()
        self.release.wait(timeout=10)
        return PointCloud.empty()


class FailingSink(ArtifactSink):
    """Raises on clouds, reports failure on meshes."""

    def write_cloud(self, name, cloud):
        raise IOError("disk full")

    def write_mesh(self, name, mesh):
        return False


def make_pipeline(num_frames=3, scene=None, **kwargs):
    from objrecon.config import Config
    from objrecon.data import SyntheticFrameSource
    from objrecon.pipeline import ReconstructionPipeline

    config = kwargs.pop("config", None) or Config(SEED=7)
    config.pipeline.FRAME_COUNT = num_frames
    kwargs.setdefault("mesh_builder", BoundingBoxMeshBuilder())

    source = SyntheticFrameSource(num_frames=num_frames, config=scene, seed=0)
    return ReconstructionPipeline(source, config=config, **kwargs)


class TestReconstructionPipeline:
    """Test the end-to-end pipeline."""

    def test_repairs_open_box(self):
        from objrecon.diagnostics import MemoryArtifactSink
        from objrecon.meshing import OcclusionRepairer
        from objrecon.pipeline import PipelineState

        sink = MemoryArtifactSink()
        pipeline = make_pipeline(sink=sink)

        result = pipeline.run()

        assert result.success
        assert result.state is PipelineState.DONE
        assert result.num_candidates == 1
        assert result.num_meshes == 1

        # One 4-edge hole where the top was never observed
        assert result.reports[0].num_holes == 1
        assert len(result.reports[0][0]) == 4

        repaired = result.meshes[0]
        assert OcclusionRepairer().detect_occlusion(repaired).num_holes == 0
        assert repaired.is_watertight
        assert repaired.method == "bounding_box_repaired"

        # Vertices of the built mesh survive repair
        built = sink.meshes["03-ObjectCandidate-0"]
        assert np.array_equal(repaired.vertices[:built.num_vertices], built.vertices)

    def test_persists_stage_artifacts(self):
        from objrecon.diagnostics import MemoryArtifactSink

        sink = MemoryArtifactSink()
        make_pipeline(sink=sink).run()

        assert sink.names == [
            "01-AccumulatedPointCloud",
            "00-Debugging-PlaneInliers",
            "00-Debugging-Remaining",
            "02-ObjectCandidates-0",
            "03-ObjectCandidate-0",
            "04-RepairedMesh-0",
        ]
        # 3 frames of 10000 table + 2000 box points
        assert sink.clouds["01-AccumulatedPointCloud"].num_points == 36000
        assert sink.clouds["02-ObjectCandidates-0"].num_points == 6000

    def test_detect_only_keeps_holes(self):
        from objrecon.diagnostics import MemoryArtifactSink
        from objrecon.meshing import OcclusionRepairer
        from objrecon.pipeline import ReconstructionRequest

        sink = MemoryArtifactSink()
        result = make_pipeline(sink=sink).run(ReconstructionRequest(repair_mode="detect_only"))

        assert result.success
        assert result.reports[0].num_holes == 1
        assert OcclusionRepairer().detect_occlusion(result.meshes[0]).num_holes == 1
        assert "04-RepairedMesh-0" not in sink.names

    def test_skip_repair(self):
        from objrecon.pipeline import ReconstructionRequest, RepairMode

        result = make_pipeline().run(ReconstructionRequest(repair_mode=RepairMode.SKIP))

        assert result.success
        assert result.reports == []
        assert not result.meshes[0].is_watertight

    def test_closed_box_untouched(self):
        from objrecon.data.synthetic import SceneConfig

        result = make_pipeline(scene=SceneConfig(open_face=None)).run()

        assert result.success
        assert result.reports[0].num_holes == 0
        assert result.meshes[0].method == "bounding_box"
        assert result.meshes[0].is_watertight

    def test_plane_only_scene(self):
        from objrecon.data.synthetic import SceneConfig
        from objrecon.pipeline import PipelineState

        builder = BoundingBoxMeshBuilder()
        pipeline = make_pipeline(scene=SceneConfig(include_object=False), mesh_builder=builder)

        result = pipeline.run()

        assert not result.success
        assert result.state is PipelineState.NO_CANDIDATES
        assert result.meshes == []
        assert builder.calls == 0

    def test_small_plane_only_scene(self):
        from objrecon.data import IterableFrameSource
        from objrecon.data.synthetic import make_tabletop
        from objrecon.pipeline import PipelineState, ReconstructionPipeline

        builder = BoundingBoxMeshBuilder()
        source = IterableFrameSource([make_tabletop(size=(0.08, 0.08), spacing=0.01)])
        pipeline = ReconstructionPipeline(source, mesh_builder=builder)

        result = pipeline.run()

        assert not result.success
        assert result.state is PipelineState.NO_CANDIDATES
        assert builder.calls == 0

    def test_malformed_frame_fails_request(self):
        from objrecon.data import IterableFrameSource
        from objrecon.errors import InvalidCloudError
        from objrecon.pipeline import PipelineState, ReconstructionPipeline

        pipeline = ReconstructionPipeline(IterableFrameSource([np.zeros((5, 2))]))

        with pytest.raises(InvalidCloudError):
            pipeline.run()

        assert pipeline.last_state is PipelineState.FAILED

    def test_empty_sensor_data(self):
        from objrecon.data import IterableFrameSource
        from objrecon.pipeline import PipelineState, ReconstructionPipeline

        pipeline = ReconstructionPipeline(IterableFrameSource([np.zeros((0, 3))]))

        result = pipeline.run()

        assert not result.success
        assert result.state is PipelineState.NO_CANDIDATES
        assert pipeline.last_state is PipelineState.NO_CANDIDATES

    def test_zero_frames(self):
        from objrecon.pipeline import PipelineState, ReconstructionRequest

        result = make_pipeline().run(ReconstructionRequest(frame_count=0))

        assert not result.success
        assert result.state is PipelineState.NO_CANDIDATES

    def test_sensor_exhausted(self):
        from objrecon.errors import SensorExhaustedError
        from objrecon.pipeline import PipelineState, ReconstructionRequest

        pipeline = make_pipeline(num_frames=1)

        with pytest.raises(SensorExhaustedError):
            pipeline.run(ReconstructionRequest(frame_count=3))

        assert pipeline.last_state is PipelineState.FAILED

    def test_invalid_request(self):
        from objrecon.errors import InvalidRequestError
        from objrecon.pipeline import ReconstructionRequest

        pipeline = make_pipeline()

        with pytest.raises(InvalidRequestError):
            pipeline.run(ReconstructionRequest(frame_count=-1))
        with pytest.raises(InvalidRequestError):
            pipeline.run(ReconstructionRequest(repair_mode="bogus"))

    def test_sink_failures_do_not_abort(self):
        result = make_pipeline(sink=FailingSink()).run()

        assert result.success
        assert result.num_meshes == 1

    def test_broadcasts_candidates_and_meshes(self):
        from objrecon.diagnostics import ResultBroadcaster

        topics = []
        broadcaster = ResultBroadcaster()
        broadcaster.subscribe(lambda topic, payload: topics.append(topic))

        make_pipeline(broadcaster=broadcaster).run()

        assert topics == ["object_candidates", "mesh_marker"]

    def test_requests_are_independent(self):
        from objrecon.pipeline import ReconstructionRequest

        pipeline = make_pipeline(num_frames=6)

        first = pipeline.run(ReconstructionRequest(frame_count=3))
        second = pipeline.run(ReconstructionRequest(frame_count=3))

        assert first.request_id != second.request_id
        assert first.num_meshes == second.num_meshes == 1
        assert second.reports[0].num_holes == 1

    def test_stage_durations_recorded(self):
        result = make_pipeline().run()

        assert set(result.stage_durations) == {"accumulate", "extract", "mesh"}
        assert all(d >= 0 for d in result.stage_durations.values())

    def test_empty_meshes_counted_in_summary(self, caplog):
        import logging

        class EmptyMeshBuilder:
            def build_mesh(self, cloud):
                return Mesh.empty()

        caplog.set_level(logging.INFO, logger="objrecon.pipeline")

        result = make_pipeline(mesh_builder=EmptyMeshBuilder()).run()

        assert result.success
        assert result.meshes[0].is_empty
        assert result.reports[0].num_holes == 0
        assert "Reconstructed 1 meshes (1 empty)" in caplog.text

    def test_ball_pivoting_detect_only(self):
        from objrecon.config import Config
        from objrecon.data import SyntheticFrameSource
        from objrecon.meshing import OcclusionRepairer
        from objrecon.pipeline import ReconstructionPipeline, ReconstructionRequest

        pipeline = ReconstructionPipeline(SyntheticFrameSource(num_frames=1), config=Config(SEED=7))

        result = pipeline.run(ReconstructionRequest(repair_mode="detect_only"))

        assert result.success
        assert result.num_meshes == 1
        assert result.meshes[0].num_faces > 0

        # The unobserved top leaves the meshed box open
        assert result.reports[0].has_holes
        assert OcclusionRepairer().detect_occlusion(result.meshes[0]).num_holes == result.reports[0].num_holes

    def test_ball_pivoting_repair(self):
        from objrecon.config import Config
        from objrecon.data import SyntheticFrameSource
        from objrecon.diagnostics import MemoryArtifactSink
        from objrecon.meshing import OcclusionRepairer
        from objrecon.pipeline import ReconstructionPipeline

        sink = MemoryArtifactSink()
        pipeline = ReconstructionPipeline(
            SyntheticFrameSource(num_frames=1), config=Config(SEED=7), sink=sink
        )

        result = pipeline.run()

        assert result.success
        assert result.reports[0].has_holes

        built = sink.meshes["03-ObjectCandidate-0"]
        repaired = result.meshes[0]
        assert repaired.num_faces > built.num_faces
        assert np.array_equal(repaired.vertices[:built.num_vertices], built.vertices)
        assert OcclusionRepairer().detect_occlusion(repaired).num_holes == 0


class TestConcurrency:
    """Test request serialization."""

    def test_reject_concurrent(self):
        from objrecon.config import Config
        from objrecon.errors import PipelineBusyError
        from objrecon.pipeline import PipelineState, ReconstructionPipeline

        config = Config()
        config.pipeline.REJECT_CONCURRENT = True
        source = BlockingFrameSource()
        pipeline = ReconstructionPipeline(source, config=config)

        results = []
        worker = threading.Thread(target=lambda: results.append(pipeline.run()))
        worker.start()

        try:
            assert source.started.wait(timeout=5)
            with pytest.raises(PipelineBusyError):
                pipeline.run()
        finally:
            source.release.set()
            worker.join(timeout=10)

        assert results[0].state is PipelineState.NO_CANDIDATES

    def test_queue_concurrent(self):
        from objrecon.pipeline import PipelineState, ReconstructionPipeline

        source = BlockingFrameSource()
        pipeline = ReconstructionPipeline(source)

        results = []
        workers = [
            threading.Thread(target=lambda: results.append(pipeline.run()))
            for _ in range(2)
        ]
        for worker in workers:
            worker.start()

        assert source.started.wait(timeout=5)
        source.release.set()
        for worker in workers:
            worker.join(timeout=10)

        assert len(results) == 2
        assert all(r.state is PipelineState.NO_CANDIDATES for r in results)


class TestService:
    """Test the request/response layer."""

    def test_fix_occlusions(self):
        from objrecon.service import FixOcclusionRequest, ObjectReconstructionService

        service = ObjectReconstructionService(make_pipeline())

        response = service.fix_occlusions(FixOcclusionRequest())

        assert response.success
        assert response.num_meshes == 1
        assert response.error is None
        assert service.last_result.meshes[0].is_watertight

    def test_fix_occlusions_nothing_found(self):
        from objrecon.data.synthetic import SceneConfig
        from objrecon.service import ObjectReconstructionService

        service = ObjectReconstructionService(make_pipeline(scene=SceneConfig(include_object=False)))

        response = service.fix_occlusions()

        assert not response.success
        assert response.num_meshes == 0
        assert response.error is None

    def test_fix_occlusions_sensor_failure(self):
        from objrecon.service import FixOcclusionRequest, ObjectReconstructionService

        service = ObjectReconstructionService(make_pipeline(num_frames=1))

        response = service.fix_occlusions(FixOcclusionRequest(frame_count=2))

        assert not response.success
        assert "exhausted" in response.error
        assert service.last_result is None

    def test_fix_occlusions_unreadable_frame(self, tmp_path):
        from objrecon.data import DirectoryFrameSource
        from objrecon.pipeline import PipelineState, ReconstructionPipeline
        from objrecon.service import ObjectReconstructionService

        (tmp_path / "frame0.npy").write_bytes(b"not a point cloud")
        pipeline = ReconstructionPipeline(DirectoryFrameSource(tmp_path))
        service = ObjectReconstructionService(pipeline)

        response = service.fix_occlusions()

        assert not response.success
        assert "frame0.npy" in response.error
        assert pipeline.last_state is PipelineState.FAILED

    def test_fix_occlusions_bad_request(self):
        from objrecon.service import FixOcclusionRequest, ObjectReconstructionService

        service = ObjectReconstructionService(make_pipeline())

        response = service.fix_occlusions(FixOcclusionRequest(repair_mode="bogus"))

        assert not response.success
        assert "bogus" in response.error

    def test_fix_occlusions_without_pipeline(self):
        from objrecon.service import ObjectReconstructionService

        response = ObjectReconstructionService().fix_occlusions()

        assert not response.success
        assert response.error

    def test_extract_platform(self):
        from objrecon.data.synthetic import make_scene
        from objrecon.service import ObjectReconstructionService, PlaneExtractionRequest

        response = ObjectReconstructionService().extract_platform(
            PlaneExtractionRequest(cloud=make_scene(seed=0), seed=0)
        )

        assert response.success
        assert response.platform.num_points == 10000

    def test_extract_platform_unknown_model(self):
        from objrecon.data.synthetic import make_scene
        from objrecon.service import ObjectReconstructionService, PlaneExtractionRequest

        response = ObjectReconstructionService().extract_platform(
            PlaneExtractionRequest(cloud=make_scene(seed=0), model_type="sphere")
        )

        assert not response.success
        assert response.platform.is_empty
        assert "sphere" in response.error

    def test_extract_platform_empty_cloud(self):
        from objrecon.service import ObjectReconstructionService, PlaneExtractionRequest

        response = ObjectReconstructionService().extract_platform(
            PlaneExtractionRequest(cloud=np.zeros((0, 3)))
        )

        assert not response.success
        assert response.error is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
