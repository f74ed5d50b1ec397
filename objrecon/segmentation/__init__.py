"""Support plane removal and object candidate segmentation."""

from .plane import (
    PlaneModel,
    PlaneModelFitter,
    PlaneModelType,
    fit_plane,
    extract_platform,
)
from .clustering import euclidean_clusters
from .extractor import Candidate, CandidateExtractor, CandidateSet

__all__ = [
    "PlaneModel",
    "PlaneModelFitter",
    "PlaneModelType",
    "fit_plane",
    "extract_platform",
    "euclidean_clusters",
    "Candidate",
    "CandidateExtractor",
    "CandidateSet",
]
