"""
Two-view matching pipeline.

DescriptorSet(A), DescriptorSet(B) -> CandidateMatcher -> candidate list
-> HomographyEstimator -> ordered inlier set -> inlier report.

match_pair() returns a PairResult instead of raising for the recoverable
core failures (descriptor mismatch, too few candidates, degenerate
geometry), so the caller decides whether to persist or abort.
"""

from typing import Optional

from inlier_match.config import PipelineConfig
from inlier_match.errors import (
    DegenerateGeometry, InputMismatch, InsufficientCorrespondences,
)
from inlier_match.features.extraction import FeatureExtractor
from inlier_match.geometry.ransac import HomographyEstimator
from inlier_match.matching.nndr import CandidateMatcher
from inlier_match.types import DescriptorSet, PairResult, check_compatible
from inlier_match.utils.image_io import load_grayscale
from inlier_match.utils.inlier_io import save_inliers
from inlier_match.utils.logging_setup import get_logger

log = get_logger(__name__)


def build_matcher(config: PipelineConfig) -> CandidateMatcher:
    """NNDR matcher configured from the `matching` section."""
    m = config.matching
    return CandidateMatcher(ratio=m.nndr_ratio, chunk_size=m.chunk_size)


def build_estimator(config: PipelineConfig, rng=None) -> HomographyEstimator:
    """RANSAC estimator configured from the `ransac` section; *rng* overrides the seed."""
    r = config.ransac
    return HomographyEstimator(
        error_threshold=r.error_threshold,
        symmetric=r.symmetric_error,
        refine=r.refine,
        confidence=r.confidence,
        max_trials=r.max_trials,
        max_resample=r.max_resample,
        refine_iterations=r.refine_iterations,
        rng=rng,
        seed=r.seed,
    )


def match_pair(set_a: DescriptorSet, set_b: DescriptorSet,
               config: Optional[PipelineConfig] = None, rng=None) -> PairResult:
    """Match two descriptor sets and classify the candidates with RANSAC."""
    config = config or PipelineConfig()

    try:
        check_compatible(set_a, set_b)
    except InputMismatch as exc:
        log.error("Descriptor sets are incompatible: %s", exc)
        return PairResult(ok=False, error=exc)

    candidates = build_matcher(config).match(set_a, set_b)

    try:
        homography = build_estimator(config, rng=rng).estimate(candidates)
    except (InsufficientCorrespondences, DegenerateGeometry) as exc:
        log.warning("Homography estimation failed: %s", exc)
        return PairResult(ok=False, candidates=candidates, error=exc)

    return PairResult(ok=True, candidates=candidates, homography=homography)


def extract_pair(path1: str, path2: str, config: PipelineConfig):
    """Load both images and run the configured feature extractor on each."""
    f = config.features
    extractor = FeatureExtractor(method=f.method, n_keypoints=f.n_keypoints,
                                 fast_threshold=f.fast_threshold)
    set_a = extractor.detect_and_compute(load_grayscale(path1))
    set_b = extractor.detect_and_compute(load_grayscale(path2))
    log.info("Extracted %d / %d %s features", len(set_a), len(set_b), f.method.upper())
    return set_a, set_b


def run_images(path1: str, path2: str, config: Optional[PipelineConfig] = None,
               rng=None) -> PairResult:
    """Extract features from two image files and match them."""
    config = config or PipelineConfig()
    set_a, set_b = extract_pair(path1, path2, config)
    return match_pair(set_a, set_b, config, rng=rng)


def should_persist(result: PairResult, config: Optional[PipelineConfig] = None) -> bool:
    """Geometry failures produce an empty (but complete) report when
    ``output.write_empty_on_failure`` is set; a descriptor mismatch never
    produces a file."""
    config = config or PipelineConfig()
    if result.ok:
        return True
    if isinstance(result.error, InputMismatch):
        return False
    return config.output.write_empty_on_failure


def persist_result(result: PairResult, path: str,
                   config: Optional[PipelineConfig] = None) -> bool:
    """Write the inlier report for *result* if it should be persisted.

    Returns False when the result is not persisted.  Raises
    PersistenceFailure when the destination cannot be written; the
    in-memory result is untouched.
    """
    if not should_persist(result, config):
        log.info("Not writing an inlier report for a failed match (%s)", result.error)
        return False
    save_inliers(path, result.inliers)
    return True
