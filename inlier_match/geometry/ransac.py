"""
RANSAC-based robust homography estimation.

Random Sample Consensus (RANSAC) handles outliers in candidate matches by
repeatedly drawing minimal 4-point subsets, fitting a homography, and
counting geometrically consistent inliers.  The number of trials adapts to
the best inlier ratio seen so far, bounded by a hard cap.  The winning model
can optionally be refitted by least squares on all of its inliers.

Trials run sequentially from a single random generator per estimator, so a
fixed seed (or an injected generator) reproduces the result exactly.
"""

import math
from typing import List, Optional, Sequence, Set, Tuple

import numpy as np

from inlier_match.errors import DegenerateGeometry, InsufficientCorrespondences
from inlier_match.geometry.homography import (
    compute_homography, is_degenerate_sample, reprojection_errors,
)
from inlier_match.types import CandidateMatch, HomographyResult
from inlier_match.utils.logging_setup import get_logger

log = get_logger(__name__)

MIN_SAMPLE = 4
# Up to this many distinct 4-subsets, drawn subsets are tracked so the
# search stops once every one of them has been tried.
EXHAUSTIVE_LIMIT = 10000


class HomographyEstimator:
    """Robust homography fit over a list of candidate matches.

    Parameters
    ----------
    error_threshold : float
        Maximum reprojection error (pixels) for a candidate to be an inlier.
    symmetric : bool
        Use the symmetric (forward and backward) error instead of the
        forward error only.
    refine : bool
        Refit the winning model on all of its inliers and re-score.
    confidence : float
        Target probability of having drawn at least one all-inlier sample.
    max_trials : int
        Hard cap on the number of trials.
    max_resample : int
        Draws allowed per trial to find a non-degenerate sample before the
        trial is skipped.
    refine_iterations : int
        Cap on refit/re-score rounds.
    rng : numpy.random.Generator, optional
        Source of the random draws (anything with ``choice(n, size,
        replace=False)``).  Built from *seed* when omitted.
    seed : int, optional
        Seed for the default generator.
    """

    def __init__(self, error_threshold: float = 2.50, symmetric: bool = True,
                 refine: bool = False, confidence: float = 0.99,
                 max_trials: int = 2000, max_resample: int = 100,
                 refine_iterations: int = 10, rng=None,
                 seed: Optional[int] = None):
        if error_threshold <= 0:
            raise ValueError("error_threshold must be > 0")
        if not 0.0 < confidence < 1.0:
            raise ValueError("confidence must be in (0, 1)")
        if max_trials < 1 or max_resample < 1:
            raise ValueError("max_trials and max_resample must be >= 1")
        self.error_threshold = float(error_threshold)
        self.symmetric = bool(symmetric)
        self.refine = bool(refine)
        self.confidence = float(confidence)
        self.max_trials = int(max_trials)
        self.max_resample = int(max_resample)
        self.refine_iterations = int(refine_iterations)
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def required_trials(self, inlier_ratio: float) -> int:
        """Trials needed to hit an all-inlier sample with ``confidence``."""
        if inlier_ratio >= 1.0:
            return 0
        p_good = inlier_ratio ** MIN_SAMPLE
        denom = math.log1p(-p_good) if p_good > 0 else 0.0
        if denom == 0.0:
            return self.max_trials
        n = math.ceil(math.log(1.0 - self.confidence) / denom)
        return int(min(self.max_trials, max(n, 0)))

    def _sample_model(self, src: np.ndarray, dst: np.ndarray,
                      seen: Optional[Set[Tuple[int, ...]]] = None,
                      n_subsets: int = 0) -> Optional[np.ndarray]:
        """Fit a model to a fresh non-degenerate minimal sample, or None.

        When *seen* is given, every drawn subset is recorded in it and no
        further draws are made once it holds all *n_subsets* subsets.
        """
        n = src.shape[0]
        for _ in range(self.max_resample):
            if seen is not None and len(seen) >= n_subsets:
                return None
            idx = self.rng.choice(n, MIN_SAMPLE, replace=False)
            if seen is not None:
                seen.add(tuple(sorted(int(i) for i in idx)))
            s, d = src[idx], dst[idx]
            if is_degenerate_sample(s, d):
                continue
            H = compute_homography(s, d)
            if H is not None:
                return H
        return None

    def _score(self, H: np.ndarray, src: np.ndarray, dst: np.ndarray):
        errors = reprojection_errors(H, src, dst, symmetric=self.symmetric)
        mask = errors < self.error_threshold
        return mask, int(mask.sum()), float(errors[mask].sum())

    def _refine_model(self, H, mask, count, total, src, dst):
        refined = False
        for _ in range(self.refine_iterations):
            if count < MIN_SAMPLE:
                break
            H_new = compute_homography(src[mask], dst[mask])
            if H_new is None:
                break
            new_mask, new_count, new_total = self._score(H_new, src, dst)
            if new_count < count or (new_count == count and new_total > total):
                break
            stable = np.array_equal(new_mask, mask)
            H, mask, count, total = H_new, new_mask, new_count, new_total
            refined = True
            if stable:
                break
        return H, mask, refined

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def estimate(self, candidates: Sequence[CandidateMatch]) -> HomographyResult:
        """Classify *candidates* into inliers/outliers of the best homography.

        Raises
        ------
        InsufficientCorrespondences
            Fewer than 4 candidates.
        DegenerateGeometry
            Every trial failed to produce a non-degenerate sample, or every
            distinct 4-subset was tried without one.
        """
        n = len(candidates)
        if n < MIN_SAMPLE:
            raise InsufficientCorrespondences(n, MIN_SAMPLE)

        src = np.array([c.point_a for c in candidates], dtype=np.float64)
        dst = np.array([c.point_b for c in candidates], dtype=np.float64)

        best_H = None
        best_mask = np.zeros(n, dtype=bool)
        best_count, best_total = -1, math.inf
        trial_bound = self.max_trials
        trials = 0
        n_subsets = math.comb(n, MIN_SAMPLE)
        seen = set() if n_subsets <= EXHAUSTIVE_LIMIT else None

        while trials < trial_bound:
            if seen is not None and len(seen) >= n_subsets:
                log.debug("RANSAC: all %d subsets tried after %d trials", n_subsets, trials)
                break
            trials += 1
            H = self._sample_model(src, dst, seen, n_subsets)
            if H is None:
                continue
            mask, count, total = self._score(H, src, dst)
            if count > best_count or (count == best_count and total < best_total):
                best_H, best_mask, best_count, best_total = H, mask, count, total
                trial_bound = self.required_trials(count / n)

        if best_H is None:
            log.warning("RANSAC: all %d trials degenerate (%d candidates)", trials, n)
            raise DegenerateGeometry(trials)

        refined = False
        if best_count == 0:
            log.warning("RANSAC: best model has no inliers")
            return HomographyResult(best_H, best_mask, [], math.inf, trials)

        if self.refine and best_count >= MIN_SAMPLE:
            best_H, best_mask, refined = self._refine_model(
                best_H, best_mask, best_count, best_total, src, dst)

        inliers: List[CandidateMatch] = [candidates[i] for i in np.flatnonzero(best_mask)]
        forward = reprojection_errors(best_H, src[best_mask], dst[best_mask], symmetric=False)
        rmse = float(np.sqrt(np.mean(forward ** 2)))

        log.info("RANSAC: %d inliers / %d candidates (%.1f%%) after %d trials%s",
                 len(inliers), n, 100.0 * len(inliers) / n, trials,
                 ", refined" if refined else "")
        return HomographyResult(best_H, best_mask, inliers, rmse, trials, refined)


def ransac_homography(candidates: Sequence[CandidateMatch], threshold: float = 2.50,
                      refine: bool = False, **kwargs) -> HomographyResult:
    """Estimate a robust homography via RANSAC.

    Convenience wrapper around :class:`HomographyEstimator`; extra keyword
    arguments are passed to its constructor.
    """
    estimator = HomographyEstimator(error_threshold=threshold, refine=refine, **kwargs)
    return estimator.estimate(candidates)
