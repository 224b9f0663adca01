"""
Nearest-Neighbour Distance Ratio (NNDR) candidate matching.

Implements Lowe's ratio test: a match is accepted only when the distance to
the best candidate is significantly smaller than the distance to the second-
best candidate, which rejects correspondences in repetitive or textureless
regions where several descriptors are nearly equidistant.

The search is brute force, O(|A| * |B| * L).  That is fine for the few
thousand keypoints a single image pair produces; for much larger sets a
k-d tree over float descriptors (scipy.spatial.cKDTree, k=2 queries) or a
multi-index hash for binary descriptors would replace pairwise_distances.
"""

from typing import List, Tuple

import numpy as np
from scipy.spatial.distance import cdist

from inlier_match.types import (
    CandidateMatch, DescriptorSet, EUCLIDEAN, HAMMING, check_compatible,
)
from inlier_match.utils.logging_setup import get_logger

log = get_logger(__name__)


def _as_bits(desc: np.ndarray) -> np.ndarray:
    if desc.dtype == np.bool_:
        return desc
    return np.unpackbits(desc.astype(np.uint8, copy=False), axis=1).astype(bool)


def pairwise_distances(desc1: np.ndarray, desc2: np.ndarray,
                       metric: str = EUCLIDEAN) -> np.ndarray:
    """Distance matrix between two descriptor blocks.

    Parameters
    ----------
    desc1 : np.ndarray
        M x L descriptor matrix.
    desc2 : np.ndarray
        N x L descriptor matrix.
    metric : str
        ``"euclidean"`` for L2 distance, ``"hamming"`` for the number of
        differing bits (bool descriptors, or uint8 with 8 packed bits each).

    Returns
    -------
    np.ndarray
        M x N float64 distance matrix.
    """
    if metric == EUCLIDEAN:
        return cdist(desc1.astype(np.float64, copy=False),
                     desc2.astype(np.float64, copy=False), metric="euclidean")
    if metric == HAMMING:
        bits1 = _as_bits(desc1)
        bits2 = _as_bits(desc2)
        # cdist reports the fraction of differing elements
        return np.rint(cdist(bits1, bits2, metric="hamming") * bits1.shape[1])
    raise ValueError(f"Unsupported metric: {metric}")


def _two_nearest(distances: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Best index, best distance and second-best distance for every row.

    Ties resolve to the lowest column index.
    """
    rows = np.arange(distances.shape[0])
    nn1_idx = np.argmin(distances, axis=1)
    dist1 = distances[rows, nn1_idx]
    masked = distances.copy()
    masked[rows, nn1_idx] = np.inf
    dist2 = masked.min(axis=1)
    return nn1_idx, dist1, dist2


class CandidateMatcher:
    """Proposes candidate correspondences from A to B with the ratio test.

    Parameters
    ----------
    ratio : float
        NNDR threshold in (0, 1).  Lower values are more selective.
    chunk_size : int
        Number of A descriptors whose distance rows are held in memory at
        once.  Does not affect the result.
    """

    def __init__(self, ratio: float = 0.80, chunk_size: int = 1024):
        if not 0.0 < ratio < 1.0:
            raise ValueError(f"ratio must be in (0, 1), got {ratio}")
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.ratio = float(ratio)
        self.chunk_size = int(chunk_size)

    def match(self, set_a: DescriptorSet, set_b: DescriptorSet) -> List[CandidateMatch]:
        matches, _ = self.match_with_ratios(set_a, set_b)
        return matches

    def match_with_ratios(self, set_a: DescriptorSet, set_b: DescriptorSet):
        """Run the ratio test and also return every query's NNDR ratio.

        Returns
        -------
        matches : list of CandidateMatch
            Accepted candidates, in the order of *set_a*.
        all_ratios : np.ndarray
            ``d1 / d2`` for every descriptor in *set_a* (NaN when *set_b*
            has fewer than two descriptors, inf when ``d2 == 0``).
        """
        check_compatible(set_a, set_b)
        all_ratios = np.full(len(set_a), np.nan)

        if len(set_a) == 0 or len(set_b) == 0:
            return [], all_ratios
        if len(set_b) < 2:
            log.warning("Image B has %d descriptor(s); ratio test needs 2, "
                        "skipping all %d queries", len(set_b), len(set_a))
            return [], all_ratios

        matches = []
        for start in range(0, len(set_a), self.chunk_size):
            stop = min(start + self.chunk_size, len(set_a))
            distances = pairwise_distances(set_a.descriptors[start:stop],
                                           set_b.descriptors, set_a.metric)
            nn1_idx, dist1, dist2 = _two_nearest(distances)

            with np.errstate(divide="ignore", invalid="ignore"):
                ratios = np.where(dist2 > 0, dist1 / dist2, np.inf)
            all_ratios[start:stop] = ratios

            accepted = dist1 < self.ratio * dist2
            for offset in np.flatnonzero(accepted):
                i = start + int(offset)
                j = int(nn1_idx[offset])
                matches.append(CandidateMatch(
                    point_a=(float(set_a.keypoints[i, 0]), float(set_a.keypoints[i, 1])),
                    point_b=(float(set_b.keypoints[j, 0]), float(set_b.keypoints[j, 1])),
                    ratio=float(ratios[offset]),
                    index_a=i,
                    index_b=j,
                ))

        log.info("NNDR: %d / %d queries accepted (ratio=%.2f, metric=%s)",
                 len(matches), len(set_a), self.ratio, set_a.metric)
        return matches, all_ratios


def match_features(set_a: DescriptorSet, set_b: DescriptorSet,
                   threshold: float = 0.80):
    """Match two descriptor sets using Lowe's ratio test.

    Parameters
    ----------
    set_a, set_b : DescriptorSet
        Descriptor sets of image A (queries) and image B (train).
    threshold : float
        NNDR ratio threshold in (0, 1).

    Returns
    -------
    matches : list of CandidateMatch
    all_ratios : np.ndarray
        NNDR ratios for every descriptor in *set_a* (useful for diagnostics).
    """
    return CandidateMatcher(ratio=threshold).match_with_ratios(set_a, set_b)
