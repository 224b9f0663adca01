"""
Shared fixtures: a known homography and synthetic correspondence sets.
"""

import numpy as np
import pytest

from inlier_match.geometry.homography import apply_homography
from inlier_match.types import CandidateMatch

TRUE_H = np.array([
    [1.05, 0.02, 15.0],
    [-0.03, 0.98, -10.0],
    [1e-5, 2e-5, 1.0],
])
IMAGE_SIZE = (640.0, 480.0)


def _to_candidates(src, dst):
    return [
        CandidateMatch(point_a=(float(a[0]), float(a[1])),
                       point_b=(float(b[0]), float(b[1])),
                       ratio=0.5, index_a=i, index_b=i)
        for i, (a, b) in enumerate(zip(src, dst))
    ]


@pytest.fixture
def true_h():
    return TRUE_H.copy()


@pytest.fixture
def make_candidates():
    return _to_candidates


@pytest.fixture
def synthetic_scene():
    """
    Factory returning (candidates, is_inlier) for n_inliers points mapped by
    TRUE_H with Gaussian noise plus n_outliers random correspondences,
    shuffled together.
    """
    def _make(n_inliers=40, n_outliers=20, noise=0.3, seed=0):
        rng = np.random.default_rng(seed)
        src_in = rng.uniform((0.0, 0.0), IMAGE_SIZE, size=(n_inliers, 2))
        dst_in = apply_homography(TRUE_H, src_in) + rng.normal(0.0, noise, size=(n_inliers, 2))
        src_out = rng.uniform((0.0, 0.0), IMAGE_SIZE, size=(n_outliers, 2))
        dst_out = rng.uniform((0.0, 0.0), IMAGE_SIZE, size=(n_outliers, 2))

        src = np.vstack([src_in, src_out])
        dst = np.vstack([dst_in, dst_out])
        is_inlier = np.array([True] * n_inliers + [False] * n_outliers)
        perm = rng.permutation(len(src))
        return _to_candidates(src[perm], dst[perm]), is_inlier[perm]
    return _make
