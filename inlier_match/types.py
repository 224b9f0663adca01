"""
Shared data containers for the two-view matching pipeline.

- DescriptorSet: keypoints + descriptors of one image, with their metric
- CandidateMatch: one NNDR-accepted correspondence
- HomographyResult: RANSAC model + ordered inlier set + diagnostics
- PairResult: outcome of one pipeline invocation (result-or-error)

Points are always stored as (x, y) in image pixel coordinates.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from inlier_match.errors import InputMismatch, InlierMatchError

EUCLIDEAN = "euclidean"
HAMMING = "hamming"
METRICS = (EUCLIDEAN, HAMMING)

Point = Tuple[float, float]


@dataclass
class DescriptorSet:
    """
    Keypoints and descriptors extracted from a single image.

    Attributes:
        keypoints: N x 2 float64 array of (x, y) locations.
        descriptors: N x L array. Float for gradient descriptors; bool
            (one element per bit) or uint8 (8 packed bits per element) for
            binary descriptors.
        metric: "euclidean" or "hamming".
    """
    keypoints: np.ndarray
    descriptors: np.ndarray
    metric: str = EUCLIDEAN

    def __post_init__(self) -> None:
        if self.metric not in METRICS:
            raise ValueError(f"Unsupported metric: {self.metric}")
        self.keypoints = np.asarray(self.keypoints, dtype=np.float64).reshape(-1, 2)
        self.descriptors = np.asarray(self.descriptors)
        if self.descriptors.ndim != 2:
            raise ValueError("descriptors must be a 2-D (N x L) array")
        if self.descriptors.shape[0] != self.keypoints.shape[0]:
            raise ValueError(
                f"{self.keypoints.shape[0]} keypoints but "
                f"{self.descriptors.shape[0]} descriptors"
            )
        if self.metric == HAMMING and not (
            self.descriptors.dtype == np.bool_ or self.descriptors.dtype == np.uint8
        ):
            raise ValueError("hamming descriptors must be bool or packed uint8")

    def __len__(self) -> int:
        return int(self.keypoints.shape[0])

    @property
    def length(self) -> int:
        """Descriptor length in array elements."""
        return int(self.descriptors.shape[1])

    @property
    def kind(self) -> str:
        """'float', 'bits' (unpacked bool) or 'packed' (uint8 bytes)."""
        if self.metric == EUCLIDEAN:
            return "float"
        return "bits" if self.descriptors.dtype == np.bool_ else "packed"

    @classmethod
    def empty(cls, length: int = 0, metric: str = EUCLIDEAN) -> "DescriptorSet":
        dtype = np.bool_ if metric == HAMMING else np.float32
        return cls(np.zeros((0, 2)), np.zeros((0, length), dtype=dtype), metric)


def check_compatible(a: DescriptorSet, b: DescriptorSet) -> None:
    """
    Raise InputMismatch unless both sets can be compared element-wise.
    Lengths are only compared when both sets hold descriptors.
    """
    if a.metric != b.metric:
        raise InputMismatch(f"metric mismatch: {a.metric} vs {b.metric}")
    if a.kind != b.kind:
        raise InputMismatch(f"descriptor kind mismatch: {a.kind} vs {b.kind}")
    if len(a) and len(b) and a.length != b.length:
        raise InputMismatch(f"descriptor length mismatch: {a.length} vs {b.length}")


@dataclass(frozen=True)
class CandidateMatch:
    point_a: Point
    point_b: Point
    ratio: float
    index_a: int
    index_b: int


@dataclass
class HomographyResult:
    """
    Output of the RANSAC estimator.

    Attributes:
        H: 3x3 homography mapping image A points to image B (None if no model).
        inlier_mask: boolean mask over the candidate list.
        inliers: the ordered inlier set (stable filter of the candidates).
        rmse_px: forward reprojection RMSE over the inliers.
        trials: RANSAC trials actually run.
        refined: whether the least-squares refit replaced the sampled model.
    """
    H: Optional[np.ndarray]
    inlier_mask: np.ndarray
    inliers: List[CandidateMatch]
    rmse_px: float
    trials: int
    refined: bool = False

    @property
    def num_inliers(self) -> int:
        return len(self.inliers)

    @property
    def total(self) -> int:
        return int(self.inlier_mask.shape[0])


@dataclass
class PairResult:
    ok: bool
    candidates: List[CandidateMatch] = field(default_factory=list)
    homography: Optional[HomographyResult] = None
    error: Optional[InlierMatchError] = None

    @property
    def inliers(self) -> List[CandidateMatch]:
        if self.homography is None:
            return []
        return self.homography.inliers
