"""
Keypoint detection and description, delegated to scikit-image.

- FeatureExtractor(method='orb'|'sift') with .detect_and_compute(gray)
- ORB yields 256-bit binary descriptors (compared with Hamming distance)
- SIFT yields 128-D gradient descriptors (compared with Euclidean distance)

scikit-image reports keypoints as (row, col); they are returned as (x, y).
"""

from dataclasses import dataclass

import numpy as np
from skimage.feature import ORB, SIFT

from inlier_match.types import DescriptorSet, EUCLIDEAN, HAMMING
from inlier_match.utils.logging_setup import get_logger

log = get_logger(__name__)

METHOD_METRIC = {"orb": HAMMING, "sift": EUCLIDEAN}
METHOD_LENGTH = {"orb": 256, "sift": 128}


@dataclass
class FeatureExtractor:
    method: str = "orb"
    n_keypoints: int = 2000
    fast_threshold: float = 0.05
    n_scales: int = 8
    downscale: float = 1.2

    def __post_init__(self):
        self.method = self.method.lower()
        if self.method == "orb":
            self._det = ORB(
                n_keypoints=int(self.n_keypoints),
                fast_threshold=float(self.fast_threshold),
                n_scales=int(self.n_scales),
                downscale=float(self.downscale),
            )
        elif self.method == "sift":
            self._det = SIFT()
        else:
            raise ValueError(f"Unsupported method: {self.method}")

    @property
    def metric(self) -> str:
        return METHOD_METRIC[self.method]

    def detect_and_compute(self, gray: np.ndarray) -> DescriptorSet:
        """Detect keypoints in a float grayscale image and describe them."""
        if gray.ndim != 2:
            raise ValueError("gray must be a single-channel image")
        try:
            self._det.detect_and_extract(gray)
        except RuntimeError as exc:
            # scikit-image raises when an image has no detectable features
            log.warning("%s found no features: %s", self.method.upper(), exc)
            return DescriptorSet.empty(METHOD_LENGTH[self.method], self.metric)

        rows_cols = np.asarray(self._det.keypoints, dtype=np.float64)
        descriptors = np.asarray(self._det.descriptors)
        if self.method == "sift":
            descriptors = descriptors.astype(np.float32)
            # SIFT can keep more keypoints than requested
            rows_cols = rows_cols[: self.n_keypoints]
            descriptors = descriptors[: self.n_keypoints]
        else:
            descriptors = descriptors.astype(bool)

        keypoints = rows_cols[:, ::-1].copy()
        log.debug("%s: %d keypoints", self.method.upper(), len(keypoints))
        return DescriptorSet(keypoints, descriptors, self.metric)
