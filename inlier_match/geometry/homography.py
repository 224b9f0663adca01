"""
Homography estimation from point correspondences.

A planar homography (projective transformation) maps points in one image to
corresponding points in another when the scene is planar or the camera
undergoes pure rotation.  The 3x3 matrix is estimated via the normalised
Direct Linear Transform (DLT) and solved with SVD.

All point arrays are N x 2 in (x, y) pixel coordinates.
"""

from itertools import combinations
from typing import Optional, Tuple

import numpy as np

# |det| of the unit-Frobenius-norm matrix below which a fit is rejected
DET_TOLERANCE = 1e-10
# |sin| of the angle spanned by three points below which they are collinear
COLLINEAR_TOLERANCE = 1e-3


def normalize_points(pts: np.ndarray) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
    """Hartley normalisation: centroid to the origin, mean distance sqrt(2).

    Parameters
    ----------
    pts : np.ndarray
        N x 2 array of (x, y) coordinates.

    Returns
    -------
    normalized : np.ndarray or None
        N x 2 normalised coordinates, *None* if all points coincide.
    T : np.ndarray or None
        3 x 3 similarity with ``normalized ~ T @ [x, y, 1]``.
    """
    centroid = pts.mean(axis=0)
    centered = pts - centroid
    mean_dist = np.mean(np.linalg.norm(centered, axis=1))
    if not np.isfinite(mean_dist) or mean_dist < 1e-12:
        return None, None

    s = np.sqrt(2.0) / mean_dist
    T = np.array([[s, 0.0, -s * centroid[0]],
                  [0.0, s, -s * centroid[1]],
                  [0.0, 0.0, 1.0]])
    return centered * s, T


def normalize_homography(H: np.ndarray) -> np.ndarray:
    """Fix the scale of *H*: ``H[2, 2] == 1`` or, failing that, unit norm."""
    if abs(H[2, 2]) > 1e-12:
        return H / H[2, 2]
    return H / np.linalg.norm(H)


def compute_homography(pts1: np.ndarray, pts2: np.ndarray) -> Optional[np.ndarray]:
    """Estimate a 3x3 homography from four or more point correspondences.

    Each correspondence contributes two linear equations in the nine
    homography entries.  With four points the system is exactly determined
    (up to scale); with more it is solved in the least-squares sense.  Both
    point sets are normalised first so that large pixel coordinates do not
    make the system ill-conditioned.

    Parameters
    ----------
    pts1 : np.ndarray
        N x 2 source coordinates (image A).
    pts2 : np.ndarray
        N x 2 destination coordinates (image B).

    Returns
    -------
    H : np.ndarray or None
        3 x 3 homography such that ``pts2 ~ H @ pts1`` in homogeneous
        coordinates, or *None* when the fit is singular.
    """
    pts1 = np.asarray(pts1, dtype=np.float64)
    pts2 = np.asarray(pts2, dtype=np.float64)
    if pts1.shape != pts2.shape or pts1.ndim != 2 or pts1.shape[1] != 2:
        raise ValueError("point arrays must both be N x 2")
    if pts1.shape[0] < 4:
        raise ValueError(f"need at least 4 correspondences, got {pts1.shape[0]}")

    n1, T1 = normalize_points(pts1)
    n2, T2 = normalize_points(pts2)
    if T1 is None or T2 is None:
        return None

    x1, y1 = n1[:, 0], n1[:, 1]
    x2, y2 = n2[:, 0], n2[:, 1]
    zeros = np.zeros_like(x1)
    ones = np.ones_like(x1)

    A = np.empty((2 * len(x1), 9))
    A[0::2] = np.column_stack([-x1, -y1, -ones, zeros, zeros, zeros, x2 * x1, x2 * y1, x2])
    A[1::2] = np.column_stack([zeros, zeros, zeros, -x1, -y1, -ones, y2 * x1, y2 * y1, y2])

    try:
        _, _, Vt = np.linalg.svd(A)
    except np.linalg.LinAlgError:
        return None
    H_norm = Vt[-1].reshape(3, 3)

    # Undo the normalisation: H = T2^-1 @ H_norm @ T1
    H = np.linalg.solve(T2, H_norm) @ T1
    if not np.all(np.isfinite(H)):
        return None

    unit = H / np.linalg.norm(H)
    if abs(np.linalg.det(unit)) < DET_TOLERANCE:
        return None
    return normalize_homography(H)


def apply_homography(H: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a homography to N x 2 (x, y) coordinates.

    Points mapped onto the line at infinity come back as ``inf``.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    homog = np.hstack([points, np.ones((points.shape[0], 1))]) @ H.T
    with np.errstate(divide="ignore", invalid="ignore"):
        out = homog[:, :2] / homog[:, 2:3]
    out[~np.isfinite(out)] = np.inf
    return out


def reprojection_errors(H: np.ndarray, pts1: np.ndarray, pts2: np.ndarray,
                        symmetric: bool = True) -> np.ndarray:
    """Per-correspondence reprojection error in pixels.

    Forward error is ``||H(p1) - p2||``.  The symmetric error is the larger
    of the forward and the backward ``||H^-1(p2) - p1||`` error, so a single
    pixel threshold bounds both directions.
    """
    forward = np.linalg.norm(apply_homography(H, pts1) - pts2, axis=1)
    if not symmetric:
        return np.nan_to_num(forward, nan=np.inf)
    H_inv = np.linalg.inv(H)
    backward = np.linalg.norm(apply_homography(H_inv, pts2) - pts1, axis=1)
    return np.nan_to_num(np.maximum(forward, backward), nan=np.inf)


def _has_collinear_triplet(pts: np.ndarray, tol: float) -> bool:
    for i, j, k in combinations(range(len(pts)), 3):
        v1 = pts[j] - pts[i]
        v2 = pts[k] - pts[i]
        n1 = np.hypot(v1[0], v1[1])
        n2 = np.hypot(v2[0], v2[1])
        if n1 == 0.0 or n2 == 0.0:
            return True
        cross = v1[0] * v2[1] - v1[1] * v2[0]
        if abs(cross) / (n1 * n2) < tol:
            return True
    return False


def is_degenerate_sample(pts1: np.ndarray, pts2: np.ndarray,
                         tol: float = COLLINEAR_TOLERANCE) -> bool:
    """True if any three points of the sample are collinear (or coincide)
    in either image."""
    return _has_collinear_triplet(pts1, tol) or _has_collinear_triplet(pts2, tol)
