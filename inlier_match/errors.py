"""
Error taxonomy for the matching pipeline.

Every error here is recoverable at the call site: the pipeline entry point
catches the geometry errors and reports them in its result value rather than
terminating the process.
"""


class InlierMatchError(Exception):
    """Base class for all pipeline errors."""


class InputMismatch(InlierMatchError):
    """The two descriptor sets differ in descriptor length, kind or metric."""


class InsufficientCorrespondences(InlierMatchError):
    """Fewer candidate matches than the minimal homography sample (4)."""

    def __init__(self, available: int, required: int = 4):
        super().__init__(
            f"need at least {required} candidate matches, got {available}"
        )
        self.available = available
        self.required = required


class DegenerateGeometry(InlierMatchError):
    """RANSAC exhausted its trial budget without a non-degenerate sample."""

    def __init__(self, trials: int):
        super().__init__(
            f"no non-degenerate minimal sample found in {trials} trials"
        )
        self.trials = trials
        self.inliers = []


class PersistenceFailure(InlierMatchError):
    """The inlier report could not be written to its destination."""

    def __init__(self, path, reason: str):
        super().__init__(f"could not write inliers to '{path}': {reason}")
        self.path = path
        self.reason = reason
