"""
Inlier report persistence.

The report is a JSON object with a "points" array; every record holds the
"pattern_point" (image A) and "image_point" (image B) of one inlier as
integer pixel coordinates:

    {"points": [{"pattern_point": {"x": 12, "y": 34},
                 "image_point": {"x": 15, "y": 30}}, ...]}

Files are written to a temporary sibling and renamed into place, so a reader
sees either the previous file, a complete new one, or nothing.
"""

import json
import math
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from inlier_match.errors import PersistenceFailure
from inlier_match.types import CandidateMatch
from inlier_match.utils.logging_setup import get_logger

log = get_logger(__name__)

PixelPair = Tuple[Tuple[int, int], Tuple[int, int]]


def to_pixel(v: float) -> int:
    """Round half up: floor(v + 0.5)."""
    return int(math.floor(v + 0.5))


def _point(p) -> Dict[str, int]:
    return {"x": to_pixel(p[0]), "y": to_pixel(p[1])}


def inliers_to_records(inliers: Sequence[CandidateMatch]) -> Dict:
    return {
        "points": [
            {"pattern_point": _point(m.point_a), "image_point": _point(m.point_b)}
            for m in inliers
        ]
    }


def save_inliers(path, inliers: Sequence[CandidateMatch]) -> Path:
    """Write the inlier report to *path*.

    Parameters
    ----------
    path : str or Path
        Destination file.  Its directory must already exist.
    inliers : sequence of CandidateMatch
        Ordered inlier set.

    Returns
    -------
    Path
        The written file.

    Raises
    ------
    PersistenceFailure
        The destination could not be written; no partial file is left.
    """
    path = Path(path)
    payload = json.dumps(inliers_to_records(inliers), indent=1)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp",
                                        dir=str(path.parent))
        with os.fdopen(fd, "w") as fh:
            fh.write(payload)
            fh.write("\n")
        os.replace(tmp_name, path)
    except OSError as exc:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceFailure(path, str(exc)) from exc

    log.info("Saved %d inliers to %s", len(inliers), path)
    return path


def load_inliers(path) -> List[PixelPair]:
    """Parse an inlier report back into ((x1, y1), (x2, y2)) integer pairs."""
    with open(path, "r") as fh:
        data = json.load(fh)
    pairs = []
    for rec in data["points"]:
        a, b = rec["pattern_point"], rec["image_point"]
        pairs.append(((int(a["x"]), int(a["y"])), (int(b["x"]), int(b["y"]))))
    return pairs
