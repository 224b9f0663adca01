#!/usr/bin/env python3
"""
run_pipeline.py – Two-view descriptor matching with RANSAC homography inliers

Extracts features from two images, proposes candidate correspondences with
the NNDR ratio test, separates homography-consistent inliers with RANSAC,
and writes the inlier pairs to a JSON report.

Usage
-----
    python run_pipeline.py img1.png img2.png
    python run_pipeline.py img1.png img2.png --output out/inliers.json
    python run_pipeline.py img1.png img2.png --descriptor sift --ratio 0.7
    python run_pipeline.py img1.png img2.png --refine --seed 7

Exit codes: 0 success, 1 input/config error, 2 matching failure,
3 the report could not be written.
"""

import argparse
import os
import sys
import time

# Ensure the project root is on the Python path when invoked directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from inlier_match.config import PipelineConfig, load_config
from inlier_match.errors import PersistenceFailure
from inlier_match.pipeline import extract_pair, match_pair, persist_result
from inlier_match.utils.logging_setup import setup_logging

DEFAULT_CONFIG = os.path.join(os.path.dirname(os.path.abspath(__file__)),
                              "configs", "default.yaml")


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

def banner(text: str) -> None:
    width = 60
    print("\n" + "─" * width)
    print(f"  {text}")
    print("─" * width)


def apply_overrides(cfg: PipelineConfig, args) -> PipelineConfig:
    """Command-line flags take precedence over the YAML file."""
    if args.descriptor is not None:
        cfg.features.method = args.descriptor
    if args.ratio is not None:
        cfg.matching.nndr_ratio = args.ratio
    if args.threshold is not None:
        cfg.ransac.error_threshold = args.threshold
    if args.refine:
        cfg.ransac.refine = True
    if args.forward_only:
        cfg.ransac.symmetric_error = False
    if args.seed is not None:
        cfg.ransac.seed = args.seed
    if args.output is not None:
        cfg.output.inliers_path = args.output
    if args.verbose:
        cfg.logging.level = "DEBUG"
    return cfg


# ──────────────────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Match two images and save RANSAC homography inliers"
    )
    p.add_argument("img1", help="Pattern (source) image")
    p.add_argument("img2", help="Target image")
    p.add_argument(
        "--config", default=None,
        help="Path to YAML configuration file (default: configs/default.yaml)",
    )
    p.add_argument("--output", default=None,
                   help="Inlier report path (default: ./inliers.json)")
    p.add_argument("--descriptor", choices=["orb", "sift"], default=None,
                   help="Feature extractor; orb is matched with Hamming, sift with L2")
    p.add_argument("--ratio", type=float, default=None, help="NNDR ratio threshold")
    p.add_argument("--threshold", type=float, default=None,
                   help="RANSAC inlier reprojection error in pixels")
    p.add_argument("--refine", action="store_true",
                   help="Refit the homography on all inliers after RANSAC")
    p.add_argument("--forward-only", action="store_true",
                   help="Score with forward reprojection error only")
    p.add_argument("--seed", type=int, default=None,
                   help="Random seed for reproducible RANSAC trials")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    config_path = args.config
    if config_path is None and os.path.exists(DEFAULT_CONFIG):
        config_path = DEFAULT_CONFIG
    if config_path is not None and not os.path.exists(config_path):
        print(f"[ERROR] Config file not found: {config_path}")
        return 1
    try:
        cfg = apply_overrides(load_config(config_path), args).validate()
    except ValueError as exc:
        print(f"[ERROR] Invalid configuration: {exc}")
        return 1
    setup_logging(cfg.logging.level, cfg.logging.format)

    for path in (args.img1, args.img2):
        if not os.path.exists(path):
            print(f"[ERROR] Image not found: {path}")
            return 1

    banner("Two-view matching with RANSAC homography inliers")
    print(f"  Images     : {args.img1}  /  {args.img2}")
    print(f"  Descriptor : {cfg.features.method}")
    print(f"  NNDR ratio : {cfg.matching.nndr_ratio}")
    print(f"  RANSAC     : {cfg.ransac.error_threshold}px "
          f"({'symmetric' if cfg.ransac.symmetric_error else 'forward'}"
          f"{', refine' if cfg.ransac.refine else ''})")
    print(f"  Output     : {cfg.output.inliers_path}")

    t0 = time.time()

    # ── 1. Features ──────────────────────────────────────────────────────────
    try:
        set_a, set_b = extract_pair(args.img1, args.img2, cfg)
    except OSError as exc:
        print(f"[ERROR] Could not load images: {exc}")
        return 1
    except ValueError as exc:
        print(f"[ERROR] Feature extraction failed: {exc}")
        return 1
    print(f"  Features   : {len(set_a)} / {len(set_b)}")

    # ── 2. NNDR candidates + RANSAC ──────────────────────────────────────────
    result = match_pair(set_a, set_b, cfg)
    print(f"  Candidates : {len(result.candidates)}")
    if result.ok:
        h = result.homography
        print(f"  Inliers    : {h.num_inliers} / {h.total}  "
              f"(rmse {h.rmse_px:.3f}px, {h.trials} trials)")
    else:
        print(f"  Matching failed: {result.error}")

    # ── 3. Save inliers ──────────────────────────────────────────────────────
    try:
        written = persist_result(result, cfg.output.inliers_path, cfg)
    except PersistenceFailure as exc:
        print(f"[ERROR] {exc}")
        return 3
    if written:
        print(f"  Saved inliers → {cfg.output.inliers_path}")

    print(f"\nPipeline complete in {time.time() - t0:.1f}s")
    return 0 if result.ok else 2


if __name__ == "__main__":
    sys.exit(main())
