"""
Test suite for the two-view matching pipeline.

Structure:
- unit/: unit tests for the matcher, homography fitting, RANSAC, persistence,
  configuration and the end-to-end pipeline on synthetic data
"""
