"""
End-to-end tests: descriptor sets -> candidates -> RANSAC -> report,
feature extraction and the command-line driver
"""

import json

import numpy as np
import pytest
from PIL import Image

import run_pipeline
from inlier_match.config import PipelineConfig
from inlier_match.errors import (
    DegenerateGeometry, InputMismatch, InsufficientCorrespondences, PersistenceFailure,
)
from inlier_match.features.extraction import FeatureExtractor
from inlier_match.geometry.homography import apply_homography
from inlier_match.pipeline import match_pair, persist_result, run_images, should_persist
from inlier_match.types import DescriptorSet, PairResult
from inlier_match.utils.inlier_io import load_inliers


def _descriptor_scene(true_h, n_inliers=40, n_outliers=10, seed=0):
    """A's first n_inliers keypoints map to B under true_h; the rest map to
    random B locations.  B rows are shuffled."""
    rng = np.random.default_rng(seed)
    n = n_inliers + n_outliers
    kp_a = rng.uniform((0, 0), (640, 480), size=(n, 2))
    kp_b = np.vstack([
        apply_homography(true_h, kp_a[:n_inliers]) + rng.normal(0, 0.2, size=(n_inliers, 2)),
        rng.uniform((0, 0), (640, 480), size=(n_outliers, 2)),
    ])
    desc_a = rng.normal(size=(n, 64))
    desc_b = desc_a + rng.normal(scale=0.2, size=desc_a.shape)

    perm = rng.permutation(n)
    set_a = DescriptorSet(kp_a, desc_a)
    set_b = DescriptorSet(kp_b[perm], desc_b[perm])
    # B row k holds A's descriptor perm[k]
    owner = np.argsort(perm)
    return set_a, set_b, owner


class TestMatchPair:
    def test_synthetic_pair(self, true_h):
        set_a, set_b, owner = _descriptor_scene(true_h)
        cfg = PipelineConfig()
        cfg.ransac.seed = 0
        cfg.ransac.refine = True
        result = match_pair(set_a, set_b, cfg)

        assert result.ok
        assert result.error is None
        assert len(result.candidates) == 50
        for c in result.candidates:
            assert c.index_b == owner[c.index_a]
        inlier_a = {c.index_a for c in result.inliers}
        assert len(inlier_a & set(range(40))) >= 38
        assert len(inlier_a - set(range(40))) <= 1

    def test_input_mismatch_is_reported(self):
        set_a = DescriptorSet(np.zeros((5, 2)), np.zeros((5, 32)))
        set_b = DescriptorSet(np.zeros((5, 2)), np.zeros((5, 64)))
        result = match_pair(set_a, set_b)
        assert not result.ok
        assert isinstance(result.error, InputMismatch)
        assert result.inliers == []

    def test_too_few_candidates(self, true_h):
        set_a, set_b, _ = _descriptor_scene(true_h, n_inliers=3, n_outliers=0)
        result = match_pair(set_a, set_b)
        assert not result.ok
        assert isinstance(result.error, InsufficientCorrespondences)
        assert len(result.candidates) == 3

    def test_empty_inputs(self):
        empty = DescriptorSet.empty(32)
        result = match_pair(empty, empty)
        assert not result.ok
        assert result.candidates == []
        assert isinstance(result.error, InsufficientCorrespondences)


class TestPersistResult:
    def test_success_writes_inliers(self, tmp_path, true_h):
        set_a, set_b, _ = _descriptor_scene(true_h)
        cfg = PipelineConfig()
        cfg.ransac.seed = 1
        result = match_pair(set_a, set_b, cfg)
        path = tmp_path / "inliers.json"
        assert persist_result(result, str(path), cfg)
        assert len(load_inliers(path)) == result.homography.num_inliers

    def test_geometry_failure_writes_empty_report(self, tmp_path):
        result = PairResult(ok=False, error=DegenerateGeometry(10))
        path = tmp_path / "inliers.json"
        assert persist_result(result, str(path))
        assert json.loads(path.read_text()) == {"points": []}

    def test_geometry_failure_can_skip_report(self, tmp_path):
        cfg = PipelineConfig()
        cfg.output.write_empty_on_failure = False
        result = PairResult(ok=False, error=InsufficientCorrespondences(2))
        path = tmp_path / "inliers.json"
        assert not persist_result(result, str(path), cfg)
        assert not path.exists()

    def test_mismatch_never_writes(self, tmp_path):
        result = PairResult(ok=False, error=InputMismatch("length"))
        assert not should_persist(result)
        path = tmp_path / "inliers.json"
        assert not persist_result(result, str(path))
        assert not path.exists()

    def test_unwritable_destination(self, tmp_path):
        result = PairResult(ok=False, error=DegenerateGeometry(1))
        with pytest.raises(PersistenceFailure):
            persist_result(result, str(tmp_path / "nope" / "inliers.json"))
        assert result.inliers == []


def _texture(seed=0, size=(240, 320)):
    rng = np.random.default_rng(seed)
    coarse = rng.random((size[0] // 8, size[1] // 8))
    return np.kron(coarse, np.ones((8, 8)))


class TestFeatureExtractor:
    def test_orb_descriptors(self):
        gray = _texture()
        fs = FeatureExtractor(method="orb", n_keypoints=200).detect_and_compute(gray)
        assert len(fs) > 0
        assert fs.metric == "hamming"
        assert fs.descriptors.dtype == np.bool_
        assert fs.length == 256
        assert np.all((fs.keypoints[:, 0] >= 0) & (fs.keypoints[:, 0] < gray.shape[1]))
        assert np.all((fs.keypoints[:, 1] >= 0) & (fs.keypoints[:, 1] < gray.shape[0]))

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            FeatureExtractor(method="surf")

    def test_rejects_color_input(self):
        with pytest.raises(ValueError):
            FeatureExtractor().detect_and_compute(np.zeros((10, 10, 3)))


def _write_shifted_pair(tmp_path):
    """Two crops of one texture; image 2 is image 1 shifted by (12, 15)."""
    tex = (_texture(seed=3, size=(320, 400)) * 255).astype(np.uint8)
    p1, p2 = tmp_path / "a.png", tmp_path / "b.png"
    Image.fromarray(tex[20:260, 30:350]).save(p1)
    Image.fromarray(tex[35:275, 42:362]).save(p2)
    return str(p1), str(p2)


class TestRunImages:
    def test_shifted_pair(self, tmp_path):
        p1, p2 = _write_shifted_pair(tmp_path)
        cfg = PipelineConfig()
        cfg.ransac.seed = 0
        result = run_images(p1, p2, cfg)
        assert result.ok
        assert result.homography.num_inliers >= 4
        for m in result.inliers:
            assert m.point_a[0] - m.point_b[0] == pytest.approx(12, abs=3)
            assert m.point_a[1] - m.point_b[1] == pytest.approx(15, abs=3)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            run_images(str(tmp_path / "a.png"), str(tmp_path / "b.png"))


class TestDriver:
    def test_missing_image(self, tmp_path, capsys):
        code = run_pipeline.main([str(tmp_path / "a.png"), str(tmp_path / "b.png")])
        assert code == 1
        assert "Image not found" in capsys.readouterr().out

    def test_unsupported_method_in_config(self, tmp_path, capsys):
        p1, p2 = _write_shifted_pair(tmp_path)
        cfg_path = tmp_path / "cfg.yaml"
        cfg_path.write_text("features:\n  method: akaze\n")
        out = tmp_path / "inliers.json"
        code = run_pipeline.main([p1, p2, "--config", str(cfg_path), "--output", str(out)])
        assert code == 1
        assert "Invalid configuration" in capsys.readouterr().out
        assert not out.exists()

    def test_invalid_ratio_flag(self, tmp_path, capsys):
        p1, p2 = _write_shifted_pair(tmp_path)
        code = run_pipeline.main([p1, p2, "--ratio", "1.5",
                                  "--output", str(tmp_path / "inliers.json")])
        assert code == 1
        assert "nndr_ratio" in capsys.readouterr().out

    def test_end_to_end(self, tmp_path):
        p1, p2 = _write_shifted_pair(tmp_path)
        out = tmp_path / "inliers.json"

        code = run_pipeline.main([p1, p2, "--output", str(out), "--seed", "0", "--refine"])
        assert code == 0
        data = json.loads(out.read_text())
        assert len(data["points"]) >= 4
        for rec in data["points"]:
            dx = rec["pattern_point"]["x"] - rec["image_point"]["x"]
            dy = rec["pattern_point"]["y"] - rec["image_point"]["y"]
            assert abs(dx - 12) <= 3 and abs(dy - 15) <= 3
