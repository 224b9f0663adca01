"""
Pipeline configuration.

Defaults live in configs/default.yaml; load_config() reads a YAML file into
PipelineConfig.  Every section is optional and every key defaults to the
values below.  Unknown keys and out-of-range values raise ValueError, so
typos surface before any image is loaded.

The NNDR ratio (0.80) and error threshold (2.50 px) were tuned for binary
AKAZE-like descriptors; recalibrate them for other descriptor types.
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, Optional

import yaml

FEATURE_METHODS = ("orb", "sift")
LOG_FORMATS = ("text", "json")


@dataclass
class FeatureConfig:
    method: str = "orb"
    n_keypoints: int = 2000
    fast_threshold: float = 0.05

    def __post_init__(self):
        self.validate()

    def validate(self):
        if self.method not in FEATURE_METHODS:
            raise ValueError(f"features.method must be one of {FEATURE_METHODS}, "
                             f"got {self.method!r}")
        if self.n_keypoints < 1:
            raise ValueError("features.n_keypoints must be >= 1")


@dataclass
class MatchingConfig:
    nndr_ratio: float = 0.80
    chunk_size: int = 1024

    def __post_init__(self):
        self.validate()

    def validate(self):
        if not 0.0 < self.nndr_ratio < 1.0:
            raise ValueError(f"matching.nndr_ratio must be in (0, 1), got {self.nndr_ratio}")
        if self.chunk_size < 1:
            raise ValueError("matching.chunk_size must be >= 1")


@dataclass
class RansacConfig:
    error_threshold: float = 2.50
    symmetric_error: bool = True
    refine: bool = False
    confidence: float = 0.99
    max_trials: int = 2000
    max_resample: int = 100
    refine_iterations: int = 10
    seed: Optional[int] = None

    def __post_init__(self):
        self.validate()

    def validate(self):
        if self.error_threshold <= 0:
            raise ValueError("ransac.error_threshold must be > 0")
        if not 0.0 < self.confidence < 1.0:
            raise ValueError("ransac.confidence must be in (0, 1)")
        if self.max_trials < 1 or self.max_resample < 1:
            raise ValueError("ransac.max_trials and ransac.max_resample must be >= 1")


@dataclass
class OutputConfig:
    inliers_path: str = "./inliers.json"
    write_empty_on_failure: bool = True


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "text"

    def __post_init__(self):
        self.validate()

    def validate(self):
        if self.format not in LOG_FORMATS:
            raise ValueError(f"logging.format must be one of {LOG_FORMATS}, "
                             f"got {self.format!r}")


SECTIONS = {
    "features": FeatureConfig,
    "matching": MatchingConfig,
    "ransac": RansacConfig,
    "output": OutputConfig,
    "logging": LoggingConfig,
}


def _build_section(cls, values: Optional[Dict[str, Any]], name: str):
    values = values or {}
    if not isinstance(values, dict):
        raise ValueError(f"config section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"unknown keys in '{name}': {sorted(unknown)}")
    return cls(**values)


@dataclass
class PipelineConfig:
    features: FeatureConfig = field(default_factory=FeatureConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    ransac: RansacConfig = field(default_factory=RansacConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PipelineConfig":
        data = data or {}
        unknown = set(data) - set(SECTIONS)
        if unknown:
            raise ValueError(f"unknown config sections: {sorted(unknown)}")
        return cls(**{name: _build_section(sc, data.get(name), name)
                      for name, sc in SECTIONS.items()})

    def validate(self) -> "PipelineConfig":
        """Re-check every section, e.g. after command-line overrides."""
        for name in SECTIONS:
            getattr(self, name).validate()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: Optional[str] = None) -> PipelineConfig:
    """Read a YAML config file; no path means all defaults."""
    if path is None:
        return PipelineConfig()
    with open(path, "r") as fh:
        return PipelineConfig.from_dict(yaml.safe_load(fh))
