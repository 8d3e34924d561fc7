"""Configuration objects for the calibration module."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..utils.io import load_config, save_config
from .types import GridSize


@dataclass
class TemplateConfig:
    """Bowtie template synthesis parameters."""

    template_dim: int = 56


@dataclass
class DetectorConfig:
    """Fiducial search parameters."""

    grid_cols: int = 2
    grid_rows: int = 4
    min_score: float = 0.6
    move_min_score: float = 0.4
    refine_min_score: float = 0.5
    nms_radius_px: int = 17

    @property
    def grid_size(self) -> GridSize:
        return GridSize(cols=self.grid_cols, rows=self.grid_rows)

    @property
    def target_count(self) -> int:
        return self.grid_cols * self.grid_rows


@dataclass
class CalibrationConfig:
    """Calibration model parameters."""

    # None -> use the bowtie template dimension
    move_search_margin_px: Optional[int] = None
    # World layout of the target, bottom-left fiducial at the origin
    grid_spacing_x: float = 1.0
    grid_spacing_y: float = 1.0
    world_origin_x: float = 0.0
    world_origin_y: float = 0.0


@dataclass
class GaugeCamConfig:
    """Aggregated configuration for the calibration core."""

    template: TemplateConfig = field(default_factory=TemplateConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)

    @property
    def move_search_margin(self) -> int:
        margin = self.calibration.move_search_margin_px
        return self.template.template_dim if margin is None else margin

    def with_defaults(self, **overrides: object) -> "GaugeCamConfig":
        """Return a copy with selected fields overridden."""
        data = {
            "template": self.template,
            "detector": self.detector,
            "calibration": self.calibration,
        }
        data.update(overrides)
        return GaugeCamConfig(**data)  # type: ignore[arg-type]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GaugeCamConfig":
        """Build a config from nested dictionaries, ignoring unknown keys."""
        sections = {
            "template": TemplateConfig,
            "detector": DetectorConfig,
            "calibration": CalibrationConfig,
        }
        kwargs = {}
        for name, section_cls in sections.items():
            values = data.get(name) or {}
            known = {f.name for f in fields(section_cls)}
            kwargs[name] = section_cls(**{k: v for k, v in values.items() if k in known})
        return cls(**kwargs)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "GaugeCamConfig":
        """Load configuration from a YAML file."""
        return cls.from_dict(load_config(path))

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        save_config(asdict(self), path)
