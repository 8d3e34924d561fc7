"""Data schemas and validation models for gaugecam files."""

from .calibration_file import (
    CalibPointSchema,
    CalibrationFileSchema,
    CalibrationModelSchema,
    MoveSearchRegionsSchema,
    PixelToWorldSchema,
    RectSchema,
    SearchLineSchema,
)

__all__ = [
    "CalibPointSchema",
    "CalibrationFileSchema",
    "CalibrationModelSchema",
    "MoveSearchRegionsSchema",
    "PixelToWorldSchema",
    "RectSchema",
    "SearchLineSchema",
]
