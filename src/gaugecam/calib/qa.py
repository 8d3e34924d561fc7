"""Quality checks for calibration fits and detected grids."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence

import numpy as np
from scipy.spatial.distance import cdist

from .errors import ValidationError
from .geometry.mapper import HomographyMapper
from .types import Point


@dataclass
class ReprojectionResiduals:
    """Per-point residuals of both homography directions."""

    world: np.ndarray  # N residuals in world units
    pixel: np.ndarray  # N residuals in pixels

    def summary(self) -> Dict[str, float]:
        return {
            "world_rms": float(np.sqrt(np.mean(self.world**2))) if self.world.size else 0.0,
            "world_max": float(self.world.max()) if self.world.size else 0.0,
            "pixel_rms": float(np.sqrt(np.mean(self.pixel**2))) if self.pixel.size else 0.0,
            "pixel_max": float(self.pixel.max()) if self.pixel.size else 0.0,
        }


def reprojection_residuals(
    mapper: HomographyMapper,
    pixel_points: Sequence[Point],
    world_points: Sequence[Point],
) -> ReprojectionResiduals:
    """Distance between each correspondence and its mapped counterpart."""
    pixels = np.asarray(pixel_points, dtype=np.float64).reshape(-1, 2)
    world = np.asarray(world_points, dtype=np.float64).reshape(-1, 2)
    if pixels.shape != world.shape:
        raise ValidationError("Pixel and world point counts differ")

    mapped_world = np.asarray(mapper.batch_to_world(pixels), dtype=np.float64).reshape(-1, 2)
    mapped_pixels = np.asarray(mapper.batch_to_pixel(world), dtype=np.float64).reshape(-1, 2)
    return ReprojectionResiduals(
        world=np.linalg.norm(mapped_world - world, axis=1),
        pixel=np.linalg.norm(mapped_pixels - pixels, axis=1),
    )


def grid_position_error(found: Sequence[Point], expected: Sequence[Point]) -> Dict[str, float]:
    """Nearest-neighbour distance from every expected fiducial to a found one.

    Independent of point ordering; ``matched`` counts expected fiducials with a
    detection closer than one pixel.
    """
    found_arr = np.asarray(found, dtype=np.float64).reshape(-1, 2)
    expected_arr = np.asarray(expected, dtype=np.float64).reshape(-1, 2)
    if found_arr.shape[0] == 0 or expected_arr.shape[0] == 0:
        raise ValidationError("Grid position error needs at least one found and one expected point")

    distances = cdist(expected_arr, found_arr).min(axis=1)
    return {
        "mean_px": float(distances.mean()),
        "max_px": float(distances.max()),
        "matched": int(np.sum(distances < 1.0)),
    }
