"""World coordinate assignment for bowtie calibration targets."""

from __future__ import annotations

from typing import List, Tuple

import numpy as np

from ..errors import ValidationError
from ..types import GridSize, Point


class FiducialGridGenerator:
    """Generate raster-order world coordinates for a fiducial grid.

    The bottom-left fiducial sits at ``origin``; world x grows to the right and
    world y grows upward, so the first (top) row carries the largest y.
    """

    def __init__(
        self,
        grid_size: GridSize,
        spacing: Tuple[float, float],
        origin: Tuple[float, float] = (0.0, 0.0),
    ):
        if grid_size.cols <= 0 or grid_size.rows <= 0:
            raise ValidationError(f"Invalid grid size {grid_size.cols}x{grid_size.rows}")
        if spacing[0] <= 0.0 or spacing[1] <= 0.0:
            raise ValidationError(f"Grid spacing must be positive, got {spacing}")
        self.grid_size = grid_size
        self.spacing = spacing
        self.origin = origin

    def generate_world_points(self) -> List[Point]:
        """Return world points in raster order (top row first)."""
        cols, rows = self.grid_size.cols, self.grid_size.rows
        points = []

        for row in range(rows):
            for col in range(cols):
                x = self.origin[0] + col * self.spacing[0]
                y = self.origin[1] + (rows - 1 - row) * self.spacing[1]
                points.append((float(x), float(y)))

        return points

    def as_array(self) -> np.ndarray:
        return np.array(self.generate_world_points(), dtype=np.float64)
