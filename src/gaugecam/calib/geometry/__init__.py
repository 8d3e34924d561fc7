"""Geometry utilities for pixel/world calibration."""

from .grid import FiducialGridGenerator
from .mapper import HomographyMapper
from .swaths import calc_search_swaths, grid_corners, swath_polygon

__all__ = [
    "FiducialGridGenerator",
    "HomographyMapper",
    "calc_search_swaths",
    "grid_corners",
    "swath_polygon",
]
