"""Shared dataclasses and type definitions for calibration and target search."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

Point = Tuple[float, float]
IntPoint = Tuple[int, int]


class Side(Enum):
    """Which of the two outer top-row fiducials a query refers to."""

    LEFT = "Left"
    RIGHT = "Right"


@dataclass(frozen=True)
class GridSize:
    """Fiducial grid dimensions."""

    cols: int
    rows: int

    @property
    def count(self) -> int:
        return self.cols * self.rows

    def meets_minimum(self) -> bool:
        return self.cols >= 2 and self.rows >= 4


@dataclass(frozen=True)
class ImageSize:
    """Image dimensions in pixels."""

    width: int
    height: int

    @classmethod
    def of(cls, image: np.ndarray) -> "ImageSize":
        return cls(width=int(image.shape[1]), height=int(image.shape[0]))


@dataclass(frozen=True)
class Rect:
    """Axis-aligned pixel rectangle."""

    x: int
    y: int
    width: int
    height: int

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    @classmethod
    def around(cls, center: Point, margin: int, image_size: ImageSize) -> "Rect":
        """Square of half-size ``margin`` around ``center``, clipped to the image."""
        cx, cy = int(round(center[0])), int(round(center[1]))
        x1 = max(0, cx - margin)
        y1 = max(0, cy - margin)
        x2 = min(image_size.width, cx + margin)
        y2 = min(image_size.height, cy + margin)
        return cls(x=x1, y=y1, width=max(0, x2 - x1), height=max(0, y2 - y1))

    def is_inside(self, image_size: ImageSize) -> bool:
        return (
            self.x >= 0
            and self.y >= 0
            and self.width > 0
            and self.height > 0
            and self.x2 <= image_size.width
            and self.y2 <= image_size.height
        )

    def contains(self, point: Point) -> bool:
        return self.x <= point[0] < self.x2 and self.y <= point[1] < self.y2

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class LineEnds:
    """Scan line segment from a top point to a bottom point."""

    top: IntPoint
    bot: IntPoint


@dataclass
class MatchCandidate:
    """Template match score and subpixel location."""

    score: float
    point: Point


DetectionGrid = List[List[MatchCandidate]]


@dataclass
class MoveTargets:
    """Positions of the two outer top-row fiducials found in a later image."""

    left: Point
    right: Point


@dataclass
class MoveResult:
    """Displacement of the move targets relative to calibration time."""

    found: MoveTargets
    reference: MoveTargets
    offset_pixels: Dict[Side, Point]
    offset_world: Dict[Side, Point]

    def max_pixel_offset(self) -> float:
        return max(float(np.hypot(*offset)) for offset in self.offset_pixels.values())


@dataclass
class FindPointSet:
    """Left, center and right points of a found line (or move targets)."""

    anchor: Point = (-1.0, -1.0)
    left: Point = (-1.0, -1.0)
    center: Point = (-1.0, -1.0)
    right: Point = (-1.0, -1.0)


@dataclass
class FindLineResult:
    """Water-edge result produced by an external line finder."""

    found_points: List[Point] = field(default_factory=list)
    calc_line_pts: FindPointSet = field(default_factory=FindPointSet)
    fit_quality: float = 0.0
    messages: List[str] = field(default_factory=list)


@dataclass
class FindData:
    """Measurement record handed to the metadata store."""

    calib_filepath: str = ""
    find_line_result: FindLineResult = field(default_factory=FindLineResult)
    world_line: Optional[FindPointSet] = None
    move_result: Optional[MoveResult] = None


class LineFinder(Protocol):
    """Water-edge line finder operating over calibration scan lines."""

    def find(self, image: np.ndarray, search_lines: Sequence[LineEnds]) -> FindLineResult:
        ...
