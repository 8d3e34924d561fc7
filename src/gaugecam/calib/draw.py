"""Debug overlays for calibration and target search results."""

from __future__ import annotations

from typing import Iterable, Sequence, Tuple

import cv2
import numpy as np

from .errors import ValidationError
from .geometry.mapper import HomographyMapper
from .geometry.swaths import swath_polygon
from .types import GridSize, IntPoint, LineEnds, Point, Rect

RED = (0, 0, 255)
GREEN = (0, 255, 0)
BLUE = (255, 0, 0)
YELLOW = (0, 255, 255)

# cv2 drawing takes int32 coordinates
_COORD_LIMIT = 1 << 20


def to_bgr(image: np.ndarray) -> np.ndarray:
    """Return a 3-channel 8-bit copy of ``image`` suitable for drawing."""
    if image is None or image.size == 0:
        raise ValidationError("Cannot draw on an empty image")
    if image.dtype != np.uint8:
        raise ValidationError(f"Overlay image must be 8-bit, got {image.dtype}")
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 3:
        return image.copy()
    raise ValidationError(f"Invalid image format for overlay: shape {image.shape}")


def _ipt(point: Point) -> IntPoint:
    x = int(np.clip(round(point[0]), -_COORD_LIMIT, _COORD_LIMIT))
    y = int(np.clip(round(point[1]), -_COORD_LIMIT, _COORD_LIMIT))
    return x, y


def draw_crosshairs(
    image: np.ndarray,
    points: Iterable[Point],
    color: Tuple[int, int, int] = RED,
    half_size: int = 5,
) -> np.ndarray:
    """Mark each point with a small cross."""
    for point in points:
        x, y = _ipt(point)
        cv2.line(image, (x - half_size, y), (x + half_size, y), color, 1)
        cv2.line(image, (x, y - half_size), (x, y + half_size), color, 1)
    return image


def draw_move_rois(image: np.ndarray, rects: Sequence[Rect], color=RED, thickness: int = 2) -> np.ndarray:
    for rect in rects:
        cv2.rectangle(image, (rect.x, rect.y), (rect.x2, rect.y2), color, thickness)
    return image


def draw_search_swath(image: np.ndarray, search_lines: Sequence[LineEnds], color=BLUE, thickness: int = 3) -> np.ndarray:
    """Outline the quadrilateral covered by the scan lines."""
    polygon = swath_polygon(search_lines)
    cv2.polylines(image, [polygon.reshape(-1, 1, 2)], True, color, thickness)
    return image


def draw_world_grid(
    image: np.ndarray,
    mapper: HomographyMapper,
    pixel_points: Sequence[Point],
    grid_size: GridSize,
) -> np.ndarray:
    """Project a labeled world-unit grid onto the image.

    The grid spans the fiducial extent with one extra row increment above and
    below; the top-left and bottom-right fiducials fix the world bounds.
    """
    scale = max(1.0, image.shape[1] / 1600.0)
    thickness = max(1, int(round(scale)))

    top_left = mapper.to_world(pixel_points[0])
    bot_right = mapper.to_world(pixel_points[-1])
    min_x, max_x = sorted((top_left[0], bot_right[0]))
    min_y, max_y = sorted((top_left[1], bot_right[1]))

    row_inc = (max_y - min_y) / (grid_size.rows + 2)
    col_inc = (max_x - min_x) / grid_size.cols
    if row_inc <= 0.0 or col_inc <= 0.0:
        raise ValidationError("World grid has no extent")
    min_y -= row_inc
    max_y += row_inc

    n_rows = grid_size.rows + 4
    n_cols = grid_size.cols

    for r in range(n_rows):
        row = max_y - r * row_inc
        for c in range(n_cols):
            col = min_x + c * col_inc
            corner = _ipt(mapper.to_pixel((col, row)))
            cv2.line(image, corner, _ipt(mapper.to_pixel((col + col_inc, row))), YELLOW, thickness)
            cv2.line(image, corner, _ipt(mapper.to_pixel((col, row - row_inc))), YELLOW, thickness)
            if r % 2 == 1 and c % 2 == 0:
                cv2.circle(image, corner, int(round(10 * scale)), GREEN, thickness)
        label_at = _ipt(mapper.to_pixel((min_x, row)))
        cv2.putText(
            image, f"{row:.1f}", (label_at[0] - int(130 * scale), label_at[1] + int(15 * scale)),
            cv2.FONT_HERSHEY_PLAIN, 1.5 * scale, YELLOW, thickness,
        )
        cv2.line(
            image,
            _ipt(mapper.to_pixel((max_x, row))),
            _ipt(mapper.to_pixel((max_x, row - row_inc))),
            YELLOW,
            thickness,
        )

    cv2.line(
        image,
        _ipt(mapper.to_pixel((min_x, min_y))),
        _ipt(mapper.to_pixel((max_x, min_y))),
        YELLOW,
        thickness,
    )
    label_at = _ipt(mapper.to_pixel((min_x, min_y)))
    cv2.putText(
        image, f"{min_y:.1f}", (label_at[0] - int(130 * scale), label_at[1] + int(15 * scale)),
        cv2.FONT_HERSHEY_PLAIN, 1.5 * scale, YELLOW, thickness,
    )
    return image
