"""Scan swath geometry derived from the calibration grid."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from ..errors import ValidationError
from ..types import GridSize, ImageSize, LineEnds, Point


def grid_corners(pixel_points: Sequence[Point], grid_size: GridSize) -> tuple:
    """Return top-left, top-right, bottom-left and bottom-right raster corners."""
    cols, rows = grid_size.cols, grid_size.rows
    return (
        pixel_points[0],
        pixel_points[cols - 1],
        pixel_points[cols * (rows - 1)],
        pixel_points[cols * rows - 1],
    )


def calc_search_swaths(
    pixel_points: Sequence[Point],
    grid_size: GridSize,
    image_size: ImageSize,
) -> List[LineEnds]:
    """Build the fan of scan lines the water-edge finder walks.

    The top ends advance one pixel per line across a third of the top row
    span, the bottom ends advance proportionally across a third of the bottom
    row span so the lines follow the target's perspective. Both ends follow
    the top row's slope.
    """
    if not grid_size.meets_minimum():
        raise ValidationError(f"Grid {grid_size.cols}x{grid_size.rows} is below the 2x4 minimum")
    if len(pixel_points) != grid_size.count:
        raise ValidationError(
            f"Point count {len(pixel_points)} does not match grid {grid_size.cols}x{grid_size.rows}"
        )

    top_left, top_right, bot_left, bot_right = grid_corners(pixel_points, grid_size)

    top_span = top_right[0] - top_left[0]
    width_top = int(round(top_span / 3.0))
    width_bot = (bot_right[0] - bot_left[0]) / 3.0
    height = int(round((bot_left[1] - top_left[1]) * 1.25))
    if width_top <= 0 or width_bot <= 0.0 or height <= 0:
        raise ValidationError("Calibration grid corners are not in raster order")

    top_x = top_left[0] + width_top
    top_y = top_left[1] - height / 8.0 + (height >> 4)
    bot_x = bot_left[0] + width_bot
    bot_y = min(bot_left[1] + height / 8.0 + (height >> 4), float(image_size.height - 1))

    x_inc_bot = width_bot / float(width_top)
    y_inc = (top_right[1] - top_left[1]) / top_span

    steps = np.arange(width_top + 1, dtype=np.float64)
    tops_x = np.rint(top_x + steps).astype(int)
    tops_y = np.rint(top_y + steps * y_inc).astype(int)
    bots_x = np.rint(bot_x + steps * x_inc_bot).astype(int)
    bots_y = np.rint(bot_y + steps * y_inc).astype(int)

    return [
        LineEnds(top=(int(tx), int(ty)), bot=(int(bx), int(by)))
        for tx, ty, bx, by in zip(tops_x, tops_y, bots_x, bots_y)
    ]


def swath_polygon(search_lines: Sequence[LineEnds]) -> np.ndarray:
    """Bounding quadrilateral of a swath as an int32 polyline."""
    if not search_lines:
        raise ValidationError("No search lines available")
    first, last = search_lines[0], search_lines[-1]
    return np.array([first.top, last.top, last.bot, first.bot], dtype=np.int32)
