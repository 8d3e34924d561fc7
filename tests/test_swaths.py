import numpy as np
import pytest

from gaugecam.calib import GridSize, ImageSize, ValidationError
from gaugecam.calib.geometry.swaths import calc_search_swaths, grid_corners, swath_polygon


def _grid(top_right_y=100.0, bottom_y=420.0):
    # 2x4 grid, top row y=100, bottom row y=bottom_y
    ys = np.linspace(100.0, bottom_y, 4)
    points = []
    for i, y in enumerate(ys):
        right_y = top_right_y if i == 0 else y
        points.extend([(100.0, float(y)), (400.0, float(right_y))])
    return points


def test_grid_corners_uses_raster_order():
    points = _grid()
    tl, tr, bl, br = grid_corners(points, GridSize(2, 4))
    assert tl == (100.0, 100.0)
    assert tr == (400.0, 100.0)
    assert bl == (100.0, 420.0)
    assert br == (400.0, 420.0)


def test_swaths_level_target():
    lines = calc_search_swaths(_grid(), GridSize(2, 4), ImageSize(800, 600))

    # width_top = 100, so 101 lines; height = 400 -> offsets 50 and 25
    assert len(lines) == 101
    assert lines[0].top == (200, 75)
    assert lines[0].bot == (200, 495)
    assert lines[-1].top == (300, 75)
    assert lines[-1].bot == (300, 495)
    assert all(isinstance(v, int) for line in lines for v in line.top + line.bot)


def test_swaths_follow_top_row_slope():
    lines = calc_search_swaths(_grid(top_right_y=130.0), GridSize(2, 4), ImageSize(800, 600))

    # slope 30 / 300 = 0.1 px per px, 100 steps
    assert lines[0].top == (200, 75)
    assert lines[-1].top == (300, 85)
    assert lines[-1].bot == (300, 505)


def test_swath_bottom_clamped_to_image():
    lines = calc_search_swaths(_grid(), GridSize(2, 4), ImageSize(800, 480))
    assert lines[0].bot[1] == 479


def test_swaths_reject_small_grid():
    points = [(100.0, 100.0 + 50.0 * i) for i in range(4)]
    with pytest.raises(ValidationError):
        calc_search_swaths(points, GridSize(1, 4), ImageSize(800, 600))


def test_swaths_reject_count_mismatch():
    with pytest.raises(ValidationError):
        calc_search_swaths(_grid()[:-1], GridSize(2, 4), ImageSize(800, 600))


def test_swaths_reject_unordered_corners():
    points = list(reversed(_grid()))
    with pytest.raises(ValidationError):
        calc_search_swaths(points, GridSize(2, 4), ImageSize(800, 600))


def test_swath_polygon():
    lines = calc_search_swaths(_grid(), GridSize(2, 4), ImageSize(800, 600))
    poly = swath_polygon(lines)
    assert poly.dtype == np.int32
    assert poly.tolist() == [[200, 75], [300, 75], [300, 495], [200, 495]]

    with pytest.raises(ValidationError):
        swath_polygon([])
