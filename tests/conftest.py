"""Shared fixtures: synthetic bowtie images and an exact 2x4 calibration set."""

import numpy as np
import pytest

from gaugecam.calib import GaugeCamConfig, GridSize, ImageSize, build_bowtie_bank

IMAGE_SIZE = ImageSize(width=1000, height=800)
TEMPLATE_DIM = 56
TARGET_COLS_X = (300, 700)
TARGET_ROWS_Y = (150, 300, 450, 600)

# world (cm) -> pixel, a mild perspective view of the target
WORLD_TO_PIXEL = np.array(
    [
        [8.0, 0.4, 300.0],
        [0.2, -5.5, 800.0],
        [0.0, 0.0005, 1.0],
    ]
)
WORLD_POINTS = [(x, y) for y in (120.0, 90.0, 60.0, 30.0) for x in (0.0, 50.0)]


def _project(H, point):
    vec = H @ np.array([point[0], point[1], 1.0])
    return (float(vec[0] / vec[2]), float(vec[1] / vec[2]))


@pytest.fixture
def image_size():
    return IMAGE_SIZE


@pytest.fixture
def grid_size():
    return GridSize(cols=2, rows=4)


@pytest.fixture
def calibration_points():
    """Pixel and world points related by an exact homography, raster order."""
    pixel_points = [_project(WORLD_TO_PIXEL, p) for p in WORLD_POINTS]
    return pixel_points, list(WORLD_POINTS)


@pytest.fixture
def target_centers():
    return [(float(x), float(y)) for y in TARGET_ROWS_Y for x in TARGET_COLS_X]


@pytest.fixture
def make_target_image():
    """Factory pasting bowties at integer centers on seeded noise.

    ``bank_index`` picks the template orientation, either one index for every
    target or one per center.
    """
    bank = build_bowtie_bank(TEMPLATE_DIM)
    half = TEMPLATE_DIM // 2

    def _make(offset=(0, 0), seed=7, centers=None, bank_index=5):
        rng = np.random.default_rng(seed)
        image = rng.integers(100, 141, size=(IMAGE_SIZE.height, IMAGE_SIZE.width), dtype=np.uint8)
        if centers is None:
            centers = [(x + offset[0], y + offset[1]) for y in TARGET_ROWS_Y for x in TARGET_COLS_X]
        indices = [bank_index] * len(centers) if isinstance(bank_index, int) else list(bank_index)
        for (cx, cy), index in zip(centers, indices):
            x0, y0 = int(cx) - half, int(cy) - half
            image[y0:y0 + TEMPLATE_DIM, x0:x0 + TEMPLATE_DIM] = bank[index]
        return image

    return _make


@pytest.fixture
def target_image(make_target_image):
    return make_target_image()


@pytest.fixture
def config():
    cfg = GaugeCamConfig()
    cfg.template.template_dim = TEMPLATE_DIM
    cfg.calibration.grid_spacing_x = 50.0
    cfg.calibration.grid_spacing_y = 30.0
    cfg.calibration.world_origin_y = 30.0
    return cfg
