"""Synthetic bowtie templates at a fan of small rotations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Tuple

import cv2
import numpy as np

from ..errors import ValidationError

TEMPLATE_COUNT = 11
MIN_TEMPLATE_DIM = 20
MAX_TEMPLATE_DIM = 1000

BOWTIE_BACKGROUND = 224
BOWTIE_FOREGROUND = 32


@dataclass(frozen=True)
class TemplateBank:
    """Ordered, immutable set of ``(angle_deg, template)`` pairs.

    Slot ``center_index`` holds the unrotated template; the slots on either side
    step one degree per index.
    """

    entries: Tuple[Tuple[float, np.ndarray], ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index: int) -> np.ndarray:
        return self.entries[index][1]

    def __iter__(self) -> Iterator[Tuple[float, np.ndarray]]:
        return iter(self.entries)

    @property
    def center_index(self) -> int:
        return len(self.entries) >> 1

    @property
    def template_dim(self) -> int:
        return int(self.entries[0][1].shape[1])

    def angle(self, index: int) -> float:
        return self.entries[index][0]


def rotate_image(image: np.ndarray, angle_deg: float) -> np.ndarray:
    """Rotate about the image center, keeping the size."""
    rows, cols = image.shape[:2]
    M = cv2.getRotationMatrix2D((cols / 2.0, rows / 2.0), angle_deg, 1.0)
    return cv2.warpAffine(image, M, (cols, rows), flags=cv2.INTER_CUBIC)


def draw_bowtie(canvas_dim: int) -> np.ndarray:
    """Two dark triangles meeting at the canvas center on a light ground."""
    canvas = np.full((canvas_dim, canvas_dim), BOWTIE_BACKGROUND, dtype=np.uint8)
    rows = cols = canvas_dim
    center = (cols // 2, rows // 2)

    left = np.array([(1, 1), (1, rows - 2), center], dtype=np.int32)
    right = np.array([(cols - 2, 1), (cols - 2, rows - 2), center], dtype=np.int32)
    cv2.fillConvexPoly(canvas, left, BOWTIE_FOREGROUND)
    cv2.fillConvexPoly(canvas, right, BOWTIE_FOREGROUND)
    return canvas


def build_bowtie_bank(template_dim: int, count: int = TEMPLATE_COUNT) -> TemplateBank:
    """Render the bowtie on a double-size canvas, rotate, then crop the center.

    ``template_dim`` is rounded up to an even value so the template center
    falls on a whole pixel.
    """
    if not MIN_TEMPLATE_DIM <= template_dim <= MAX_TEMPLATE_DIM:
        raise ValidationError(
            f"Template dimension {template_dim} must be in range {MIN_TEMPLATE_DIM}-{MAX_TEMPLATE_DIM}"
        )
    dim = template_dim + (template_dim % 2)
    bowtie = draw_bowtie(2 * dim)
    half = dim // 2
    center = count >> 1

    entries = []
    for index in range(count):
        angle = float(index - center)
        rotated = bowtie if angle == 0.0 else rotate_image(bowtie, angle)
        crop = np.ascontiguousarray(rotated[half:half + dim, half:half + dim])
        entries.append((angle, crop))

    return TemplateBank(entries=tuple(entries))
