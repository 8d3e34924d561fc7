"""Homography-based pixel/world coordinate mapper."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

import cv2
import numpy as np

from ..errors import TransformError
from ..types import Point


@dataclass(frozen=True)
class HomographyMapper:
    """Pair of independently fit projective transforms.

    ``pixel_to_world`` and ``world_to_pixel`` are each a least-squares fit over
    every correspondence, so they are approximate (not exact) inverses.
    """

    pixel_to_world: np.ndarray
    world_to_pixel: np.ndarray

    @classmethod
    def fit(cls, pixel_points: Sequence[Point], world_points: Sequence[Point]) -> "HomographyMapper":
        """Fit both directions over all correspondences."""
        pixels = np.asarray(pixel_points, dtype=np.float64).reshape(-1, 2)
        world = np.asarray(world_points, dtype=np.float64).reshape(-1, 2)
        if pixels.shape != world.shape:
            raise TransformError("Pixel and world arrays must have matching shapes")
        if pixels.shape[0] < 4:
            raise TransformError(f"Need at least 4 correspondences, got {pixels.shape[0]}")

        H_pix_to_world = cls._find_homography(pixels, world)
        H_world_to_pix = cls._find_homography(world, pixels)
        return cls(pixel_to_world=H_pix_to_world, world_to_pixel=H_world_to_pix)

    @staticmethod
    def _find_homography(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
        H, _ = cv2.findHomography(src, dst, 0)
        if H is None or not np.all(np.isfinite(H)):
            raise TransformError("Failed to compute homography")
        if abs(H[2, 2]) > 1e-12:
            H = H / H[2, 2]
        return H

    def to_world(self, point: Point) -> Point:
        return self._apply(self.pixel_to_world, point)

    def to_pixel(self, point: Point) -> Point:
        return self._apply(self.world_to_pixel, point)

    def batch_to_world(self, points: Sequence[Point]) -> List[Point]:
        return self._apply_many(self.pixel_to_world, points)

    def batch_to_pixel(self, points: Sequence[Point]) -> List[Point]:
        return self._apply_many(self.world_to_pixel, points)

    @staticmethod
    def _apply(H: np.ndarray, point: Point) -> Point:
        vec = np.array([point[0], point[1], 1.0], dtype=np.float64)
        mapped = H @ vec
        if abs(mapped[2]) < 1e-12:
            raise TransformError(f"Point {point} maps to infinity")
        mapped /= mapped[2]
        return (float(mapped[0]), float(mapped[1]))

    @staticmethod
    def _apply_many(H: np.ndarray, points: Sequence[Point]) -> List[Point]:
        if len(points) == 0:
            return []
        src = np.asarray(points, dtype=np.float64).reshape(-1, 1, 2)
        mapped = cv2.perspectiveTransform(src, H).reshape(-1, 2)
        if not np.all(np.isfinite(mapped)):
            raise TransformError("Perspective transform produced non-finite points")
        return [(float(x), float(y)) for x, y in mapped]
