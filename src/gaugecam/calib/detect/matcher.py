"""Bowtie fiducial search by normalized template correlation."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Union

import cv2
import numpy as np

from ...utils.log import get_logger
from .. import draw
from ..config import DetectorConfig
from ..errors import (
    CalibrationIOError,
    InsufficientMatchesError,
    ValidationError,
    error_boundary,
)
from ..types import DetectionGrid, ImageSize, MatchCandidate, MoveTargets, Point, Rect, Side
from .templates import TEMPLATE_COUNT, TemplateBank, build_bowtie_bank

MIN_MATCH_SCORE = 0.05
MIN_FIND_SCORE = 0.01
MAX_NUM_TO_FIND = 1000


def _to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert image to 8-bit grayscale for template matching."""
    if image is None or image.size == 0:
        raise ValidationError("Cannot search an empty image")
    if image.dtype != np.uint8:
        raise ValidationError(f"Search image must be 8-bit, got {image.dtype}")
    if image.ndim == 2:
        return image
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    raise ValidationError("Unsupported image shape for grayscale conversion: " + str(image.shape))


class TargetDetector:
    """Locate bowtie fiducials with a coarse-to-fine rotation search.

    The detector owns two ``float32`` score buffers that every match call
    reuses, so an instance must not be shared between threads. Use
    :meth:`clone` to get an independent detector over the same templates.
    """

    def __init__(self, config: Optional[DetectorConfig] = None):
        self.config = config or DetectorConfig()
        self.logger = get_logger(__name__)

        self._bank: Optional[TemplateBank] = None
        self._match_space: Optional[np.ndarray] = None
        self._match_space_small: Optional[np.ndarray] = None

        self._candidates: List[MatchCandidate] = []
        self._grid: DetectionGrid = []
        self._move_rois: Dict[Side, Rect] = {
            Side.LEFT: Rect(0, 0, 0, 0),
            Side.RIGHT: Rect(0, 0, 0, 0),
        }

    @property
    def is_ready(self) -> bool:
        return self._bank is not None

    @property
    def bank(self) -> TemplateBank:
        self._require_ready("bank")
        return self._bank

    @property
    def template_dim(self) -> int:
        return self.bank.template_dim

    @property
    def candidates(self) -> List[MatchCandidate]:
        """Candidates from the most recent search, in the order they were kept."""
        return list(self._candidates)

    def _require_ready(self, operation: str) -> None:
        if self._bank is None:
            self.logger.error(f"[{operation}] templates not defined")
            raise ValidationError(f"{operation}: detector has no templates, call init_bowtie_template first")

    def clone(self) -> "TargetDetector":
        """Independent detector sharing the immutable template bank."""
        other = TargetDetector(self.config)
        other._bank = self._bank
        if self._match_space is not None:
            other._match_space = np.zeros_like(self._match_space)
        if self._match_space_small is not None:
            other._match_space_small = np.zeros_like(self._match_space_small)
        other._move_rois = dict(self._move_rois)
        return other

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------
    def init_bowtie_template(self, template_dim: int, search_image_size: ImageSize) -> TemplateBank:
        """Build the rotation bank and size the score buffers for an image size."""
        bank = build_bowtie_bank(template_dim, TEMPLATE_COUNT)
        dim = bank.template_dim
        if search_image_size.width < dim or search_image_size.height < dim:
            self.logger.error(
                f"[init_bowtie_template] image {search_image_size.width}x{search_image_size.height} "
                f"is smaller than template {dim}"
            )
            raise ValidationError(
                f"Search image {search_image_size.width}x{search_image_size.height} is smaller than template {dim}"
            )

        self._bank = bank
        self._match_space = np.zeros(
            (search_image_size.height - dim + 1, search_image_size.width - dim + 1), dtype=np.float32
        )
        self._match_space_small = np.zeros(((dim >> 1) + 1, (dim >> 1) + 1), dtype=np.float32)
        self._candidates = []
        self._grid = []
        self.logger.info(f"Initialized {len(bank)} bowtie templates of size {dim}")
        return bank

    def _match(self, image: np.ndarray, template: np.ndarray, buffer: Optional[np.ndarray]) -> np.ndarray:
        shape = (image.shape[0] - template.shape[0] + 1, image.shape[1] - template.shape[1] + 1)
        if buffer is not None and buffer.shape == shape:
            return cv2.matchTemplate(image, template, cv2.TM_CCOEFF_NORMED, result=buffer)
        return cv2.matchTemplate(image, template, cv2.TM_CCOEFF_NORMED)

    def _validate_index(self, operation: str, index: int) -> None:
        if not 0 <= index < TEMPLATE_COUNT:
            self.logger.error(f"[{operation}] template index {index} outside 0-{TEMPLATE_COUNT - 1}")
            raise ValidationError(f"Template index {index} must be in range 0-{TEMPLATE_COUNT - 1}")

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------
    def match_template(
        self,
        index: int,
        image: np.ndarray,
        min_score: float,
        num_to_find: int,
    ) -> List[MatchCandidate]:
        """Collect up to ``num_to_find`` correlation peaks above ``min_score``.

        Each accepted peak is reported at the template center. After every
        peak a disk around it is zeroed in the score map. Peaks on the image
        border are suppressed without being reported; the first interior peak
        below ``min_score`` ends the search.
        """
        self._require_ready("match_template")
        self._validate_index("match_template", index)
        if not MIN_MATCH_SCORE <= min_score <= 1.0:
            raise ValidationError(f"Min score {min_score:.3f} must be in range {MIN_MATCH_SCORE}-1.0")
        if not 1 <= num_to_find <= MAX_NUM_TO_FIND:
            raise ValidationError(f"Attempted to find {num_to_find} matches, must be in range 1-{MAX_NUM_TO_FIND}")

        gray = _to_grayscale(image)
        template = self._bank[index]
        if gray.shape[0] < template.shape[0] or gray.shape[1] < template.shape[1]:
            raise ValidationError(f"Image {gray.shape[1]}x{gray.shape[0]} is smaller than the template")

        half = template.shape[1] / 2.0
        height, width = gray.shape[:2]
        radius = self.config.nms_radius_px
        found: List[MatchCandidate] = []

        with error_boundary("match_template", self.logger):
            space = self._match(gray, template, self._match_space)
            for _ in range(num_to_find):
                _, max_score, _, pt_max = cv2.minMaxLoc(space)
                if 0 < pt_max[0] < width - 1 and 0 < pt_max[1] < height - 1:
                    if max_score < min_score:
                        break
                    found.append(MatchCandidate(score=float(max_score), point=(pt_max[0] + half, pt_max[1] + half)))
                cv2.circle(space, pt_max, radius, 0.0, cv2.FILLED)

        if not found:
            self.logger.error("[match_template] no template matches found")
            raise InsufficientMatchesError("No template matches found")

        self._candidates = found
        self.logger.debug(f"match_template index={index} found {len(found)} candidates")
        return list(found)

    def match_refine(
        self,
        index: int,
        image: np.ndarray,
        min_score: float,
        candidate: MatchCandidate,
    ) -> MatchCandidate:
        """Re-match one template in a window around ``candidate``.

        Returns a new candidate with the higher score and subpixel location
        when this template beats the current score, otherwise ``candidate``.
        """
        self._require_ready("match_refine")
        self._validate_index("match_refine", index)
        if not MIN_MATCH_SCORE <= min_score <= 1.0:
            raise ValidationError(f"Min score {min_score:.3f} must be in range {MIN_MATCH_SCORE}-1.0")

        gray = _to_grayscale(image)
        template = self._bank[index]
        dim = template.shape[1]
        size = dim + (dim >> 1)
        height, width = gray.shape[:2]
        if width < size or height < size:
            raise ValidationError(f"Image {width}x{height} is smaller than the refine window {size}")

        x = max(0, int(round(candidate.point[0])) - (dim >> 1) - (dim >> 2))
        y = max(0, int(round(candidate.point[1])) - (dim >> 1) - (dim >> 2))
        if x + size >= width:
            x = width - size
        if y + size >= height:
            y = height - size

        with error_boundary("match_refine", self.logger):
            roi = gray[y:y + size, x:x + size]
            space = self._match(roi, template, self._match_space_small)
            _, max_score, _, pt_max = cv2.minMaxLoc(space)

            if max_score <= candidate.score:
                return candidate

            try:
                sub_x, sub_y = self.subpixel_point_refine(space, pt_max)
            except ValidationError as exc:
                self.logger.debug(f"[match_refine] keeping previous point: {exc}")
                return candidate

        return MatchCandidate(score=float(max_score), point=(x + sub_x + dim / 2.0, y + sub_y + dim / 2.0))

    def subpixel_point_refine(self, score_map: np.ndarray, peak) -> Point:
        """First-moment centroid of the 3x3 neighbourhood around ``peak``.

        The neighbourhood minimum is subtracted first. Correlation peaks sit
        close to 1.0 with a shallow fall-off, and the raw centroid would stay
        pinned to the integer peak.
        """
        if score_map.ndim != 2 or score_map.dtype != np.float32:
            raise ValidationError("Invalid score map format for subpixel refinement")
        px, py = int(peak[0]), int(peak[1])
        rows, cols = score_map.shape
        if px < 1 or py < 1 or px > cols - 2 or py > rows - 2:
            raise ValidationError(f"Peak ({px}, {py}) is on the score map border")

        window = score_map[py - 1:py + 2, px - 1:px + 2].astype(np.float64)
        window = window - window.min()
        total = window.sum()
        if total < 1e-9:
            # flat neighbourhood
            return (float(px), float(py))
        offsets = np.arange(-1, 2, dtype=np.float64)
        sub_x = px + float((window.sum(axis=0) * offsets).sum() / total)
        sub_y = py + float((window.sum(axis=1) * offsets).sum() / total)
        return (sub_x, sub_y)

    # ------------------------------------------------------------------
    # Grid search
    # ------------------------------------------------------------------
    def find_targets(
        self,
        image: np.ndarray,
        min_score: Optional[float] = None,
        debug_output_path: Optional[Union[str, Path]] = None,
    ) -> DetectionGrid:
        """Find the calibration grid and return it in raster order.

        Args:
            image: Search image (grayscale or BGR, 8-bit)
            min_score: Minimum coarse correlation score, defaults to the config
            debug_output_path: Optional path for a cross-hair overlay of the result

        Returns:
            ``rows`` lists of ``cols`` candidates, top row first, left to right
        """
        self._require_ready("find_targets")
        min_score = self.config.min_score if min_score is None else min_score
        if not MIN_FIND_SCORE <= min_score <= 1.0:
            self.logger.error(f"[find_targets] invalid minimum target score {min_score}")
            raise ValidationError(f"Minimum target score {min_score} must be in range {MIN_FIND_SCORE}-1.0")

        gray = _to_grayscale(image)
        center = self._bank.center_index
        coarse = self.match_template(center, gray, max(min_score, MIN_MATCH_SCORE), 2 * self.config.target_count)

        refined = [self._refine_all(gray, min_score, candidate) for candidate in coarse]
        self._candidates = refined
        grid = self.sort_points(ImageSize.of(gray))

        if debug_output_path is not None:
            self._write_debug_image(gray, refined, debug_output_path)

        self.logger.info(
            f"Found {len(refined)} candidates, sorted {self.config.grid_rows}x{self.config.grid_cols} grid"
        )
        return grid

    def _refine_all(self, gray: np.ndarray, min_score: float, candidate: MatchCandidate) -> MatchCandidate:
        refine_score = max(min_score, MIN_MATCH_SCORE)
        for index in range(len(self._bank)):
            candidate = self.match_refine(index, gray, refine_score, candidate)
        return candidate

    def _write_debug_image(self, gray: np.ndarray, candidates: List[MatchCandidate], path: Union[str, Path]) -> None:
        overlay = draw.to_bgr(gray)
        draw.draw_crosshairs(overlay, [c.point for c in candidates])
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(path), overlay):
            self.logger.error(f"[find_targets] could not save calib grid overlay to {path}")
            raise CalibrationIOError(f"Could not save calib grid overlay to {path}")

    def sort_points(self, search_image_size: ImageSize) -> DetectionGrid:
        """Arrange the best candidates into a raster-ordered grid.

        The highest-scoring ``rows * cols`` candidates are split into row bands
        by y and each band is ordered by x. The move search windows are placed
        over the outer top-row fiducials. Their size is the top row's
        horizontal span, capped at the row pitch so that a window never reaches
        the second row.
        """
        rows, cols = self.config.grid_rows, self.config.grid_cols
        count = rows * cols
        if len(self._candidates) < count:
            self.logger.error(
                f"[sort_points] invalid found point count={len(self._candidates)}, should be at least {count}"
            )
            raise InsufficientMatchesError(f"Found {len(self._candidates)} targets, need {count}")

        best = sorted(self._candidates, key=lambda c: c.score, reverse=True)[:count]
        best.sort(key=lambda c: c.point[1])
        grid = [sorted(best[r * cols:(r + 1) * cols], key=lambda c: c.point[0]) for r in range(rows)]

        top_left, top_right = grid[0][0].point, grid[0][-1].point
        search_dim = int(round(top_right[0] - top_left[0]))
        if rows > 1:
            pitch = min(below.point[1] - above.point[1] for above, below in zip(grid[0], grid[1]))
            search_dim = min(search_dim, int(round(pitch)))
        half = search_dim >> 1
        self._move_rois[Side.LEFT] = self._move_rect(top_left, half, search_dim, search_image_size)
        self._move_rois[Side.RIGHT] = self._move_rect(top_right, half, search_dim, search_image_size)

        self._grid = grid
        return [list(row) for row in grid]

    @staticmethod
    def _move_rect(point: Point, half: int, search_dim: int, image_size: ImageSize) -> Rect:
        x = max(0, int(round(point[0])) - half)
        y = max(0, int(round(point[1])) - half)
        width = min(search_dim, image_size.width - x)
        height = min(search_dim, image_size.height - y)
        return Rect(x=x, y=y, width=max(0, width), height=max(0, height))

    def get_found_points(self) -> List[List[Point]]:
        """Points of the last sorted grid, one list per row."""
        if not self._grid:
            self.logger.error("[get_found_points] no points available in found points array")
            raise InsufficientMatchesError("No found points available, run find_targets first")
        rows, cols = len(self._grid), len(self._grid[0])
        if rows * cols != self.config.target_count:
            raise ValidationError(
                f"Invalid found points array {cols}x{rows}, should be {self.config.grid_cols}x{self.config.grid_rows}"
            )
        return [[c.point for c in row] for row in self._grid]

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------
    def set_move_target_roi(self, image: np.ndarray, rect: Rect, side: Side) -> None:
        if not rect.is_inside(ImageSize.of(image)):
            self.logger.error(f"[set_move_target_roi] invalid {side.value.lower()} search ROI {rect}")
            raise ValidationError(f"Invalid {side.value.lower()} search ROI {rect}")
        self._move_rois[side] = rect

    def get_move_target_rois(self) -> Dict[Side, Rect]:
        return dict(self._move_rois)

    def find_move_targets(self, image: np.ndarray) -> MoveTargets:
        """Re-find the two outer top-row fiducials inside the move windows.

        Each window is searched on its own and yields its single best match,
        so the left target always comes from the left window.
        """
        self._require_ready("find_move_targets")
        gray = _to_grayscale(image)
        image_size = ImageSize.of(gray)
        for side, rect in self._move_rois.items():
            if not rect.is_inside(image_size):
                raise ValidationError(f"{side.value} move search ROI {rect} is outside the image")

        found = {}
        for side, rect in self._move_rois.items():
            candidate = self._find_in_window(gray, rect)
            if candidate is not None:
                found[side] = candidate

        if len(found) != 2:
            self.logger.error(f"[find_move_targets] invalid move point count={len(found)}, should be 2")
            raise InsufficientMatchesError(f"Found {len(found)} move targets, need 2")
        return MoveTargets(left=found[Side.LEFT].point, right=found[Side.RIGHT].point)

    def _find_in_window(self, gray: np.ndarray, rect: Rect) -> Optional[MatchCandidate]:
        scratch = np.zeros_like(gray)
        scratch[rect.y:rect.y2, rect.x:rect.x2] = gray[rect.y:rect.y2, rect.x:rect.x2]
        try:
            coarse = self.match_template(self._bank.center_index, scratch, self.config.move_min_score, 2)
        except InsufficientMatchesError:
            self.logger.debug(f"[find_move_targets] no target in search ROI {rect}")
            return None
        return self._refine_all(scratch, self.config.refine_min_score, coarse[0])

    def draw_move_rois(self, image: np.ndarray) -> np.ndarray:
        """Outline both move windows on ``image`` in place."""
        if image.dtype != np.uint8:
            self.logger.error("[draw_move_rois] invalid image format for drawing move search ROIs")
            raise ValidationError("Move ROIs can only be drawn on 8-bit images")
        image_size = ImageSize.of(image)
        rects = (self._move_rois[Side.LEFT], self._move_rois[Side.RIGHT])
        if not all(rect.is_inside(image_size) for rect in rects):
            raise ValidationError("Invalid search ROI dimension for move ROI drawing")
        with error_boundary("draw_move_rois", self.logger):
            return draw.draw_move_rois(image, rects)
