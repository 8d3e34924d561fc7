"""Pixel/world calibration model for a bowtie fiducial target."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ...utils.log import get_logger
from .. import draw
from .. import io as calib_io
from .. import qa
from ..errors import (
    GaugeCamError,
    Status,
    TransformError,
    UncalibratedError,
    ValidationError,
    error_boundary,
)
from ..types import GridSize, ImageSize, LineEnds, Point, Rect, Side
from .mapper import HomographyMapper
from .swaths import calc_search_swaths


@dataclass(frozen=True)
class CalibrationState:
    """Everything a successful calibration produces, replaced as a unit."""

    grid_size: GridSize
    image_size: ImageSize
    pixel_points: Tuple[Point, ...]
    world_points: Tuple[Point, ...]
    mapper: HomographyMapper
    move_search_region_left: Rect
    move_search_region_right: Rect
    search_lines: Tuple[LineEnds, ...]


@dataclass
class DrawOptions:
    """Which debug overlays ``calibrate`` renders."""

    move_rois: bool = False
    search_swath: bool = False
    world_grid: bool = False

    def any(self) -> bool:
        return self.move_rois or self.search_swath or self.world_grid


@dataclass
class CalibrationMetrics:
    """Fit quality of the committed homographies."""

    reprojection_error_world: float
    reprojection_error_pixel: float
    max_reprojection_error_pixel: float


@dataclass
class CalibrationReport:
    status: Status
    metrics: CalibrationMetrics
    overlay: Optional[np.ndarray] = None
    messages: List[str] = field(default_factory=list)


class CalibrationModel:
    """Projective pixel<->world mapping built from a fiducial grid.

    The model is either uncalibrated or holds one complete
    :class:`CalibrationState`. ``calibrate`` and ``load`` build a new state
    off to the side and swap it in only when every step succeeded, so a
    failure leaves the previous calibration usable.
    """

    def __init__(self, move_search_margin: int = 56):
        if move_search_margin <= 0:
            raise ValidationError(f"Move search margin must be positive, got {move_search_margin}")
        self.logger = get_logger(__name__)
        self.move_search_margin = move_search_margin
        self._state: Optional[CalibrationState] = None

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def is_calibrated(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> CalibrationState:
        return self._require_state("state")

    @property
    def grid_size(self) -> GridSize:
        return self._require_state("grid_size").grid_size

    @property
    def image_size(self) -> ImageSize:
        return self._require_state("image_size").image_size

    @property
    def pixel_points(self) -> List[Point]:
        return list(self._require_state("pixel_points").pixel_points)

    @property
    def world_points(self) -> List[Point]:
        return list(self._require_state("world_points").world_points)

    @property
    def search_lines(self) -> List[LineEnds]:
        return list(self._require_state("search_lines").search_lines)

    @property
    def homography_pixel_to_world(self) -> np.ndarray:
        return self._require_state("homography_pixel_to_world").mapper.pixel_to_world.copy()

    @property
    def homography_world_to_pixel(self) -> np.ndarray:
        return self._require_state("homography_world_to_pixel").mapper.world_to_pixel.copy()

    def _require_state(self, operation: str) -> CalibrationState:
        if self._state is None:
            self.logger.error(f"[{operation}] model is not calibrated")
            raise UncalibratedError(f"{operation}: model is not calibrated")
        return self._state

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------
    def calibrate(
        self,
        pixel_points: Sequence[Point],
        world_points: Sequence[Point],
        grid_size: GridSize,
        image_size: ImageSize,
        image: Optional[np.ndarray] = None,
        draw_options: Optional[DrawOptions] = None,
    ) -> CalibrationReport:
        """Fit both homographies and derive move regions and scan swaths.

        Args:
            pixel_points: Fiducial centers in raster order (top row first)
            world_points: Matching world coordinates in the same order
            grid_size: Fiducial grid columns and rows
            image_size: Size of the image the fiducials were found in
            image: Optional image to render debug overlays on (not modified)
            draw_options: Overlays to render when ``image`` is given

        Returns:
            Report with status, fit metrics and the optional overlay image
        """
        overlay = None
        if draw_options is not None and draw_options.any():
            if image is None:
                raise ValidationError("Debug drawing requested without an image")
            overlay = draw.to_bgr(image)

        state = self._build_state(pixel_points, world_points, grid_size, image_size)
        metrics = self._compute_metrics(state)
        self._state = state

        self.logger.info(
            f"Calibrated {grid_size.cols}x{grid_size.rows} grid on "
            f"{image_size.width}x{image_size.height} image, "
            f"pixel reprojection rms {metrics.reprojection_error_pixel:.3f}"
        )

        report = CalibrationReport(status=Status.OK, metrics=metrics)
        if overlay is not None:
            report.overlay = overlay
            self._render(state, overlay, draw_options, report)
        return report

    def _build_state(
        self,
        pixel_points: Sequence[Point],
        world_points: Sequence[Point],
        grid_size: GridSize,
        image_size: ImageSize,
    ) -> CalibrationState:
        if len(pixel_points) == 0 or len(pixel_points) != len(world_points):
            self.logger.error(
                f"[calibrate] invalid point counts: {len(pixel_points)} pixel, {len(world_points)} world"
            )
            raise ValidationError(
                f"Pixel and world point lists must be non-empty and equal length "
                f"({len(pixel_points)} vs {len(world_points)})"
            )
        if grid_size.cols <= 0 or grid_size.rows <= 0 or grid_size.count != len(pixel_points):
            self.logger.error(
                f"[calibrate] grid {grid_size.cols}x{grid_size.rows} does not match {len(pixel_points)} points"
            )
            raise ValidationError(
                f"Grid {grid_size.cols}x{grid_size.rows} does not match {len(pixel_points)} points"
            )
        if image_size.width <= 0 or image_size.height <= 0:
            raise ValidationError(f"Invalid image size {image_size.width}x{image_size.height}")

        pixels = tuple((float(x), float(y)) for x, y in pixel_points)
        world = tuple((float(x), float(y)) for x, y in world_points)

        with error_boundary("calibrate", self.logger, TransformError):
            mapper = HomographyMapper.fit(pixels, world)

        move_left = Rect.around(pixels[0], self.move_search_margin, image_size)
        move_right = Rect.around(pixels[grid_size.cols - 1], self.move_search_margin, image_size)

        with error_boundary("calc_search_swaths", self.logger, ValidationError):
            search_lines = calc_search_swaths(pixels, grid_size, image_size)

        return CalibrationState(
            grid_size=grid_size,
            image_size=image_size,
            pixel_points=pixels,
            world_points=world,
            mapper=mapper,
            move_search_region_left=move_left,
            move_search_region_right=move_right,
            search_lines=tuple(search_lines),
        )

    def _compute_metrics(self, state: CalibrationState) -> CalibrationMetrics:
        residuals = qa.reprojection_residuals(state.mapper, state.pixel_points, state.world_points)
        summary = residuals.summary()
        return CalibrationMetrics(
            reprojection_error_world=summary["world_rms"],
            reprojection_error_pixel=summary["pixel_rms"],
            max_reprojection_error_pixel=summary["pixel_max"],
        )

    def _render(
        self,
        state: CalibrationState,
        overlay: np.ndarray,
        options: DrawOptions,
        report: CalibrationReport,
    ) -> None:
        """Draw the requested overlays; a layer that cannot be drawn is a warning."""
        if options.world_grid:
            self._draw_layer(
                "world grid", report, draw.draw_world_grid, overlay, state.mapper, state.pixel_points, state.grid_size
            )
        if options.move_rois:
            self._draw_layer(
                "move ROIs",
                report,
                draw.draw_move_rois,
                overlay,
                (state.move_search_region_left, state.move_search_region_right),
            )
        if options.search_swath:
            if state.search_lines:
                self._draw_layer("search swath", report, draw.draw_search_swath, overlay, state.search_lines)
            else:
                self._warn(report, "No search lines to draw")

    def _draw_layer(self, name: str, report: CalibrationReport, drawer, *args) -> None:
        try:
            with error_boundary("calibrate.draw", self.logger):
                drawer(*args)
        except GaugeCamError as exc:
            self._warn(report, f"Could not draw {name}: {exc}")

    def _warn(self, report: CalibrationReport, message: str) -> None:
        self.logger.warning(f"[calibrate] {message}")
        report.status = Status.WARNING
        report.messages.append(message)

    # ------------------------------------------------------------------
    # Conversions and queries
    # ------------------------------------------------------------------
    def pixel_to_world(self, point: Point) -> Point:
        state = self._require_state("pixel_to_world")
        with error_boundary("pixel_to_world", self.logger, TransformError):
            return state.mapper.to_world(point)

    def world_to_pixel(self, point: Point) -> Point:
        state = self._require_state("world_to_pixel")
        with error_boundary("world_to_pixel", self.logger, TransformError):
            return state.mapper.to_pixel(point)

    def move_search_roi(self, side: Side) -> Rect:
        state = self._require_state("move_search_roi")
        return state.move_search_region_left if side is Side.LEFT else state.move_search_region_right

    def move_ref_point(self, side: Side) -> Point:
        """Calibration-time position of the left or right top-row fiducial."""
        state = self._require_state("move_ref_point")
        if not state.pixel_points or len(state.pixel_points) != state.grid_size.count:
            raise ValidationError("Calibration point set is empty or inconsistent with the grid")
        index = 0 if side is Side.LEFT else state.grid_size.cols - 1
        return state.pixel_points[index]

    def move_ref_points(self) -> Dict[Side, Point]:
        return {side: self.move_ref_point(side) for side in Side}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self, path: Union[str, Path]) -> CalibrationState:
        """Load a calibration file and recalibrate from its correspondences."""
        schema = calib_io.read_calibration_file(path)
        pixel_points, world_points = calib_io.schema_points(schema)
        grid_size = calib_io.schema_grid_size(schema)
        image_size = calib_io.schema_image_size(schema)

        state = self._build_state(pixel_points, world_points, grid_size, image_size)
        self._log_stale_geometry(schema, state)
        self._state = state
        self.logger.info(f"Loaded calibration from {path}")
        return state

    def _log_stale_geometry(self, schema, state: CalibrationState) -> None:
        saved_lines = calib_io.schema_search_lines(schema)
        if saved_lines and saved_lines != list(state.search_lines):
            self.logger.debug("Persisted search lines differ from recomputed lines, using recomputed")
        saved_left, saved_right = calib_io.schema_move_regions(schema)
        if (saved_left, saved_right) != (state.move_search_region_left, state.move_search_region_right):
            self.logger.debug("Persisted move search regions differ from recomputed regions")

    def save(self, path: Union[str, Path]) -> None:
        state = self._require_state("save")
        if not state.grid_size.meets_minimum():
            raise ValidationError(
                f"Cannot save a {state.grid_size.cols}x{state.grid_size.rows} grid, minimum is 2x4"
            )
        if len(state.pixel_points) != state.grid_size.count or len(state.world_points) != state.grid_size.count:
            raise ValidationError("Calibration point counts do not match the grid")
        if not state.search_lines:
            raise ValidationError("Calibration has no search lines")

        calib_io.write_calibration_file(calib_io.state_to_schema(state), path)
        self.logger.info(f"Saved calibration to {path}")

    def model_json_string(self) -> str:
        """JSON of points, move regions and search lines without the image size."""
        state = self._require_state("model_json_string")
        return calib_io.schema_to_json(calib_io.state_to_schema(state), include_image_size=False)
