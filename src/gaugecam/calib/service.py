"""Calibration service tying target search to the calibration model."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from ..utils.log import get_logger
from .config import GaugeCamConfig
from .detect.matcher import TargetDetector
from .errors import ValidationError
from .geometry.grid import FiducialGridGenerator
from .geometry.model import CalibrationModel, CalibrationReport, DrawOptions
from .types import FindData, FindPointSet, ImageSize, LineFinder, MoveResult, MoveTargets, Point, Side

logger = get_logger(__name__)


@dataclass
class CalibrationService:
    """High-level entry point for calibrating and monitoring a gauge camera."""

    config: GaugeCamConfig
    detector: TargetDetector
    model: CalibrationModel
    calib_filepath: Optional[Path] = field(default=None)

    @classmethod
    def from_config(cls, config: GaugeCamConfig, image_size: ImageSize) -> "CalibrationService":
        """Build a ready detector and an uncalibrated model for one image size."""
        detector = TargetDetector(config.detector)
        detector.init_bowtie_template(config.template.template_dim, image_size)
        model = CalibrationModel(move_search_margin=config.move_search_margin)
        return cls(config=config, detector=detector, model=model)

    def world_grid(self) -> list:
        """Target world coordinates from the configured spacing and origin."""
        calib = self.config.calibration
        generator = FiducialGridGenerator(
            self.config.detector.grid_size,
            spacing=(calib.grid_spacing_x, calib.grid_spacing_y),
            origin=(calib.world_origin_x, calib.world_origin_y),
        )
        return generator.generate_world_points()

    def calibrate_from_image(
        self,
        image: np.ndarray,
        world_points: Optional[Sequence[Point]] = None,
        draw_options: Optional[DrawOptions] = None,
    ) -> CalibrationReport:
        """Find the fiducial grid in ``image`` and calibrate the model from it."""
        grid = self.detector.find_targets(image)
        pixel_points = [c.point for row in grid for c in row]
        if world_points is None:
            world_points = self.world_grid()

        report = self.model.calibrate(
            pixel_points,
            world_points,
            self.config.detector.grid_size,
            ImageSize.of(image),
            image=image,
            draw_options=draw_options,
        )
        logger.info(f"Calibrated from image with status {report.status.value}")
        return report

    def check_movement(self, image: np.ndarray) -> MoveResult:
        """Re-find the move targets and report their offset from calibration."""
        for side in Side:
            self.detector.set_move_target_roi(image, self.model.move_search_roi(side), side)
        found = self.detector.find_move_targets(image)
        reference = MoveTargets(
            left=self.model.move_ref_point(Side.LEFT),
            right=self.model.move_ref_point(Side.RIGHT),
        )

        offset_pixels = {}
        offset_world = {}
        for side, now, then in (
            (Side.LEFT, found.left, reference.left),
            (Side.RIGHT, found.right, reference.right),
        ):
            offset_pixels[side] = (now[0] - then[0], now[1] - then[1])
            world_now = self.model.pixel_to_world(now)
            world_then = self.model.pixel_to_world(then)
            offset_world[side] = (world_now[0] - world_then[0], world_now[1] - world_then[1])

        result = MoveResult(
            found=found,
            reference=reference,
            offset_pixels=offset_pixels,
            offset_world=offset_world,
        )
        logger.info(f"Move check: max offset {result.max_pixel_offset():.2f} px")
        return result

    def measure(self, image: np.ndarray, line_finder: LineFinder, check_movement: bool = False) -> FindData:
        """Run the line finder over the scan swath and convert its line to world units."""
        search_lines = self.model.search_lines
        if not search_lines:
            raise ValidationError("Calibration has no search lines")

        result = line_finder.find(image, search_lines)
        pts = result.calc_line_pts
        world_line = FindPointSet(
            anchor=self.model.pixel_to_world(pts.anchor),
            left=self.model.pixel_to_world(pts.left),
            center=self.model.pixel_to_world(pts.center),
            right=self.model.pixel_to_world(pts.right),
        )

        data = FindData(
            calib_filepath="" if self.calib_filepath is None else str(self.calib_filepath),
            find_line_result=result,
            world_line=world_line,
        )
        if check_movement:
            data.move_result = self.check_movement(image)
        return data

    def load_calibration(self, path: Union[str, Path]) -> None:
        self.model.load(path)
        self.calib_filepath = Path(path)

    def save_calibration(self, path: Union[str, Path]) -> None:
        self.model.save(path)
        self.calib_filepath = Path(path)
