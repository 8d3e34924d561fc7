#!/usr/bin/env python3
"""Calibrate a gauge camera from a bowtie target image, or check it for movement."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import cv2

from gaugecam.calib import (
    CalibrationService,
    DrawOptions,
    GaugeCamConfig,
    GaugeCamError,
    ImageSize,
)
from gaugecam.utils import load_world_points, setup_logging


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Bowtie target calibration CLI")
    p.add_argument("--config", type=str, default=None, help="YAML config (template, detector, calibration)")
    p.add_argument("--log-level", type=str, default="INFO")
    p.add_argument("--log-file", type=str, default=None)
    sp = p.add_subparsers(dest="command", required=True)

    cal = sp.add_parser("calibrate", help="Find the target grid and write a calibration file")
    cal.add_argument("image", type=str, help="Image of the calibration target")
    cal.add_argument("--out", type=str, required=True, help="Calibration JSON to write")
    cal.add_argument("--world", type=str, default=None, help="JSON/YAML list of [x, y] world points in raster order")
    cal.add_argument("--overlay", type=str, default=None, help="Write a debug overlay image")
    cal.add_argument("--found", type=str, default=None, help="Write a cross-hair image of the found targets")

    mv = sp.add_parser("move", help="Check an image for target movement against a calibration")
    mv.add_argument("image", type=str)
    mv.add_argument("--calib", type=str, required=True, help="Calibration JSON from the calibrate command")
    mv.add_argument("--overlay", type=str, default=None, help="Write the move search windows on the image")
    return p.parse_args(argv)


def _read_image(path: str):
    image = cv2.imread(path, cv2.IMREAD_COLOR)
    if image is None:
        raise FileNotFoundError(f"Could not read image {path}")
    return image


def run_calibrate(args: argparse.Namespace, config: GaugeCamConfig) -> int:
    image = _read_image(args.image)
    service = CalibrationService.from_config(config, ImageSize.of(image))
    world_points = None
    if args.world:
        world_points = load_world_points(args.world)

    if args.found:
        service.detector.find_targets(image, debug_output_path=args.found)

    draw_options = DrawOptions(move_rois=True, search_swath=True, world_grid=True) if args.overlay else None
    report = service.calibrate_from_image(image, world_points=world_points, draw_options=draw_options)
    service.save_calibration(args.out)

    if args.overlay and report.overlay is not None:
        Path(args.overlay).parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(args.overlay, report.overlay)

    print(f"status={report.status.value} "
          f"pixel_rms={report.metrics.reprojection_error_pixel:.4f} "
          f"world_rms={report.metrics.reprojection_error_world:.4f}")
    for message in report.messages:
        print(f"warning: {message}")
    return 0


def run_move(args: argparse.Namespace, config: GaugeCamConfig) -> int:
    image = _read_image(args.image)
    service = CalibrationService.from_config(config, ImageSize.of(image))
    service.load_calibration(args.calib)
    result = service.check_movement(image)

    for side, (dx, dy) in result.offset_pixels.items():
        wx, wy = result.offset_world[side]
        print(f"{side.value}: dx={dx:+.2f}px dy={dy:+.2f}px (world {wx:+.3f}, {wy:+.3f})")

    if args.overlay:
        overlay = image.copy()
        service.detector.draw_move_rois(overlay)
        Path(args.overlay).parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(args.overlay, overlay)
    return 0


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    config = GaugeCamConfig.load(args.config) if args.config else GaugeCamConfig()

    try:
        if args.command == "calibrate":
            return run_calibrate(args, config)
        return run_move(args, config)
    except GaugeCamError as exc:
        print(f"error ({exc.kind.value}): {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
