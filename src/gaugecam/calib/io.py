"""Input/output helpers for calibration files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Union

from pydantic import ValidationError as SchemaValidationError

from ..schemas import (
    CalibPointSchema,
    CalibrationFileSchema,
    CalibrationModelSchema,
    MoveSearchRegionsSchema,
    PixelToWorldSchema,
    RectSchema,
    SearchLineSchema,
)
from ..utils.io import write_text
from .errors import CalibrationIOError, ValidationError
from .types import GridSize, ImageSize, LineEnds, Point, Rect

if TYPE_CHECKING:
    from .geometry.model import CalibrationState


def state_to_schema(state: "CalibrationState") -> CalibrationFileSchema:
    """Convert a committed calibration state to its file schema."""
    points = [
        CalibPointSchema(pixel_x=px, pixel_y=py, world_x=wx, world_y=wy)
        for (px, py), (wx, wy) in zip(state.pixel_points, state.world_points)
    ]
    return CalibrationFileSchema(
        image_width=state.image_size.width,
        image_height=state.image_size.height,
        pixel_to_world=PixelToWorldSchema(
            columns=state.grid_size.cols,
            rows=state.grid_size.rows,
            points=points,
        ),
        move_search_regions=MoveSearchRegionsSchema(
            left=RectSchema(**state.move_search_region_left.to_dict()),
            right=RectSchema(**state.move_search_region_right.to_dict()),
        ),
        search_lines=[
            SearchLineSchema(top_x=line.top[0], top_y=line.top[1], bot_x=line.bot[0], bot_y=line.bot[1])
            for line in state.search_lines
        ],
    )


def schema_to_json(schema: CalibrationModelSchema, *, include_image_size: bool = True) -> str:
    """Render a calibration schema with the file's camel-case keys."""
    exclude = None if include_image_size else {"image_width", "image_height"}
    data = schema.model_dump(by_alias=True, exclude=exclude)
    return json.dumps(data, indent=2)


def read_calibration_file(path: Union[str, Path]) -> CalibrationFileSchema:
    """Parse and validate a calibration JSON file."""
    path = Path(path)
    if not path.exists():
        raise CalibrationIOError(f"{path} does not exist")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CalibrationIOError(f"Could not read calibration file {path}: {exc}") from exc

    try:
        return CalibrationFileSchema.model_validate_json(text)
    except SchemaValidationError as exc:
        raise ValidationError(f"Invalid calibration file {path}: {exc}") from exc


def write_calibration_file(schema: CalibrationFileSchema, path: Union[str, Path]) -> None:
    """Write a calibration schema as JSON."""
    try:
        write_text(schema_to_json(schema) + "\n", path)
    except OSError as exc:
        raise CalibrationIOError(f"Could not open calibration save file {path}: {exc}") from exc


def schema_points(schema: CalibrationFileSchema) -> tuple:
    """Split file correspondences into pixel and world point lists."""
    pixel_points: list[Point] = []
    world_points: list[Point] = []
    for p in schema.pixel_to_world.points:
        pixel_points.append((p.pixel_x, p.pixel_y))
        world_points.append((p.world_x, p.world_y))
    return pixel_points, world_points


def schema_grid_size(schema: CalibrationFileSchema) -> GridSize:
    return GridSize(cols=schema.pixel_to_world.columns, rows=schema.pixel_to_world.rows)


def schema_image_size(schema: CalibrationFileSchema) -> ImageSize:
    return ImageSize(width=schema.image_width, height=schema.image_height)


def schema_search_lines(schema: CalibrationModelSchema) -> list:
    return [LineEnds(top=(s.top_x, s.top_y), bot=(s.bot_x, s.bot_y)) for s in schema.search_lines]


def schema_move_regions(schema: CalibrationModelSchema) -> tuple:
    regions = schema.move_search_regions
    return (
        Rect(x=regions.left.x, y=regions.left.y, width=regions.left.width, height=regions.left.height),
        Rect(x=regions.right.x, y=regions.right.y, width=regions.right.width, height=regions.right.height),
    )
