"""Pydantic schemas for the calibration JSON file."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CalibPointSchema(BaseModel):
    """One pixel/world correspondence."""

    model_config = ConfigDict(populate_by_name=True)

    pixel_x: float = Field(0.0, alias="pixelX")
    pixel_y: float = Field(0.0, alias="pixelY")
    world_x: float = Field(0.0, alias="worldX")
    world_y: float = Field(0.0, alias="worldY")


class PixelToWorldSchema(BaseModel):
    """Grid shape plus raster-order correspondences."""

    columns: int = Field(2, ge=1, description="Fiducial columns")
    rows: int = Field(4, ge=1, description="Fiducial rows")
    points: List[CalibPointSchema] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_point_count(self) -> "PixelToWorldSchema":
        """Grid shape must account for every listed point."""
        if self.columns * self.rows != len(self.points):
            raise ValueError(
                f"Invalid association point count: {self.columns}x{self.rows} grid "
                f"but {len(self.points)} points"
            )
        return self


class RectSchema(BaseModel):
    """Pixel rectangle."""

    x: int = 0
    y: int = 0
    width: int = Field(0, ge=0)
    height: int = Field(0, ge=0)


class MoveSearchRegionsSchema(BaseModel):
    """Displacement-check windows around the outer top-row fiducials."""

    model_config = ConfigDict(populate_by_name=True)

    left: RectSchema = Field(default_factory=RectSchema, alias="Left")
    right: RectSchema = Field(default_factory=RectSchema, alias="Right")


class SearchLineSchema(BaseModel):
    """Scan line endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    top_x: int = Field(alias="topX")
    top_y: int = Field(alias="topY")
    bot_x: int = Field(alias="botX")
    bot_y: int = Field(alias="botY")


class CalibrationModelSchema(BaseModel):
    """Calibration model as shared with the metadata store."""

    model_config = ConfigDict(populate_by_name=True)

    pixel_to_world: PixelToWorldSchema = Field(alias="PixelToWorld")
    move_search_regions: MoveSearchRegionsSchema = Field(
        default_factory=MoveSearchRegionsSchema, alias="MoveSearchRegions"
    )
    search_lines: List[SearchLineSchema] = Field(default_factory=list, alias="SearchLines")


class CalibrationFileSchema(CalibrationModelSchema):
    """Complete calibration file including the image size."""

    image_width: int = Field(0, ge=0, alias="imageWidth")
    image_height: int = Field(0, ge=0, alias="imageHeight")
