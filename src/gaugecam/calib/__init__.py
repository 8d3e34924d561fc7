"""Camera calibration and fiducial search for gauge imagery."""

from .config import CalibrationConfig, DetectorConfig, GaugeCamConfig, TemplateConfig
from .detect import TEMPLATE_COUNT, TargetDetector, TemplateBank, build_bowtie_bank
from .errors import (
    CalibrationIOError,
    ErrorKind,
    GaugeCamError,
    InsufficientMatchesError,
    Status,
    TransformError,
    UncalibratedError,
    ValidationError,
)
from .geometry import FiducialGridGenerator, HomographyMapper, calc_search_swaths
from .geometry.model import (
    CalibrationMetrics,
    CalibrationModel,
    CalibrationReport,
    CalibrationState,
    DrawOptions,
)
from .service import CalibrationService
from .types import (
    DetectionGrid,
    FindData,
    FindLineResult,
    FindPointSet,
    GridSize,
    ImageSize,
    LineEnds,
    LineFinder,
    MatchCandidate,
    MoveResult,
    MoveTargets,
    Rect,
    Side,
)

__all__ = [
    "TEMPLATE_COUNT",
    "CalibrationConfig",
    "CalibrationIOError",
    "CalibrationMetrics",
    "CalibrationModel",
    "CalibrationReport",
    "CalibrationService",
    "CalibrationState",
    "DetectionGrid",
    "DetectorConfig",
    "DrawOptions",
    "ErrorKind",
    "FiducialGridGenerator",
    "FindData",
    "FindLineResult",
    "FindPointSet",
    "GaugeCamConfig",
    "GaugeCamError",
    "GridSize",
    "HomographyMapper",
    "ImageSize",
    "InsufficientMatchesError",
    "LineEnds",
    "LineFinder",
    "MatchCandidate",
    "MoveResult",
    "MoveTargets",
    "Rect",
    "Side",
    "Status",
    "TargetDetector",
    "TemplateBank",
    "TemplateConfig",
    "TransformError",
    "UncalibratedError",
    "ValidationError",
    "build_bowtie_bank",
    "calc_search_swaths",
]
