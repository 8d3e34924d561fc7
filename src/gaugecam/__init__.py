"""
GaugeCam: camera calibration for water-level gauge imagery.

This package locates bowtie fiducials in a fixed camera's images, fits the
pixel/world mapping from them and watches the target for camera movement.
"""

__version__ = "0.1.0"

from . import utils
from . import schemas
from . import calib

__all__ = [
    "utils",
    "schemas",
    "calib",
]
