"""Status values and error kinds shared by the calibration core."""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional, Type

import cv2
import numpy as np


class Status(Enum):
    """Outcome of an operation that can partially succeed."""

    OK = "ok"
    WARNING = "warning"


class ErrorKind(Enum):
    """Why an operation did not produce a usable result."""

    VALIDATION = "validation"
    UNCALIBRATED = "uncalibrated"
    TRANSFORM_FAILURE = "transform_failure"
    INSUFFICIENT_MATCHES = "insufficient_matches"
    IO = "io"
    INTERNAL = "internal"


class GaugeCamError(Exception):
    """Base error raised by the calibration core."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(GaugeCamError, ValueError):
    """Bad parameters, counts or formats."""

    kind = ErrorKind.VALIDATION


class UncalibratedError(GaugeCamError):
    """A conversion or query was attempted before calibration."""

    kind = ErrorKind.UNCALIBRATED


class TransformError(GaugeCamError):
    """Projective transform could not be fit or applied."""

    kind = ErrorKind.TRANSFORM_FAILURE


class InsufficientMatchesError(GaugeCamError):
    """Template search did not find the expected number of targets."""

    kind = ErrorKind.INSUFFICIENT_MATCHES


class CalibrationIOError(GaugeCamError, OSError):
    """Calibration file could not be read or written."""

    kind = ErrorKind.IO


@contextmanager
def error_boundary(
    operation: str,
    logger,
    error_cls: Type[GaugeCamError] = GaugeCamError,
) -> Iterator[None]:
    """Convert unexpected numeric failures into ``GaugeCamError``.

    Errors already raised as ``GaugeCamError`` pass through untouched. OpenCV,
    numpy and arithmetic failures are logged with the operation name and
    re-raised as ``error_cls`` with the original message preserved.
    """
    try:
        yield
    except GaugeCamError:
        raise
    except (cv2.error, np.linalg.LinAlgError, ArithmeticError, IndexError) as exc:
        logger.error(f"[{operation}] {exc}")
        raise error_cls(f"{operation} failed: {exc}") from exc
