"""Utility modules for gaugecam."""

from .io import load_config, load_world_points, read_document, save_config, write_document, write_text
from .log import get_logger, setup_logging

__all__ = [
    "read_document",
    "write_document",
    "write_text",
    "load_config",
    "save_config",
    "load_world_points",
    "setup_logging",
    "get_logger",
]
