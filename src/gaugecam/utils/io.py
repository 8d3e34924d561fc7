"""Reading and writing the gaugecam side documents.

Three kinds of documents live next to a calibration file: the YAML settings
loaded by :class:`~gaugecam.calib.config.GaugeCamConfig`, world point lists
handed to the calibration CLI, and plain text such as the calibration JSON
itself. JSON and YAML are told apart by file suffix.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

PathLike = Union[str, Path]

_READERS = {
    "json": json.load,
    "yaml": yaml.safe_load,
    "yml": yaml.safe_load,
}


def _document_format(path: Path, fmt: Optional[str]) -> str:
    fmt = (fmt or path.suffix.lstrip(".")).lower()
    if fmt not in _READERS:
        raise ValueError(f"Unsupported document format '{fmt}' for {path.name}")
    return fmt


def read_document(path: PathLike, fmt: Optional[str] = None) -> Any:
    """Parse a JSON or YAML document; ``fmt`` overrides the suffix."""
    path = Path(path)
    reader = _READERS[_document_format(path, fmt)]
    with open(path, "r", encoding="utf-8") as f:
        return reader(f)


def write_document(data: Any, path: PathLike, fmt: Optional[str] = None) -> None:
    """Write ``data`` as JSON or YAML, creating parent folders."""
    path = Path(path)
    fmt = _document_format(path, fmt)
    if fmt == "json":
        text = json.dumps(data, indent=2) + "\n"
    else:
        text = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    write_text(text, path)


def write_text(text: str, path: PathLike) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


def load_config(path: PathLike) -> Dict[str, Any]:
    """
    Load gaugecam settings from YAML.

    Args:
        path: Settings file; an empty file yields an empty mapping

    Returns:
        Settings sections keyed by name (``template``, ``detector``, ...)
    """
    data = read_document(path, fmt="yaml") or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must hold a mapping, got {type(data).__name__}")
    return data


def save_config(config: Dict[str, Any], path: PathLike) -> None:
    write_document(config, path, fmt="yaml")


def load_world_points(path: PathLike) -> List[Tuple[float, float]]:
    """
    Load fiducial world coordinates in raster order.

    The document is either a list of ``[x, y]`` pairs or a mapping with a
    ``world_points`` key holding that list.

    Args:
        path: JSON or YAML world point file

    Returns:
        One ``(x, y)`` tuple per fiducial, top row first
    """
    data = read_document(path)
    if isinstance(data, dict):
        data = data.get("world_points")
    if not isinstance(data, list) or not data:
        raise ValueError(f"{path} holds no world point list")

    points = []
    for index, entry in enumerate(data):
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            raise ValueError(f"World point {index} in {path} is not an [x, y] pair: {entry!r}")
        try:
            points.append((float(entry[0]), float(entry[1])))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"World point {index} in {path} is not numeric: {entry!r}") from exc
    return points
