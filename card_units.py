"""Millimetre, point and screen unit conversions for card layouts."""
from __future__ import annotations

import re
from typing import Optional


# CR80 card stock, in millimetres.
CR80_WIDTH = 85.60
CR80_HEIGHT = 53.98

MM_PER_INCH = 25.4
POINTS_PER_INCH = 72.0
CSS_PX_PER_INCH = 96.0
CSS_PX_PER_MM = CSS_PX_PER_INCH / MM_PER_INCH

MIN_ZOOM = 1
MAX_ZOOM = 50
DEFAULT_ZOOM = 7
ZOOM_MULTIPLIER = CSS_PX_PER_MM / 4
ZOOM_PERCENT_PER_STEP = 14.2

_LENGTH_RE = re.compile(r"([0-9.]+)([a-z%]*)")


def clamp_zoom(zoom: float) -> float:
    return min(max(zoom, MIN_ZOOM), MAX_ZOOM)


def zoom_to_scale(zoom: float) -> float:
    """Screen units per millimetre for an editor zoom level."""

    return clamp_zoom(zoom) * ZOOM_MULTIPLIER


def zoom_percent(zoom: float) -> int:
    return int(round(clamp_zoom(zoom) * ZOOM_PERCENT_PER_STEP))


def mm_to_screen(value_mm: float, scale: float) -> float:
    return value_mm * scale


def screen_to_mm(value: float, scale: float) -> float:
    if scale <= 0:
        raise ValueError(f"scale must be positive, got {scale}")
    return value / scale


def points_to_mm(points: float) -> float:
    return points * MM_PER_INCH / POINTS_PER_INCH


def mm_to_points(value_mm: float) -> float:
    return value_mm * POINTS_PER_INCH / MM_PER_INCH


def _split_length(value: str) -> Optional[tuple]:
    match = _LENGTH_RE.match(value.strip())
    if not match:
        return None
    number, unit = match.groups()
    try:
        return float(number), unit.lower()
    except ValueError:
        return None


def convert_to_mm(value: str) -> Optional[float]:
    """Parse a CSS/SVG length such as ``"12pt"`` into millimetres."""

    parsed = _split_length(value)
    if parsed is None:
        return None
    number, unit = parsed
    if unit in ("pt", ""):
        return points_to_mm(number)
    elif unit == "px":
        return number / CSS_PX_PER_MM
    elif unit == "in":
        return number * MM_PER_INCH
    elif unit == "cm":
        return number * 10
    elif unit == "mm":
        return number
    return None


def convert_to_points(value: str) -> Optional[float]:
    parsed = _split_length(value)
    if parsed is None:
        return None
    number, unit = parsed
    if unit in ("pt", ""):
        return number
    elif unit == "px":
        return number * 0.75
    elif unit == "in":
        return number * POINTS_PER_INCH
    elif unit == "cm":
        return mm_to_points(number * 10)
    elif unit == "mm":
        return mm_to_points(number)
    return None


def format_length(value: float) -> str:
    """Format floats for XML attributes without trailing zeros."""

    text = f"{value:.4f}".rstrip("0").rstrip(".")
    return text or "0"
