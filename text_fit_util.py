"""Utility helpers for fitting card text within a field's width."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from PIL import ImageFont

# PIL measures at this pixel size; widths are scaled to the requested size.
_REFERENCE_SIZE = 100

# Average advance of an uppercase-heavy sans serif, in em, when no font
# file can be loaded.
_AVERAGE_CHAR_WIDTH_EM = 0.6
_BOLD_CHAR_WIDTH_EM = 0.66

ELLIPSIS = "…"


def _resolve_font_path(font_path: Optional[Path] = None) -> Optional[Path]:
    if font_path is not None and Path(font_path).exists():
        return Path(font_path)
    return None


@lru_cache(maxsize=16)
def _load_font(font_path: str) -> Optional[ImageFont.FreeTypeFont]:
    try:
        return ImageFont.truetype(font_path, _REFERENCE_SIZE)
    except (OSError, TypeError):
        return None


def _measure_with_font(font: ImageFont.FreeTypeFont, text: str) -> float:
    try:
        return float(font.getlength(text))
    except AttributeError:
        left, _, right, _ = font.getbbox(text)
        return float(right - left)


def measure_text_width(
    text: str,
    font_size: float,
    *,
    font_path: Optional[Path] = None,
    bold: bool = False,
) -> float:
    """Width of ``text`` in the same unit as ``font_size``."""

    if not text or font_size <= 0:
        return 0.0

    resolved = _resolve_font_path(font_path)
    font = _load_font(str(resolved)) if resolved is not None else None
    if font is not None:
        return _measure_with_font(font, text) * font_size / _REFERENCE_SIZE

    em = _BOLD_CHAR_WIDTH_EM if bold else _AVERAGE_CHAR_WIDTH_EM
    return len(text) * em * font_size


def truncate_to_width(
    text: str,
    max_width: float,
    font_size: float,
    *,
    font_path: Optional[Path] = None,
    bold: bool = False,
) -> str:
    trimmed = text.rstrip()
    if not trimmed or max_width <= 0:
        return trimmed

    def _width(value: str) -> float:
        return measure_text_width(value, font_size, font_path=font_path, bold=bold)

    if _width(trimmed) <= max_width:
        return trimmed

    while trimmed and _width(trimmed + ELLIPSIS) > max_width:
        trimmed = trimmed[:-1].rstrip()

    return (trimmed + ELLIPSIS) if trimmed else ELLIPSIS


def wrap_text_to_width(
    text: str,
    max_width: float,
    font_size: float,
    *,
    font_path: Optional[Path] = None,
    bold: bool = False,
    max_lines: Optional[int] = None,
) -> List[str]:
    """Greedy word wrap that keeps explicit line breaks.

    Lines beyond ``max_lines`` are folded into the last allowed line, which is
    then truncated with an ellipsis if it still overflows.
    """

    def _width(value: str) -> float:
        return measure_text_width(value, font_size, font_path=font_path, bold=bold)

    lines: List[str] = []
    for paragraph in text.replace("\r", "").split("\n"):
        words = paragraph.split()
        if not words:
            continue
        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if max_width > 0 and _width(candidate) > max_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        lines.append(current)

    if not lines:
        return [""]

    if max_lines is not None and max_lines > 0 and len(lines) > max_lines:
        folded = " ".join(lines[max_lines - 1:])
        lines = lines[: max_lines - 1] + [
            truncate_to_width(folded, max_width, font_size, font_path=font_path, bold=bold)
        ]

    return lines


__all__ = ["measure_text_width", "truncate_to_width", "wrap_text_to_width", "ELLIPSIS"]
