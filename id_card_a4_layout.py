"""Lay rendered ID cards out on A4 print sheets."""
from __future__ import annotations

import logging
import math
from io import BytesIO
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Tuple, Union

import fitz  # PyMuPDF
from PIL import Image
from reportlab.lib.colors import HexColor, white
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from card_renderer import Side, VisualNode, render_card
from card_template import CardTemplate
from image_payload import try_open_image
from text_fit_util import truncate_to_width, wrap_text_to_width

logger = logging.getLogger(__name__)

# ---------------- CONFIG ----------------
PAGE_W_MM, PAGE_H_MM = 210.0, 297.0
MARGIN_MM = 15.0
COLUMN_GAP_MM = 10.0
ROW_GAP_MM = 5.0
SIDE_GAP_MM = 2.0
COLUMNS = 2
DPI = 150

_QR_FINDERS = ((0.0, 0.0), (0.64, 0.0), (0.0, 0.64))
_QR_FINDER_SIZE = 0.36


def _color(value: object, default: str = "#000000"):
    try:
        return HexColor(str(value or default))
    except (ValueError, TypeError):
        return HexColor(default)


def _font_name(style: Mapping[str, object]) -> str:
    bold = int(style.get("weight", 400)) >= 700
    italic = bool(style.get("italic"))
    if bold and italic:
        return "Helvetica-BoldOblique"
    if bold:
        return "Helvetica-Bold"
    if italic:
        return "Helvetica-Oblique"
    return "Helvetica"


class _CardPainter:
    """Draws one visual tree whose units are PDF points onto a canvas."""

    def __init__(self, c: canvas.Canvas, left: float, top: float) -> None:
        self.c = c
        self.left = left
        self.top = top

    def _box(self, node: VisualNode) -> Tuple[float, float, float, float]:
        x = self.left + node.x
        y = self.top - node.y - node.height
        return x, y, node.width, node.height

    def _clip_to(self, node: VisualNode, radius: float) -> None:
        x, y, w, h = self._box(node)
        path = self.c.beginPath()
        path.roundRect(x, y, w, h, radius)
        self.c.clipPath(path, stroke=0, fill=0)

    def _alpha(self, style: Mapping[str, object], alpha: float) -> float:
        return alpha * float(style.get("opacity", 1.0))

    def rect(self, node: VisualNode, alpha: float) -> None:
        style = node.style
        x, y, w, h = self._box(node)
        radius = float(style.get("radius", 0.0) or 0.0)
        self.c.saveState()
        self.c.setFillAlpha(self._alpha(style, alpha))
        if "gradient" in style:
            start, end = style["gradient"]  # type: ignore[misc]
            self._clip_to(node, radius)
            self.c.linearGradient(x, y + h, x + w, y, (_color(start), _color(end)), extend=True)
        elif style.get("fill"):
            self.c.setFillColor(_color(style["fill"]))
            self.c.roundRect(x, y, w, h, radius, stroke=0, fill=1)
        self.c.restoreState()

        image = try_open_image(style.get("image"))  # type: ignore[arg-type]
        if image is not None:
            self._draw_image(node, image, radius)
        self._frame(node, radius, alpha)

    def _draw_image(self, node: VisualNode, image: Image.Image, radius: float) -> None:
        x, y, w, h = self._box(node)
        self.c.saveState()
        if radius:
            self._clip_to(node, radius)
        self.c.drawImage(ImageReader(image), x, y, width=w, height=h, mask="auto")
        self.c.restoreState()

    def _frame(self, node: VisualNode, radius: float, alpha: float) -> None:
        stroke_width = float(node.style.get("stroke_width", 0.0) or 0.0)
        if not node.style.get("stroke") or stroke_width <= 0:
            return
        x, y, w, h = self._box(node)
        self.c.saveState()
        self.c.setStrokeAlpha(alpha)
        self.c.setStrokeColor(_color(node.style["stroke"]))
        self.c.setLineWidth(stroke_width)
        self.c.roundRect(x, y, w, h, radius, stroke=1, fill=0)
        self.c.restoreState()

    def image(self, node: VisualNode, alpha: float) -> None:
        radius = float(node.style.get("radius", 0.0) or 0.0)
        image = try_open_image(node.style.get("href"))  # type: ignore[arg-type]
        if image is None:
            self.glyph(node._replace(text="user"), alpha)
            return
        self._draw_image(node, image, radius)
        self._frame(node, radius, alpha)

    def glyph(self, node: VisualNode, alpha: float) -> None:
        style = node.style
        x, y, w, h = self._box(node)
        radius = float(style.get("radius", 0.0) or 0.0)
        self.c.saveState()
        self.c.setFillAlpha(alpha)
        self.c.setFillColor(_color(style.get("fill"), "#f8fafc"))
        self.c.roundRect(x, y, w, h, radius, stroke=0, fill=1)
        self.c.setFillColor(_color(style.get("ink"), "#94a3b8"))
        unit = min(w, h)
        cx = x + w / 2
        top = y + h
        if node.text == "user":
            self.c.circle(cx, top - unit * 0.38, unit * 0.17, stroke=0, fill=1)
            self.c.ellipse(cx - unit * 0.3, top - unit * 1.02, cx + unit * 0.3, top - unit * 0.62, stroke=0, fill=1)
        else:
            path = self.c.beginPath()
            upper = top - unit * 0.2
            path.moveTo(cx, upper)
            path.lineTo(cx + unit * 0.3, upper - unit * 0.1)
            path.lineTo(cx + unit * 0.25, upper - unit * 0.45)
            path.lineTo(cx, upper - unit * 0.6)
            path.lineTo(cx - unit * 0.25, upper - unit * 0.45)
            path.lineTo(cx - unit * 0.3, upper - unit * 0.1)
            path.close()
            self.c.drawPath(path, stroke=0, fill=1)
        self.c.restoreState()
        self._frame(node, radius, alpha)

    def qr(self, node: VisualNode, alpha: float) -> None:
        style = node.style
        x, y, w, h = self._box(node)
        radius = float(style.get("radius", 0.0) or 0.0)
        padding = float(style.get("padding", 0.0) or 0.0)
        self.c.saveState()
        self.c.setFillAlpha(alpha)
        self.c.setFillColor(white)
        self.c.roundRect(x, y, w, h, radius, stroke=0, fill=1)
        inner = max(w - 2 * padding, 0.0)
        ink = _color(style.get("ink"), "#0f172a")
        for fx, fy in _QR_FINDERS:
            size = inner * _QR_FINDER_SIZE
            left = x + padding + inner * fx
            bottom = y + h - padding - inner * fy - size
            self.c.setFillColor(ink)
            self.c.rect(left, bottom, size, size, stroke=0, fill=1)
            self.c.setFillColor(white)
            self.c.rect(left + size / 7, bottom + size / 7, size * 5 / 7, size * 5 / 7, stroke=0, fill=1)
            self.c.setFillColor(ink)
            self.c.rect(left + size * 2 / 7, bottom + size * 2 / 7, size * 3 / 7, size * 3 / 7, stroke=0, fill=1)
        self.c.restoreState()
        self._frame(node, radius, alpha)

    def text(self, node: VisualNode, alpha: float) -> None:
        style = node.style
        font_size = float(style.get("font_size", 1.0))
        line_height = font_size * float(style.get("line_height", 1.0))
        bold = int(style.get("weight", 400)) >= 700
        content = node.text.upper() if style.get("uppercase") else node.text
        overflow = style.get("overflow", "truncate")
        if overflow == "wrap":
            lines = wrap_text_to_width(
                content, node.width, font_size, bold=bold, max_lines=style.get("max_lines")  # type: ignore[arg-type]
            )
        elif overflow == "truncate":
            lines = [truncate_to_width(content, node.width, font_size, bold=bold)]
        else:
            lines = [content]

        x, y, w, h = self._box(node)
        top = y + h
        if style.get("valign") == "middle":
            block = line_height * (len(lines) - 1)
            baseline = y + h / 2 + block / 2 - font_size * 0.35
        else:
            baseline = top - font_size * 0.8

        self.c.saveState()
        self.c.setFillAlpha(self._alpha(style, alpha))
        self.c.setFillColor(_color(style.get("color")))
        self.c.setFont(_font_name(style), font_size)
        if style.get("rotate"):
            cx, cy = x + w / 2, y + h / 2
            self.c.translate(cx, cy)
            self.c.rotate(-float(style["rotate"]))  # type: ignore[arg-type]
            self.c.translate(-cx, -cy)

        alignment = style.get("align", "left")
        for line in lines:
            if alignment == "center":
                self.c.drawCentredString(x + w / 2, baseline, line)
            elif alignment == "right":
                self.c.drawRightString(x + w, baseline, line)
            else:
                self.c.drawString(x, baseline, line)
            baseline -= line_height
        self.c.restoreState()

    def group(self, node: VisualNode, alpha: float) -> None:
        child_alpha = self._alpha(node.style, alpha)
        for child in node.children:
            self.draw(child, child_alpha)

    def draw(self, node: VisualNode, alpha: float = 1.0) -> None:
        if node.kind == "card":
            self.c.saveState()
            self._clip_to(node, float(node.style.get("radius", 0.0) or 0.0))
            self.group(node, alpha)
            self.c.restoreState()
            return
        handler = getattr(self, node.kind, None)
        if handler is None:
            raise ValueError(f"Unsupported visual node kind: {node.kind}")
        handler(node, alpha)


def draw_card(c: canvas.Canvas, tree: VisualNode, left: float, top: float) -> None:
    """Draw ``tree`` (rendered with ``scale=mm``) with its top-left at ``(left, top)`` points."""

    _CardPainter(c, left, top).draw(tree)


def _item_height_mm(template: CardTemplate) -> float:
    if template.show_back_side:
        return template.height * 2 + SIDE_GAP_MM
    return template.height


def sheet_slots(template: CardTemplate) -> List[Tuple[float, float]]:
    """Top-left corners (mm from the page's top-left) of every card on one page."""

    block_w = COLUMNS * template.width + (COLUMNS - 1) * COLUMN_GAP_MM
    first_x = (PAGE_W_MM - block_w) / 2
    item_h = _item_height_mm(template)
    rows = max(1, int(math.floor((PAGE_H_MM - 2 * MARGIN_MM + ROW_GAP_MM) / (item_h + ROW_GAP_MM))))
    slots = []
    for row in range(rows):
        for col in range(COLUMNS):
            slots.append((first_x + col * (template.width + COLUMN_GAP_MM), MARGIN_MM + row * (item_h + ROW_GAP_MM)))
    return slots


def make_sheet(
    template: CardTemplate,
    students: Iterable[Mapping[str, object]],
    out_pdf: Union[str, Path],
    log_fn: Callable[[str], None] = logger.info,
) -> int:
    """Write every student's card to ``out_pdf``; return the number of pages."""

    students = list(students)
    if not students:
        raise ValueError("No students selected for the print sheet.")

    out_pdf = Path(out_pdf)
    out_pdf.parent.mkdir(parents=True, exist_ok=True)
    c = canvas.Canvas(str(out_pdf), pagesize=A4)
    page_h = PAGE_H_MM * mm
    slots = sheet_slots(template)
    pages = 0

    for index, student in enumerate(students):
        slot = index % len(slots)
        if slot == 0:
            if index > 0:
                c.showPage()
            pages += 1
        left_mm, top_mm = slots[slot]
        front = render_card(template, student, Side.FRONT, scale=mm)
        draw_card(c, front, left_mm * mm, page_h - top_mm * mm)
        if template.show_back_side:
            back = render_card(template, student, Side.BACK, scale=mm)
            back_top = top_mm + template.height + SIDE_GAP_MM
            draw_card(c, back, left_mm * mm, page_h - back_top * mm)
        log_fn(f"Placed {student.get('fullName') or student.get('name') or index + 1} on page {pages}")

    c.save()
    log_fn(f"Done. Saved {len(students)} card(s) on {pages} page(s) to {out_pdf}")
    return pages


def rasterize(pdf_path: Union[str, Path], page: int = 0, dpi: int = DPI) -> Image.Image:
    """Convert one PDF page to a Pillow image (PNG)."""

    doc = fitz.open(str(pdf_path))
    try:
        pix = doc[page].get_pixmap(dpi=dpi)
        img_bytes = pix.tobytes("png")
    finally:
        doc.close()
    return Image.open(BytesIO(img_bytes))
