"""Serialise rendered card trees to SVG documents."""
from __future__ import annotations

import math
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from xml.dom.minidom import Document, Element

from card_renderer import VisualNode
from card_units import format_length
from text_fit_util import truncate_to_width, wrap_text_to_width

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"

# Finder squares drawn in the QR placeholder, as fractions of its inner size.
_QR_FINDERS = ((0.0, 0.0), (0.64, 0.0), (0.0, 0.64))
_QR_FINDER_SIZE = 0.36


def _format_float(value: float) -> str:
    return format_length(value)


def _apply_alignment(element: Element, alignment: str) -> None:
    """Apply SVG text alignment while accepting common synonyms."""

    normalized = alignment.strip().lower()
    if normalized in {"center", "centre", "middle"}:
        element.setAttribute("text-anchor", "middle")
    elif normalized in {"right", "end"}:
        element.setAttribute("text-anchor", "end")
    elif normalized in {"left", "start"}:
        element.setAttribute("text-anchor", "start")


def _set_multiline_text(
    element: Element, lines: Sequence[str], *, base_x: str, line_height: float
) -> None:
    document = element.ownerDocument
    while element.firstChild:
        element.removeChild(element.firstChild)

    if not lines:
        lines = [""]

    element.appendChild(document.createTextNode(lines[0]))
    for line in lines[1:]:
        tspan = document.createElement("tspan")
        tspan.setAttribute("x", base_x)
        tspan.setAttribute("dy", _format_float(line_height))
        tspan.appendChild(document.createTextNode(line))
        element.appendChild(tspan)


class _SvgWriter:
    def __init__(self, font_path: Optional[Path] = None) -> None:
        self.doc = Document()
        self.font_path = font_path
        self._defs: Optional[Element] = None
        self._clip_count = 0

    def defs(self, root: Element) -> Element:
        if self._defs is None:
            self._defs = self.doc.createElement("defs")
            root.insertBefore(self._defs, root.firstChild)
        return self._defs

    def element(self, tag: str, **attributes: object) -> Element:
        element = self.doc.createElement(tag)
        for name, value in attributes.items():
            if value is None:
                continue
            if isinstance(value, float):
                value = _format_float(value)
            element.setAttribute(name.replace("_", "-"), str(value))
        return element

    def _paint(self, element: Element, style: Mapping[str, object]) -> None:
        fill = style.get("fill")
        element.setAttribute("fill", str(fill) if fill else "none")
        stroke_width = float(style.get("stroke_width", 0.0) or 0.0)
        if style.get("stroke") and stroke_width > 0:
            element.setAttribute("stroke", str(style["stroke"]))
            element.setAttribute("stroke-width", _format_float(stroke_width))
        if "opacity" in style:
            element.setAttribute("opacity", _format_float(float(style["opacity"])))

    def _gradient(self, root: Element, node: VisualNode) -> str:
        start, end = node.style["gradient"]  # type: ignore[misc]
        angle = math.radians(float(node.style.get("gradient_angle", 135.0)))
        gradient_id = f"gradient-{node.node_id.replace(':', '-')}"
        gradient = self.element(
            "linearGradient",
            id=gradient_id,
            x1=0.5 - math.cos(angle - math.pi / 2) / 2,
            y1=0.5 - math.sin(angle - math.pi / 2) / 2,
            x2=0.5 + math.cos(angle - math.pi / 2) / 2,
            y2=0.5 + math.sin(angle - math.pi / 2) / 2,
        )
        for offset, color in (("0%", start), ("100%", end)):
            gradient.appendChild(self.element("stop", offset=offset, stop_color=color))
        self.defs(root).appendChild(gradient)
        return f"url(#{gradient_id})"

    def _clip(self, root: Element, node: VisualNode, radius: float) -> str:
        self._clip_count += 1
        clip_id = f"clip-{self._clip_count}"
        clip = self.element("clipPath", id=clip_id)
        clip.appendChild(
            self.element(
                "rect", x=node.x, y=node.y, width=node.width, height=node.height, rx=radius, ry=radius
            )
        )
        self.defs(root).appendChild(clip)
        return f"url(#{clip_id})"

    def rect(self, root: Element, parent: Element, node: VisualNode) -> None:
        radius = float(node.style.get("radius", 0.0) or 0.0)
        element = self.element(
            "rect",
            id=node.node_id,
            x=node.x,
            y=node.y,
            width=node.width,
            height=node.height,
            rx=radius or None,
            ry=radius or None,
        )
        self._paint(element, node.style)
        if "gradient" in node.style:
            element.setAttribute("fill", self._gradient(root, node))
        parent.appendChild(element)
        if node.style.get("image"):
            image = self.element(
                "image",
                x=node.x,
                y=node.y,
                width=node.width,
                height=node.height,
                preserveAspectRatio="xMidYMid slice",
                clip_path=self._clip(root, node, radius),
            )
            image.setAttribute("xlink:href", str(node.style["image"]))
            parent.appendChild(image)

    def image(self, root: Element, parent: Element, node: VisualNode) -> None:
        radius = float(node.style.get("radius", 0.0) or 0.0)
        image = self.element(
            "image",
            id=node.node_id,
            x=node.x,
            y=node.y,
            width=node.width,
            height=node.height,
            preserveAspectRatio="xMidYMid slice",
            clip_path=self._clip(root, node, radius) if radius else None,
        )
        image.setAttribute("xlink:href", str(node.style["href"]))
        parent.appendChild(image)
        self._frame(parent, node, radius)

    def _frame(self, parent: Element, node: VisualNode, radius: float) -> None:
        stroke_width = float(node.style.get("stroke_width", 0.0) or 0.0)
        if not node.style.get("stroke") or stroke_width <= 0:
            return
        frame = self.element(
            "rect",
            x=node.x,
            y=node.y,
            width=node.width,
            height=node.height,
            rx=radius or None,
            ry=radius or None,
            fill="none",
            stroke=node.style["stroke"],
            stroke_width=stroke_width,
        )
        parent.appendChild(frame)

    def glyph(self, root: Element, parent: Element, node: VisualNode) -> None:
        radius = float(node.style.get("radius", 0.0) or 0.0)
        group = self.element("g", id=node.node_id)
        box = self.element(
            "rect", x=node.x, y=node.y, width=node.width, height=node.height, rx=radius or None, ry=radius or None
        )
        self._paint(box, node.style)
        group.appendChild(box)

        ink = str(node.style.get("ink", "#94a3b8"))
        cx = node.x + node.width / 2
        unit = min(node.width, node.height)
        if node.text == "user":
            group.appendChild(
                self.element("circle", cx=cx, cy=node.y + unit * 0.38, r=unit * 0.17, fill=ink)
            )
            group.appendChild(
                self.element(
                    "ellipse", cx=cx, cy=node.y + unit * 0.82, rx=unit * 0.3, ry=unit * 0.2, fill=ink
                )
            )
        else:
            top = node.y + unit * 0.2
            path = (
                f"M {_format_float(cx)} {_format_float(top)} "
                f"L {_format_float(cx + unit * 0.3)} {_format_float(top + unit * 0.1)} "
                f"L {_format_float(cx + unit * 0.25)} {_format_float(top + unit * 0.45)} "
                f"L {_format_float(cx)} {_format_float(top + unit * 0.6)} "
                f"L {_format_float(cx - unit * 0.25)} {_format_float(top + unit * 0.45)} "
                f"L {_format_float(cx - unit * 0.3)} {_format_float(top + unit * 0.1)} Z"
            )
            group.appendChild(self.element("path", d=path, fill=ink))
        parent.appendChild(group)

    def qr(self, root: Element, parent: Element, node: VisualNode) -> None:
        group = self.element("g", id=node.node_id)
        if node.text:
            group.setAttribute("data-payload", node.text)
        radius = float(node.style.get("radius", 0.0) or 0.0)
        box = self.element(
            "rect", x=node.x, y=node.y, width=node.width, height=node.height, rx=radius or None, ry=radius or None
        )
        self._paint(box, node.style)
        group.appendChild(box)

        padding = float(node.style.get("padding", 0.0) or 0.0)
        inner = max(node.width - 2 * padding, 0.0)
        ink = str(node.style.get("ink", "#000000"))
        for fx, fy in _QR_FINDERS:
            size = inner * _QR_FINDER_SIZE
            x = node.x + padding + inner * fx
            y = node.y + padding + inner * fy
            group.appendChild(self.element("rect", x=x, y=y, width=size, height=size, fill=ink))
            group.appendChild(
                self.element(
                    "rect", x=x + size / 7, y=y + size / 7, width=size * 5 / 7, height=size * 5 / 7, fill="#ffffff"
                )
            )
            group.appendChild(
                self.element(
                    "rect", x=x + size * 2 / 7, y=y + size * 2 / 7, width=size * 3 / 7, height=size * 3 / 7, fill=ink
                )
            )
        parent.appendChild(group)

    def text(self, root: Element, parent: Element, node: VisualNode) -> None:
        style = node.style
        font_size = float(style.get("font_size", 1.0))
        line_height = font_size * float(style.get("line_height", 1.0))
        bold = int(style.get("weight", 400)) >= 700
        content = node.text.upper() if style.get("uppercase") else node.text
        overflow = style.get("overflow", "truncate")

        if overflow == "wrap":
            lines: List[str] = wrap_text_to_width(
                content,
                node.width,
                font_size,
                font_path=self.font_path,
                bold=bold,
                max_lines=style.get("max_lines"),  # type: ignore[arg-type]
            )
        elif overflow == "truncate":
            lines = [truncate_to_width(content, node.width, font_size, font_path=self.font_path, bold=bold)]
        else:
            lines = [content]

        alignment = str(style.get("align", "left"))
        if alignment == "center":
            x = node.x + node.width / 2
        elif alignment == "right":
            x = node.x + node.width
        else:
            x = node.x

        if style.get("valign") == "middle":
            block = line_height * (len(lines) - 1)
            y = node.y + node.height / 2 - block / 2
            baseline = "central"
        else:
            y = node.y + font_size * 0.8
            baseline = "alphabetic"

        element = self.element(
            "text",
            id=node.node_id,
            x=x,
            y=y,
            font_size=font_size,
            font_weight=style.get("weight"),
            fill=style.get("color", "#000000"),
            dominant_baseline=baseline,
        )
        if style.get("italic"):
            element.setAttribute("font-style", "italic")
        if "opacity" in style:
            element.setAttribute("opacity", _format_float(float(style["opacity"])))
        if style.get("letter_spacing"):
            element.setAttribute("letter-spacing", _format_float(float(style["letter_spacing"]) * font_size))
        if style.get("rotate"):
            element.setAttribute(
                "transform",
                f"rotate({_format_float(float(style['rotate']))} "
                f"{_format_float(node.x + node.width / 2)} {_format_float(node.y + node.height / 2)})",
            )
        _apply_alignment(element, alignment)
        _set_multiline_text(element, lines, base_x=_format_float(x), line_height=line_height)
        parent.appendChild(element)

    def group(self, root: Element, parent: Element, node: VisualNode) -> None:
        group = self.element("g", id=node.node_id)
        if "opacity" in node.style:
            group.setAttribute("opacity", _format_float(float(node.style["opacity"])))
        for child in node.children:
            self.draw(root, group, child)
        parent.appendChild(group)

    def draw(self, root: Element, parent: Element, node: VisualNode) -> None:
        handler = getattr(self, node.kind if node.kind != "card" else "group", None)
        if handler is None:
            raise ValueError(f"Unsupported visual node kind: {node.kind}")
        handler(root, parent, node)


def render_svg_document(tree: VisualNode, *, font_path: Optional[Path] = None) -> Document:
    """Build an SVG document for a tree produced by :func:`card_renderer.render_card`."""

    writer = _SvgWriter(font_path)
    root = writer.element(
        "svg",
        width=f"{_format_float(tree.width)}mm",
        height=f"{_format_float(tree.height)}mm",
        viewBox=f"0 0 {_format_float(tree.width)} {_format_float(tree.height)}",
        version="1.1",
    )
    root.setAttribute("xmlns", SVG_NS)
    root.setAttribute("xmlns:xlink", XLINK_NS)
    writer.doc.appendChild(root)

    radius = float(tree.style.get("radius", 0.0) or 0.0)
    card = writer.element(
        "g",
        id=tree.node_id,
        font_family=tree.style.get("font_family", "sans-serif"),
        clip_path=writer._clip(root, tree, radius),
    )
    for child in tree.children:
        writer.draw(root, card, child)
    root.appendChild(card)
    return writer.doc


def write_svg(tree: VisualNode, path: Union[str, Path], *, font_path: Optional[Path] = None) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    doc = render_svg_document(tree, font_path=font_path)
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(doc.toxml())
    return path
