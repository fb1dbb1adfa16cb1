"""Project a card template and a student into a technology-neutral visual tree.

The same tree feeds the live designer preview, the SVG writer and the PDF
print sheets, so nothing here knows about pixels, DOM nodes or canvases.
Every coordinate is ``millimetres × scale`` measured from the card's
top-left corner, and font sizes are converted to millimetres before scaling
so the whole card zooms uniformly.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, Iterator, List, Mapping, NamedTuple, Optional, Tuple, Union

from card_template import (
    HEADER_TEXT,
    LOGO,
    PHOTO,
    QR,
    SIGN,
    CardField,
    CardTemplate,
    Selection,
)
from card_units import points_to_mm
from field_registry import format_field_text, normalise_string


class Side(Enum):
    FRONT = "FRONT"
    BACK = "BACK"


# Rounding and border widths are stored in quarter millimetres.
RADIUS_UNIT_MM = 0.25
BORDER_UNIT_MM = 0.25
ROUNDED_PHOTO_RADIUS_MM = 1.5
HEADER_TEXT_WEIGHT = 900
FIELD_BOLD_WEIGHT = 900
FIELD_REGULAR_WEIGHT = 500
ADDRESS_KEYS = frozenset({"residenceAddress"})
ADDRESS_LINE_HEIGHT = 1.2
ADDRESS_MAX_LINES = 3

QR_PADDING_MM = 0.8
QR_RADIUS_MM = 1.2
QR_BORDER_MM = 0.2
QR_BORDER_COLOR = "#eeeeee"

SIGN_HEIGHT_RATIO = 0.4
SIGN_CAPTION = "Principal Sign"
SIGN_CAPTION_MM = 1.6
SIGN_RULE_MM = 0.2

SECURITY_STRIPE_MM = 1.2
SECURITY_LABELS = (("Institutional", 1.2), ("Secure Node", 1.0))
SECURITY_LABEL_WIDTH_MM = 24.0
SECURITY_LABEL_MARGIN_MM = 2.0
SECURITY_LABEL_OPACITY = 0.2

WATERMARK_MM = 12.0
WATERMARK_OPACITY = 0.03
WATERMARK_ROTATION = -35.0

BACKSIDE_FONT_MM = 2.8
BACKSIDE_COLOR = "#444444"
BACKSIDE_LINE_HEIGHT = 1.5
BACK_QR_MM = 12.0
BACK_QR_BOTTOM_MM = 9.0
BACK_LABEL = "Scan to verify"
BACK_LABEL_MM = 1.8

PLACEHOLDER_FILL = "#f8fafc"
PLACEHOLDER_INK = "#94a3b8"


class VisualNode(NamedTuple):
    kind: str
    node_id: str
    x: float
    y: float
    width: float
    height: float
    text: str = ""
    style: Mapping[str, object] = {}
    children: Tuple["VisualNode", ...] = ()
    selection: Optional[Selection] = None


def _side(side: Union[Side, str]) -> Side:
    if isinstance(side, Side):
        return side
    return Side(str(side).strip().upper())


class _Projector:
    """Scales millimetre geometry and builds nodes for one render pass."""

    def __init__(self, scale: float) -> None:
        self.scale = scale

    def s(self, value_mm: float) -> float:
        return value_mm * self.scale

    def node(
        self,
        kind: str,
        node_id: str,
        x: float,
        y: float,
        width: float,
        height: float,
        *,
        text: str = "",
        style: Optional[Dict[str, object]] = None,
        children: Tuple[VisualNode, ...] = (),
        selection: Optional[Selection] = None,
    ) -> VisualNode:
        return VisualNode(
            kind,
            node_id,
            self.s(x),
            self.s(y),
            self.s(width),
            self.s(height),
            text,
            style or {},
            children,
            selection,
        )

    def font(self, size_mm: float) -> float:
        return self.s(size_mm)


def _background(p: _Projector, template: CardTemplate) -> VisualNode:
    style: Dict[str, object] = {
        "fill": template.card_bg,
        "radius": p.s(template.card_rounding * RADIUS_UNIT_MM),
        "stroke": template.card_border_color,
        "stroke_width": p.s(template.card_border_width * BORDER_UNIT_MM),
    }
    if template.background_kind == "gradient":
        style["gradient"] = (template.card_bg, template.card_bg_secondary)
        style["gradient_angle"] = 135.0
    elif template.background_kind == "image" and template.card_bg_image:
        style["image"] = template.card_bg_image
    return p.node("rect", "background", 0.0, 0.0, template.width, template.height, style=style)


def _header_band(p: _Projector, template: CardTemplate) -> VisualNode:
    return p.node(
        "rect",
        "header",
        0.0,
        0.0,
        template.width,
        template.header_height,
        style={"fill": template.header_bg},
    )


def _logo(p: _Projector, template: CardTemplate) -> VisualNode:
    size = template.logo_size
    if template.logo_image:
        return p.node(
            "image",
            "logo",
            template.logo_x,
            template.logo_y,
            size,
            size,
            style={"href": template.logo_image, "radius": p.s(1.0)},
            selection=LOGO,
        )
    return p.node(
        "glyph",
        "logo",
        template.logo_x,
        template.logo_y,
        size,
        size,
        text="shield",
        style={"fill": "#ffffff", "ink": template.header_bg, "radius": p.s(1.0)},
        selection=LOGO,
    )


def _header_text(p: _Projector, template: CardTemplate) -> VisualNode:
    return p.node(
        "text",
        "header_text",
        template.header_text_x,
        template.header_text_y,
        template.width,
        template.header_height,
        text=template.header_text,
        style={
            "font_size": p.font(points_to_mm(template.header_text_size)),
            "color": template.header_text_color,
            "weight": HEADER_TEXT_WEIGHT,
            "align": template.header_alignment,
            "valign": "middle",
            "uppercase": True,
            "line_height": 1.0,
            "overflow": "truncate",
        },
        selection=HEADER_TEXT,
    )


def _photo_radius(template: CardTemplate) -> float:
    if template.photo_shape == "CIRCLE":
        return template.photo_size / 2
    if template.photo_shape == "ROUNDED":
        return ROUNDED_PHOTO_RADIUS_MM
    return 0.0


def _photo(p: _Projector, template: CardTemplate, student: Mapping[str, object]) -> VisualNode:
    style: Dict[str, object] = {
        "fill": PLACEHOLDER_FILL,
        "shape": template.photo_shape,
        "radius": p.s(_photo_radius(template)),
        "stroke": template.photo_border_color,
        "stroke_width": p.s(template.photo_border_size * BORDER_UNIT_MM),
    }
    image = normalise_string(student.get("profileImage"))
    if image:
        style["href"] = image
        kind, text = "image", ""
    else:
        style["ink"] = PLACEHOLDER_INK
        kind, text = "glyph", "user"
    return p.node(
        kind,
        "photo",
        template.photo_x,
        template.photo_y,
        template.photo_size,
        template.photo_size,
        text=text,
        style=style,
        selection=PHOTO,
    )


def _field(p: _Projector, field: CardField, student: Mapping[str, object]) -> VisualNode:
    font_mm = points_to_mm(field.font_size)
    is_address = field.key in ADDRESS_KEYS
    line_height = ADDRESS_LINE_HEIGHT if is_address else 1.0
    style: Dict[str, object] = {
        "font_size": p.font(font_mm),
        "color": field.color,
        "weight": FIELD_BOLD_WEIGHT if field.bold else FIELD_REGULAR_WEIGHT,
        "italic": field.italic,
        "align": field.alignment,
        "valign": "top",
        "uppercase": True,
        "line_height": line_height,
        "overflow": "wrap" if is_address else "truncate",
    }
    if is_address:
        style["max_lines"] = ADDRESS_MAX_LINES
    lines = ADDRESS_MAX_LINES if is_address else 1
    return p.node(
        "text",
        f"field:{field.key}",
        field.x,
        field.y,
        field.width,
        font_mm * line_height * lines,
        text=format_field_text(field, student),
        style=style,
        selection=Selection.field(field.key),
    )


def _visible_fields(template: CardTemplate) -> List[CardField]:
    visible = [field for field in template.fields if field.visible]
    # sorted() is stable, so fields without a layer keep insertion order.
    return sorted(visible, key=lambda field: field.layer or 0)


def _qr(p: _Projector, node_id: str, x: float, y: float, size: float, payload: str,
        selection: Optional[Selection]) -> VisualNode:
    return p.node(
        "qr",
        node_id,
        x,
        y,
        size,
        size,
        text=payload,
        style={
            "fill": "#ffffff",
            "ink": "#0f172a",
            "padding": p.s(QR_PADDING_MM),
            "radius": p.s(QR_RADIUS_MM),
            "stroke": QR_BORDER_COLOR,
            "stroke_width": p.s(QR_BORDER_MM),
        },
        selection=selection,
    )


def _qr_payload(student: Mapping[str, object]) -> str:
    return (
        normalise_string(student.get("grNumber"))
        or normalise_string(student.get("id"))
        or normalise_string(student.get("fullName"))
    )


def _signature(p: _Projector, template: CardTemplate) -> VisualNode:
    width = template.sign_width
    height = width * SIGN_HEIGHT_RATIO
    x, y = template.sign_x, template.sign_y
    children: List[VisualNode] = []
    if template.sign_image:
        children.append(
            p.node("image", "signature_image", x, y, width, height, style={"href": template.sign_image})
        )
    children.append(
        p.node(
            "rect",
            "signature_rule",
            x,
            y + height,
            width,
            SIGN_RULE_MM,
            style={"fill": "#0f172a"},
        )
    )
    children.append(
        p.node(
            "text",
            "signature_caption",
            x,
            y + height + SIGN_RULE_MM + 0.4,
            width,
            SIGN_CAPTION_MM,
            text=SIGN_CAPTION,
            style={
                "font_size": p.font(SIGN_CAPTION_MM),
                "color": "#475569",
                "weight": 700,
                "align": "center",
                "valign": "top",
                "uppercase": True,
                "line_height": 1.0,
                "overflow": "truncate",
            },
        )
    )
    return p.node(
        "group",
        "signature",
        x,
        y,
        width,
        height + SIGN_RULE_MM + 0.4 + SIGN_CAPTION_MM,
        children=tuple(children),
        selection=SIGN,
    )


def _security_stripe(p: _Projector, template: CardTemplate) -> VisualNode:
    return p.node(
        "rect",
        "security_stripe",
        0.0,
        template.height - SECURITY_STRIPE_MM,
        template.width,
        SECURITY_STRIPE_MM,
        style={
            "fill": template.header_bg,
            "gradient": (template.header_bg, template.card_bg_secondary),
            "gradient_angle": 90.0,
        },
    )


def _security_label(p: _Projector, template: CardTemplate) -> VisualNode:
    right = template.width - SECURITY_LABEL_MARGIN_MM
    x = right - SECURITY_LABEL_WIDTH_MM
    total = sum(size for _text, size in SECURITY_LABELS) + 0.3
    y = template.height - SECURITY_STRIPE_MM - 0.6 - total
    children: List[VisualNode] = []
    for index, (text, size) in enumerate(SECURITY_LABELS):
        children.append(
            p.node(
                "text",
                f"security_label_{index}",
                x,
                y,
                SECURITY_LABEL_WIDTH_MM,
                size,
                text=text,
                style={
                    "font_size": p.font(size),
                    "color": "#0f172a",
                    "weight": 900 if index == 0 else 700,
                    "align": "right",
                    "valign": "top",
                    "uppercase": True,
                    "line_height": 1.0,
                    "overflow": "truncate",
                    "letter_spacing": 0.2,
                },
            )
        )
        y += size + 0.3
    return p.node(
        "group",
        "security_node",
        x,
        template.height - SECURITY_STRIPE_MM - 0.6 - total,
        SECURITY_LABEL_WIDTH_MM,
        total,
        style={"opacity": SECURITY_LABEL_OPACITY},
        children=tuple(children),
    )


def _render_front(p: _Projector, template: CardTemplate, student: Mapping[str, object]) -> List[VisualNode]:
    layers = [_background(p, template), _header_band(p, template)]
    if template.logo_visible:
        layers.append(_logo(p, template))
    layers.append(_header_text(p, template))
    layers.append(_photo(p, template, student))
    layers.extend(_field(p, field, student) for field in _visible_fields(template))
    if template.show_qr:
        layers.append(
            _qr(p, "qr", template.qr_x, template.qr_y, template.qr_size, _qr_payload(student), QR)
        )
    layers.append(_signature(p, template))
    layers.append(_security_stripe(p, template))
    layers.append(_security_label(p, template))
    return layers


def _render_back(p: _Projector, template: CardTemplate, student: Mapping[str, object]) -> List[VisualNode]:
    layers = [_background(p, template)]
    layers.append(
        p.node(
            "text",
            "watermark",
            0.0,
            0.0,
            template.width,
            template.height,
            text=template.watermark_text,
            style={
                "font_size": p.font(WATERMARK_MM),
                "color": "#0f172a",
                "weight": 900,
                "align": "center",
                "valign": "middle",
                "uppercase": True,
                "line_height": 1.0,
                "opacity": WATERMARK_OPACITY,
                "rotate": WATERMARK_ROTATION,
                "overflow": "visible",
            },
        )
    )
    layers.append(
        p.node(
            "text",
            "backside_text",
            template.backside_x,
            template.backside_y,
            template.backside_width,
            template.height - template.backside_y - BACK_QR_MM - BACK_QR_BOTTOM_MM,
            text=template.backside_content,
            style={
                "font_size": p.font(BACKSIDE_FONT_MM),
                "color": BACKSIDE_COLOR,
                "weight": 700,
                "align": "center",
                "valign": "top",
                "uppercase": True,
                "line_height": BACKSIDE_LINE_HEIGHT,
                "overflow": "wrap",
            },
        )
    )
    qr_x = (template.width - BACK_QR_MM) / 2
    qr_y = template.height - BACK_QR_MM - BACK_QR_BOTTOM_MM
    layers.append(_qr(p, "back_qr", qr_x, qr_y, BACK_QR_MM, _qr_payload(student), None))
    layers.append(
        p.node(
            "text",
            "back_qr_label",
            0.0,
            qr_y + BACK_QR_MM + 1.0,
            template.width,
            BACK_LABEL_MM,
            text=BACK_LABEL,
            style={
                "font_size": p.font(BACK_LABEL_MM),
                "color": "#64748b",
                "weight": 700,
                "align": "center",
                "valign": "top",
                "uppercase": True,
                "line_height": 1.0,
                "overflow": "truncate",
            },
        )
    )
    return layers


def render_card(
    template: CardTemplate,
    student: Mapping[str, object],
    side: Union[Side, str] = Side.FRONT,
    scale: float = 1.0,
) -> VisualNode:
    """Return the visual tree for one side of ``student``'s card."""

    resolved_side = _side(side)
    p = _Projector(scale)
    if resolved_side is Side.BACK:
        layers = _render_back(p, template, student)
    else:
        layers = _render_front(p, template, student)
    return p.node(
        "card",
        f"card:{resolved_side.value.lower()}",
        0.0,
        0.0,
        template.width,
        template.height,
        style={
            "radius": p.s(template.card_rounding * RADIUS_UNIT_MM),
            "side": resolved_side.value,
            "font_family": "Poppins, sans-serif",
        },
        children=tuple(layers),
    )


def iter_nodes(node: VisualNode) -> Iterator[VisualNode]:
    """Depth-first walk in paint order."""

    yield node
    for child in node.children:
        yield from iter_nodes(child)


def find_node(tree: VisualNode, node_id: str) -> Optional[VisualNode]:
    for node in iter_nodes(tree):
        if node.node_id == node_id:
            return node
    return None


def _contains(node: VisualNode, x: float, y: float) -> bool:
    return node.x <= x <= node.x + node.width and node.y <= y <= node.y + node.height


def hit_test(tree: VisualNode, x: float, y: float) -> Optional[Selection]:
    """Return the selection of the topmost clickable node under ``(x, y)``."""

    hit: Optional[Selection] = None
    for node in iter_nodes(tree):
        if node.selection is not None and _contains(node, x, y):
            hit = node.selection
    return hit


__all__ = [
    "Side",
    "VisualNode",
    "render_card",
    "iter_nodes",
    "find_node",
    "hit_test",
]
