"""Serialisable ID card template model laid out on a CR80 card."""
from __future__ import annotations

import math
from enum import Enum
from typing import Dict, Iterable, NamedTuple, Optional, Tuple

from card_units import CR80_HEIGHT, CR80_WIDTH


APP_NAME = "Deen-E-islam School"

ORIENTATIONS = ("VERTICAL", "HORIZONTAL")
BACKGROUND_KINDS = ("solid", "gradient", "image")
PHOTO_SHAPES = ("SQUARE", "ROUNDED", "CIRCLE")
ALIGNMENTS = ("left", "center", "right")

TEMPORARY_ID_PREFIX = "temp-"


class InvalidTemplateError(ValueError):
    """Raised when a template payload does not describe a valid card layout."""


class SelectionKind(Enum):
    PHOTO = "PHOTO"
    QR = "QR"
    SIGN = "SIGN"
    LOGO = "LOGO"
    HEADER_TEXT = "HEADER_TEXT"
    FIELD = "FIELD"


class Selection(NamedTuple):
    """The element the editor is positioning; ``key`` is only set for fields."""

    kind: SelectionKind
    key: Optional[str] = None

    @classmethod
    def field(cls, key: str) -> "Selection":
        return cls(SelectionKind.FIELD, key)

    def __str__(self) -> str:
        if self.kind is SelectionKind.FIELD:
            return f"FIELD_{self.key}"
        return self.kind.value


PHOTO = Selection(SelectionKind.PHOTO)
QR = Selection(SelectionKind.QR)
SIGN = Selection(SelectionKind.SIGN)
LOGO = Selection(SelectionKind.LOGO)
HEADER_TEXT = Selection(SelectionKind.HEADER_TEXT)


class CardField(NamedTuple):
    key: str
    label: str = ""
    visible: bool = True
    font_size: float = 7.0
    bold: bool = False
    italic: bool = False
    color: str = "#0f172a"
    alignment: str = "left"
    x: float = 5.0
    y: float = 60.0
    width: float = 44.0
    layer: Optional[int] = None


class CardTemplate(NamedTuple):
    id: str = ""
    name: str = "Front-Master v2"
    orientation: str = "VERTICAL"
    width: float = CR80_HEIGHT
    height: float = CR80_WIDTH
    card_rounding: float = 8.0
    card_border_width: float = 1.0
    card_border_color: str = "#e2e8f0"
    background_kind: str = "solid"
    card_bg: str = "#ffffff"
    card_bg_secondary: str = "#f8fafc"
    card_bg_image: Optional[str] = None
    header_bg: str = "#4f46e5"
    header_height: float = 18.0
    header_text: str = APP_NAME
    header_text_size: float = 9.0
    header_text_color: str = "#ffffff"
    header_alignment: str = "center"
    header_text_x: float = 0.0
    header_text_y: float = 0.0
    logo_visible: bool = True
    logo_image: Optional[str] = None
    logo_x: float = 3.0
    logo_y: float = 6.25
    logo_size: float = 5.5
    photo_x: float = 14.5
    photo_y: float = 22.0
    photo_size: float = 25.0
    photo_shape: str = "ROUNDED"
    photo_border_size: float = 1.5
    photo_border_color: str = "#ffffff"
    fields: Tuple[CardField, ...] = ()
    show_qr: bool = True
    qr_x: float = 4.0
    qr_y: float = 70.0
    qr_size: float = 10.0
    sign_image: Optional[str] = None
    sign_x: float = 30.0
    sign_y: float = 74.0
    sign_width: float = 16.0
    show_back_side: bool = False
    backside_content: str = "If found, please return to school office."
    backside_x: float = 5.0
    backside_y: float = 10.0
    backside_width: float = 44.0
    watermark_text: str = "VERIFIED"
    snap_to_grid: bool = False


DEFAULT_FIELDS: Tuple[CardField, ...] = (
    CardField("fullName", "", True, 10.0, True, False, "#0f172a", "center", 2.0, 49.0, 50.0),
    CardField("class", "Class", True, 7.0, True, False, "#4f46e5", "left", 5.0, 55.0, 25.0),
    CardField("grNumber", "GR No", True, 7.0, True, False, "#4f46e5", "right", 25.0, 55.0, 23.0),
    CardField("fatherName", "Father Name", True, 6.0, True, False, "#64748b", "center", 2.0, 61.0, 50.0),
)


def canonical_dimensions(orientation: str) -> Tuple[float, float]:
    """Return the ``(width, height)`` CR80 pair for ``orientation``."""

    if orientation == "HORIZONTAL":
        return CR80_WIDTH, CR80_HEIGHT
    if orientation == "VERTICAL":
        return CR80_HEIGHT, CR80_WIDTH
    raise InvalidTemplateError(f"Unknown orientation: {orientation!r}")


def default_template(template_id: str = "") -> CardTemplate:
    return CardTemplate(id=template_id, fields=DEFAULT_FIELDS)


def is_temporary_id(template_id: Optional[str]) -> bool:
    return not template_id or str(template_id).startswith(TEMPORARY_ID_PREFIX)


def merge_template(template: CardTemplate, **updates: object) -> CardTemplate:
    """Return a copy of ``template`` with ``updates`` applied.

    ``fields`` may be given as any iterable and is stored as a tuple so the
    result stays hashable and shares the untouched entries.
    """

    if not updates:
        return template
    if "fields" in updates:
        updates["fields"] = tuple(updates["fields"])  # type: ignore[arg-type]
    return template._replace(**updates)


def find_field(template: CardTemplate, key: str) -> Optional[CardField]:
    for field in template.fields:
        if field.key == key:
            return field
    return None


def field_keys(template: CardTemplate) -> Tuple[str, ...]:
    return tuple(field.key for field in template.fields)


def _check_choice(name: str, value: object, choices: Iterable[str]) -> None:
    if value not in choices:
        raise InvalidTemplateError(f"Invalid {name}: {value!r}")


def _check_number(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidTemplateError(f"{name} must be a number, got {value!r}")
    if isinstance(value, float) and math.isnan(value):
        raise InvalidTemplateError(f"{name} must not be NaN")


_NUMERIC_FIELD_ATTRIBUTES = ("font_size", "x", "y", "width")
_NUMERIC_TEMPLATE_ATTRIBUTES = tuple(
    name
    for name, default in CardTemplate._field_defaults.items()
    if isinstance(default, float)
)


def validate_template(template: CardTemplate) -> CardTemplate:
    """Check the invariants a stored or imported template must satisfy."""

    _check_choice("orientation", template.orientation, ORIENTATIONS)
    _check_choice("background kind", template.background_kind, BACKGROUND_KINDS)
    _check_choice("photo shape", template.photo_shape, PHOTO_SHAPES)
    _check_choice("header alignment", template.header_alignment, ALIGNMENTS)

    for name in _NUMERIC_TEMPLATE_ATTRIBUTES:
        _check_number(name, getattr(template, name))

    expected = canonical_dimensions(template.orientation)
    actual = (template.width, template.height)
    if not all(math.isclose(a, b, abs_tol=1e-6) for a, b in zip(actual, expected)):
        raise InvalidTemplateError(
            f"{template.orientation} cards must be {expected[0]}x{expected[1]}mm, got {actual[0]}x{actual[1]}mm"
        )

    seen: Dict[str, CardField] = {}
    for field in template.fields:
        if field.key in seen:
            raise InvalidTemplateError(f"Duplicate field key: {field.key}")
        seen[field.key] = field
        _check_choice("field alignment", field.alignment, ALIGNMENTS)
        for name in _NUMERIC_FIELD_ATTRIBUTES:
            _check_number(f"{field.key}.{name}", getattr(field, name))

    return template
