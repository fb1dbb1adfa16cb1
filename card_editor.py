"""Editing commands applied to an in-memory card template.

Each command is a small immutable value whose ``apply`` method maps one
template onto the next.  :class:`CardEditor` runs commands against the
current template, tracks the single selected element and keeps undo/redo
history.  Invalid requests (nothing selected, a missing field, an unknown
axis) leave the template untouched instead of raising.
"""
from __future__ import annotations

from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple

from card_template import (
    HEADER_TEXT,
    LOGO,
    ORIENTATIONS,
    PHOTO,
    QR,
    SIGN,
    CardTemplate,
    InvalidTemplateError,
    Selection,
    SelectionKind,
    canonical_dimensions,
    find_field,
    merge_template,
    validate_template,
)
from field_registry import add_field as _registry_add_field


NUDGE_STEP = 1.0
FINE_NUDGE_STEP = 0.1
FINE_RESIZE_RATIO = 0.1
GRID_STEP = 0.5
DEFAULT_HISTORY_LIMIT = 100

_ORIENTATION_ALIASES = {
    "VERTICAL": "VERTICAL",
    "PORTRAIT": "VERTICAL",
    "HORIZONTAL": "HORIZONTAL",
    "LANDSCAPE": "HORIZONTAL",
}

_LOCKED_ATTRIBUTES = frozenset({"id", "width", "height"})


class SizeFloors(NamedTuple):
    """Smallest size each element may be shrunk to (mm, or pt for text)."""

    photo: float = 10.0
    qr: float = 5.0
    sign: float = 5.0
    logo: float = 3.0
    font: float = 2.0


DEFAULT_SIZE_FLOORS = SizeFloors()


_POSITION_ATTRIBUTES: Dict[SelectionKind, Tuple[str, str]] = {
    SelectionKind.PHOTO: ("photo_x", "photo_y"),
    SelectionKind.QR: ("qr_x", "qr_y"),
    SelectionKind.SIGN: ("sign_x", "sign_y"),
    SelectionKind.LOGO: ("logo_x", "logo_y"),
    SelectionKind.HEADER_TEXT: ("header_text_x", "header_text_y"),
}

# attribute, step, floor name
_SIZE_ATTRIBUTES: Dict[SelectionKind, Tuple[str, float, str]] = {
    SelectionKind.PHOTO: ("photo_size", 2.0, "photo"),
    SelectionKind.QR: ("qr_size", 1.0, "qr"),
    SelectionKind.SIGN: ("sign_width", 1.0, "sign"),
    SelectionKind.LOGO: ("logo_size", 1.0, "logo"),
    SelectionKind.HEADER_TEXT: ("header_text_size", 0.5, "font"),
}
FIELD_FONT_STEP = 0.5


def _round_mm(value: float) -> float:
    return round(value, 4)


def _axis_index(axis: str) -> Optional[int]:
    normalized = str(axis).strip().upper()
    if normalized == "X":
        return 0
    if normalized == "Y":
        return 1
    return None


def _valid_direction(direction: int) -> bool:
    return direction in (1, -1)


def normalise_orientation(orientation: str) -> Optional[str]:
    return _ORIENTATION_ALIASES.get(str(orientation).strip().upper())


def _checked(original: CardTemplate, updated: CardTemplate) -> CardTemplate:
    try:
        return validate_template(updated)
    except (InvalidTemplateError, AttributeError):
        return original


class Nudge(NamedTuple):
    selection: Optional[Selection]
    axis: str
    delta: float
    grid: Optional[float] = None

    def _move(self, value: float) -> float:
        moved = value + self.delta
        if self.grid:
            moved = round(moved / self.grid) * self.grid
        return _round_mm(moved)

    def apply(self, template: CardTemplate) -> CardTemplate:
        index = _axis_index(self.axis)
        if self.selection is None or index is None:
            return template

        if self.selection.kind is SelectionKind.FIELD:
            field = find_field(template, self.selection.key or "")
            if field is None:
                return template
            attribute = "x" if index == 0 else "y"
            moved = field._replace(**{attribute: self._move(getattr(field, attribute))})
            return merge_template(
                template,
                fields=[moved if f.key == field.key else f for f in template.fields],
            )

        attribute = _POSITION_ATTRIBUTES[self.selection.kind][index]
        return merge_template(template, **{attribute: self._move(getattr(template, attribute))})


class Resize(NamedTuple):
    selection: Optional[Selection]
    direction: int
    fine: bool = False
    floors: SizeFloors = DEFAULT_SIZE_FLOORS

    def _resized(self, value: float, step: float, floor: float) -> float:
        if self.fine:
            step *= FINE_RESIZE_RATIO
        return max(floor, _round_mm(value + self.direction * step))

    def apply(self, template: CardTemplate) -> CardTemplate:
        if self.selection is None or not _valid_direction(self.direction):
            return template

        if self.selection.kind is SelectionKind.FIELD:
            field = find_field(template, self.selection.key or "")
            if field is None:
                return template
            font_size = self._resized(field.font_size, FIELD_FONT_STEP, self.floors.font)
            resized = field._replace(font_size=font_size)
            return merge_template(
                template,
                fields=[resized if f.key == field.key else f for f in template.fields],
            )

        attribute, step, floor_name = _SIZE_ATTRIBUTES[self.selection.kind]
        floor = getattr(self.floors, floor_name)
        return merge_template(
            template, **{attribute: self._resized(getattr(template, attribute), step, floor)}
        )


class AddField(NamedTuple):
    key: str

    def apply(self, template: CardTemplate) -> CardTemplate:
        updated, _selection = _registry_add_field(template, self.key)
        return updated


class RemoveField(NamedTuple):
    key: str

    def apply(self, template: CardTemplate) -> CardTemplate:
        if find_field(template, self.key) is None:
            return template
        return merge_template(template, fields=[f for f in template.fields if f.key != self.key])


class UpdateField(NamedTuple):
    key: str
    updates: Mapping[str, object]

    def apply(self, template: CardTemplate) -> CardTemplate:
        field = find_field(template, self.key)
        if field is None:
            return template
        # The key identifies the binding and is never renamed in place.
        updates = {
            name: value
            for name, value in self.updates.items()
            if name in field._fields and name != "key"
        }
        if not updates:
            return template
        changed = field._replace(**updates)
        return _checked(
            template,
            merge_template(template, fields=[changed if f.key == self.key else f for f in template.fields]),
        )


class SetOrientation(NamedTuple):
    orientation: str

    def apply(self, template: CardTemplate) -> CardTemplate:
        orientation = normalise_orientation(self.orientation)
        if orientation is None:
            return template
        width, height = canonical_dimensions(orientation)
        return merge_template(template, orientation=orientation, width=width, height=height)


class UpdateTemplate(NamedTuple):
    updates: Mapping[str, object]

    def apply(self, template: CardTemplate) -> CardTemplate:
        updates = {
            name: value
            for name, value in self.updates.items()
            if name in template._fields and name not in _LOCKED_ATTRIBUTES
        }
        orientation = updates.pop("orientation", None)
        updated = template
        if orientation is not None:
            updated = SetOrientation(str(orientation)).apply(updated)
        return _checked(template, merge_template(updated, **updates))


class _HistoryEntry(NamedTuple):
    template: CardTemplate
    selection: Optional[Selection]


class CardEditor:
    """Holds the template being designed and the currently selected element."""

    def __init__(
        self,
        template: CardTemplate,
        *,
        selection: Optional[Selection] = PHOTO,
        floors: SizeFloors = DEFAULT_SIZE_FLOORS,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._template = template
        self._selection = selection
        self.floors = floors
        self.history_limit = history_limit
        self._undo: List[_HistoryEntry] = []
        self._redo: List[_HistoryEntry] = []

    @property
    def template(self) -> CardTemplate:
        return self._template

    @property
    def selection(self) -> Optional[Selection]:
        return self._selection

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def load(self, template: CardTemplate, selection: Optional[Selection] = PHOTO) -> None:
        """Replace the template being edited and forget its history."""

        self._template = template
        self._selection = selection
        self._undo.clear()
        self._redo.clear()

    def select_element(self, selection: Optional[Selection]) -> None:
        self._selection = selection

    def apply(self, command) -> bool:
        """Run ``command`` against the current template; return whether it changed."""

        updated = command.apply(self._template)
        if updated == self._template:
            return False
        self._undo.append(_HistoryEntry(self._template, self._selection))
        if len(self._undo) > self.history_limit:
            del self._undo[0]
        self._redo.clear()
        self._template = updated
        return True

    def nudge(self, axis: str, direction: int, fine: bool = False) -> bool:
        if not _valid_direction(direction):
            return False
        step = FINE_NUDGE_STEP if fine else NUDGE_STEP
        # Fine nudges are never snapped.
        grid = GRID_STEP if self._template.snap_to_grid and not fine else None
        return self.apply(Nudge(self._selection, axis, direction * step, grid))

    def resize(self, direction: int, fine: bool = False) -> bool:
        return self.apply(Resize(self._selection, direction, fine, self.floors))

    def add_field(self, key: str) -> Selection:
        """Add a catalog field and select it.

        Raises :class:`field_registry.DuplicateFieldError` when the key is
        already on the card; the template is left unchanged in that case.
        """

        self.apply(AddField(key))
        self._selection = Selection.field(key)
        return self._selection

    def update_field(self, key: str, **updates: object) -> bool:
        return self.apply(UpdateField(key, updates))

    def remove_field(self, key: str) -> bool:
        changed = self.apply(RemoveField(key))
        if self._selection == Selection.field(key):
            self._selection = None
        return changed

    def set_orientation(self, orientation: str) -> bool:
        return self.apply(SetOrientation(orientation))

    def update(self, **updates: object) -> bool:
        return self.apply(UpdateTemplate(updates))

    def undo(self) -> bool:
        if not self._undo:
            return False
        entry = self._undo.pop()
        self._redo.append(_HistoryEntry(self._template, self._selection))
        self._template, self._selection = entry.template, entry.selection
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        entry = self._redo.pop()
        self._undo.append(_HistoryEntry(self._template, self._selection))
        self._template, self._selection = entry.template, entry.selection
        return True


__all__ = [
    "CardEditor",
    "SizeFloors",
    "DEFAULT_SIZE_FLOORS",
    "Nudge",
    "Resize",
    "AddField",
    "RemoveField",
    "UpdateField",
    "SetOrientation",
    "UpdateTemplate",
    "PHOTO",
    "QR",
    "SIGN",
    "LOGO",
    "HEADER_TEXT",
    "ORIENTATIONS",
]
