"""Designer session: editor, preview, template store and audit wired together."""
from __future__ import annotations

import logging
import time
from typing import Callable, List, Mapping, NamedTuple, Optional, Sequence, Union

from audit_log import Actor, AuditLog
from card_editor import DEFAULT_SIZE_FLOORS, CardEditor, SizeFloors
from card_renderer import Side, VisualNode, hit_test, render_card
from card_template import TEMPORARY_ID_PREFIX, CardTemplate, Selection, default_template
from card_units import DEFAULT_ZOOM, clamp_zoom, zoom_percent, zoom_to_scale
from field_registry import SAMPLE_STUDENT, DuplicateFieldError, UnknownFieldError
from template_store import TemplateStore, TemplateStoreError

logger = logging.getLogger(__name__)

ZOOM_STEP = 1
AUDIT_MODULE = "Identity"


class Notice(NamedTuple):
    level: str  # "info", "warning" or "error"
    message: str


class DesignerSession:
    """One user's designer page: the active template plus preview state."""

    def __init__(
        self,
        store: TemplateStore,
        audit: AuditLog,
        actor: Union[Actor, str],
        students: Optional[Sequence[Mapping[str, object]]] = None,
        *,
        floors: SizeFloors = DEFAULT_SIZE_FLOORS,
        zoom: float = DEFAULT_ZOOM,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.audit = audit
        self.actor = actor
        self.students = list(students or [])
        self.zoom = clamp_zoom(zoom)
        self.side = Side.FRONT
        self.templates: List[CardTemplate] = []
        self._clock = clock
        self.editor = CardEditor(self._fresh_template(), floors=floors)

    def _fresh_template(self) -> CardTemplate:
        return default_template(f"{TEMPORARY_ID_PREFIX}{int(self._clock() * 1000)}")

    @property
    def template(self) -> CardTemplate:
        return self.editor.template

    @property
    def scale(self) -> float:
        return zoom_to_scale(self.zoom)

    @property
    def zoom_label(self) -> str:
        return f"{zoom_percent(self.zoom)}%"

    @property
    def preview_student(self) -> Mapping[str, object]:
        return self.students[0] if self.students else SAMPLE_STUDENT

    def load(self) -> CardTemplate:
        """Activate the first stored template, or a fresh default one."""

        try:
            self.templates = self.store.get_templates()
        except TemplateStoreError as exc:
            logger.warning("Could not load ID card templates: %s", exc)
            self.templates = []

        template = self.templates[0] if self.templates else self._fresh_template()
        self.editor.load(template)
        self.side = Side.FRONT
        return template

    def select_template(self, id_or_name: str) -> bool:
        for template in self.templates:
            if template.id == id_or_name or template.name == id_or_name:
                self.editor.load(template)
                return True
        return False

    def preview(self, side: Optional[Side] = None) -> VisualNode:
        return render_card(self.template, self.preview_student, side or self.side, self.scale)

    def click(self, x: float, y: float) -> Optional[Selection]:
        """Select whatever element sits under the preview point ``(x, y)``."""

        selection = hit_test(self.preview(), x, y)
        self.editor.select_element(selection)
        return selection

    def zoom_in(self) -> float:
        self.zoom = clamp_zoom(self.zoom + ZOOM_STEP)
        return self.zoom

    def zoom_out(self) -> float:
        self.zoom = clamp_zoom(self.zoom - ZOOM_STEP)
        return self.zoom

    def flip_side(self) -> Side:
        self.side = Side.BACK if self.side is Side.FRONT else Side.FRONT
        return self.side

    def add_field(self, key: str) -> Notice:
        try:
            self.editor.add_field(key)
        except DuplicateFieldError:
            return Notice("warning", f"Field '{key}' is already on the card")
        except UnknownFieldError:
            return Notice("warning", f"Unknown field '{key}'")
        return Notice("info", f"Added field '{key}'")

    def save(self) -> Notice:
        template = self.editor.template
        if not template.name.strip():
            return Notice("warning", "Template name is required")

        try:
            saved = self.store.upsert_template(template)
        except TemplateStoreError as exc:
            logger.error("Saving template %s failed: %s", template.name, exc)
            return Notice("error", f"Save failed: {exc}")

        try:
            self.audit.record(self.actor, "UPDATE", AUDIT_MODULE, f"ID Studio Save: {saved.name}")
        except OSError as exc:
            logger.warning("Audit log unavailable: %s", exc)

        try:
            self.templates = self.store.get_templates()
        except TemplateStoreError as exc:
            logger.warning("Could not reload ID card templates: %s", exc)
        self.editor.load(saved, self.editor.selection)
        return Notice("info", f"Saved {saved.name}")
