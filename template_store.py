"""Persistence boundary for ID card templates.

The designer only ever calls :meth:`TemplateStore.get_templates` and
:meth:`TemplateStore.upsert_template`.  Rows use the snake_case column names
of :class:`card_template.CardTemplate`, with the field list stored as JSON.
Payloads exported by the browser designer (camelCase keys such as
``photoX`` or ``cardBgType``) are accepted as well.
"""
from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from card_template import (
    CardField,
    CardTemplate,
    InvalidTemplateError,
    is_temporary_id,
    validate_template,
)

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path("id_cards.db")

_CAMEL_BOUNDARY_RE = re.compile(r"(?<!^)(?=[A-Z])")

# Browser payload names that do not map onto a column by case conversion alone.
_TEMPLATE_ALIASES = {
    "card_bg_type": "background_kind",
    "logo_in_header": "logo_visible",
    "logo": "logo_image",
    "signature_image": "sign_image",
}


class TemplateStoreError(RuntimeError):
    """Raised when the store cannot read or write templates."""


class TemplateNotFoundError(LookupError):
    """Raised when a template id or name is not in the store."""


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub("_", name).lower()


def _column(name: str) -> str:
    snake = _snake_case(name)
    return _TEMPLATE_ALIASES.get(snake, snake)


def field_to_row(field: CardField) -> Dict[str, object]:
    return dict(field._asdict())


def field_from_row(row: Mapping[str, object]) -> CardField:
    values = {}
    for name, value in row.items():
        column = _snake_case(str(name))
        if column in CardField._fields:
            values[column] = value
    if "key" not in values:
        raise InvalidTemplateError(f"Field entry without a key: {dict(row)!r}")
    return CardField(**values)


def template_to_row(template: CardTemplate) -> Dict[str, object]:
    """Return the upsert payload for ``template``."""

    row = dict(template._asdict())
    row["fields"] = [field_to_row(field) for field in template.fields]
    return row


def template_from_row(row: Mapping[str, object]) -> CardTemplate:
    """Rebuild and validate a template from a stored row or exported payload."""

    values: Dict[str, object] = {}
    for name, value in row.items():
        column = _column(str(name))
        if column in CardTemplate._fields:
            values[column] = value

    fields = values.get("fields") or []
    if isinstance(fields, str):
        fields = json.loads(fields)
    values["fields"] = tuple(field_from_row(entry) for entry in fields)  # type: ignore[union-attr]

    if values.get("id") is None:
        values["id"] = ""
    return validate_template(CardTemplate(**values))


class TemplateStore:
    """Interface of the template persistence collaborator."""

    def get_templates(self) -> List[CardTemplate]:
        raise NotImplementedError

    def upsert_template(self, template: CardTemplate) -> CardTemplate:
        raise NotImplementedError

    def get_template(self, id_or_name: str) -> CardTemplate:
        for template in self.get_templates():
            if template.id == id_or_name or template.name == id_or_name:
                return template
        raise TemplateNotFoundError(f"No ID card template named {id_or_name!r}")

    @staticmethod
    def _assign_id(template: CardTemplate) -> CardTemplate:
        if is_temporary_id(template.id):
            return template._replace(id=str(uuid.uuid4()))
        return template


class InMemoryTemplateStore(TemplateStore):
    """Keeps serialised rows in a dict; used by tests and dry runs."""

    def __init__(self, templates: Optional[List[CardTemplate]] = None) -> None:
        self._rows: Dict[str, Dict[str, object]] = {}
        for template in templates or []:
            self.upsert_template(template)

    def get_templates(self) -> List[CardTemplate]:
        return [template_from_row(json.loads(json.dumps(row))) for row in self._rows.values()]

    def upsert_template(self, template: CardTemplate) -> CardTemplate:
        try:
            stored = self._assign_id(validate_template(template))
        except InvalidTemplateError as exc:
            raise TemplateStoreError(f"Refusing to store invalid template: {exc}") from exc
        self._rows[stored.id] = template_to_row(stored)
        logger.debug("Stored template %s (%s)", stored.name, stored.id)
        return stored


class SqliteTemplateStore(TemplateStore):
    """Templates persisted in a local sqlite database."""

    def __init__(self, db_path: Union[str, Path] = DEFAULT_STORE_PATH) -> None:
        self.db_path = Path(db_path)
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def init_db(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._connect()
            try:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS id_card_templates (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as exc:
            raise TemplateStoreError(f"Cannot open template store {self.db_path}: {exc}") from exc

    def get_templates(self) -> List[CardTemplate]:
        try:
            conn = self._connect()
            try:
                rows = conn.execute(
                    "SELECT payload FROM id_card_templates ORDER BY created_at, rowid"
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise TemplateStoreError(f"Cannot read templates: {exc}") from exc

        templates = []
        for (payload,) in rows:
            try:
                templates.append(template_from_row(json.loads(payload)))
            except (InvalidTemplateError, ValueError, TypeError) as exc:
                logger.warning("Skipping unreadable template row: %s", exc)
        return templates

    def upsert_template(self, template: CardTemplate) -> CardTemplate:
        try:
            stored = self._assign_id(validate_template(template))
        except InvalidTemplateError as exc:
            raise TemplateStoreError(f"Refusing to store invalid template: {exc}") from exc

        now = datetime.now().isoformat(timespec="microseconds")
        payload = json.dumps(template_to_row(stored))
        try:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    INSERT INTO id_card_templates (id, name, payload, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        name = excluded.name,
                        payload = excluded.payload,
                        updated_at = excluded.updated_at
                    """,
                    (stored.id, stored.name, payload, now, now),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise TemplateStoreError(f"Cannot save template {stored.name!r}: {exc}") from exc

        logger.info("Saved ID card template %s (%s)", stored.name, stored.id)
        return stored
