import json
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from card_template import CardField, InvalidTemplateError, default_template, merge_template
from template_store import (
    InMemoryTemplateStore,
    SqliteTemplateStore,
    TemplateNotFoundError,
    TemplateStoreError,
    template_from_row,
    template_to_row,
)

LOGO = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="


def _full_template(template_id="temp-1760000000000"):
    """A layout using every element: logo, header, photo, fields, QR, signature and back side."""

    return merge_template(
        default_template(template_id),
        name="Senior Wing 2026",
        orientation="HORIZONTAL",
        width=85.60,
        height=53.98,
        background_kind="gradient",
        logo_visible=True,
        logo_image=LOGO,
        header_text="Sunrise Public School",
        photo_shape="CIRCLE",
        fields=[
            CardField("fullName", "", True, 10.0, True, False, "#111111", "center", 2.0, 30.0, 50.0),
            CardField("fatherMobile", "Contact", True, 7.0, False, True, "#4f46e5", "right", 5.0, 40.0, 44.0, 2),
            CardField("residenceAddress", "Address", False, 6.5, False, False, "#64748b", "left", 5.0, 45.0, 44.0),
        ],
        show_qr=True,
        qr_x=70.0,
        sign_image=LOGO,
        show_back_side=True,
        backside_content="Property of Sunrise Public School.\nIf found, call 022-1234567.",
        watermark_text="RESTRICTED",
    )


class RowMappingTests(unittest.TestCase):
    def test_row_is_json_serialisable(self):
        row = template_to_row(_full_template())
        self.assertEqual(row["name"], "Senior Wing 2026")
        self.assertIsInstance(row["fields"], list)
        self.assertEqual(row["fields"][1]["key"], "fatherMobile")
        json.dumps(row)

    def test_row_round_trip(self):
        template = _full_template("2f0c6b8e-6a4b-4d55-9d39-2f6f3b4b8a11")
        row = json.loads(json.dumps(template_to_row(template)))
        self.assertEqual(template_from_row(row), template)

    def test_browser_payload_keys_are_accepted(self):
        row = {
            "id": "abc",
            "name": "Imported",
            "orientation": "VERTICAL",
            "width": 53.98,
            "height": 85.6,
            "cardBgType": "gradient",
            "logoInHeader": False,
            "photoX": 12,
            "showBackSide": True,
            "fields": [{"key": "grNumber", "label": "GR", "fontSize": 8, "visible": True}],
            "createdAt": "2026-01-01",
        }
        template = template_from_row(row)
        self.assertEqual(template.background_kind, "gradient")
        self.assertFalse(template.logo_visible)
        self.assertEqual(template.photo_x, 12)
        self.assertTrue(template.show_back_side)
        self.assertEqual(template.fields, (CardField("grNumber", "GR", True, 8),))

    def test_invalid_rows_are_rejected(self):
        row = template_to_row(default_template("abc"))
        row["orientation"] = "DIAGONAL"
        with self.assertRaises(InvalidTemplateError):
            template_from_row(row)
        with self.assertRaises(InvalidTemplateError):
            template_from_row({"fields": [{"label": "no key"}]})


class InMemoryStoreTests(unittest.TestCase):
    def test_first_insert_assigns_id(self):
        store = InMemoryTemplateStore()
        saved = store.upsert_template(_full_template())
        self.assertFalse(saved.id.startswith("temp-"))
        self.assertTrue(saved.id)

    def test_round_trip_through_get_templates(self):
        store = InMemoryTemplateStore()
        saved = store.upsert_template(_full_template())
        self.assertEqual(store.get_templates(), [saved])

    def test_upsert_updates_existing(self):
        store = InMemoryTemplateStore()
        saved = store.upsert_template(_full_template())
        store.upsert_template(saved._replace(name="Renamed"))
        templates = store.get_templates()
        self.assertEqual(len(templates), 1)
        self.assertEqual(templates[0].name, "Renamed")

    def test_invalid_template_raises_store_error(self):
        store = InMemoryTemplateStore()
        with self.assertRaises(TemplateStoreError):
            store.upsert_template(default_template()._replace(photo_shape="HEXAGON"))
        self.assertEqual(store.get_templates(), [])

    def test_get_template_by_name(self):
        store = InMemoryTemplateStore([default_template()])
        self.assertEqual(store.get_template("Front-Master v2").name, "Front-Master v2")
        with self.assertRaises(TemplateNotFoundError):
            store.get_template("Missing")


class SqliteStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmpdir.name) / "store" / "templates.db"

    def tearDown(self):
        self._tmpdir.cleanup()

    def test_round_trip_with_every_element(self):
        store = SqliteTemplateStore(self.db_path)
        saved = store.upsert_template(_full_template())
        reopened = SqliteTemplateStore(self.db_path)
        self.assertEqual(reopened.get_templates(), [saved])

    def test_templates_keep_insertion_order(self):
        store = SqliteTemplateStore(self.db_path)
        first = store.upsert_template(default_template()._replace(name="First"))
        second = store.upsert_template(default_template()._replace(name="Second"))
        store.upsert_template(first._replace(header_text="Updated"))
        self.assertEqual([t.name for t in store.get_templates()], ["First", "Second"])
        self.assertEqual(store.get_template(second.id).name, "Second")

    def test_invalid_template_raises_store_error(self):
        store = SqliteTemplateStore(self.db_path)
        with self.assertRaises(TemplateStoreError):
            store.upsert_template(default_template()._replace(width=10.0))


if __name__ == "__main__":
    unittest.main()
