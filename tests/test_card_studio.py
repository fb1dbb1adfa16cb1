import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from audit_log import Actor, InMemoryAuditLog
from card_renderer import Side
from card_studio import DesignerSession
from card_template import PHOTO, QR, default_template, find_field
from card_units import MAX_ZOOM, MIN_ZOOM
from template_store import InMemoryTemplateStore, TemplateStoreError


class FailingStore(InMemoryTemplateStore):
    def upsert_template(self, template):
        raise TemplateStoreError("network unreachable")


def _session(store=None, students=None):
    return DesignerSession(
        store or InMemoryTemplateStore(),
        InMemoryAuditLog(),
        Actor("Fatima", "Admin"),
        students,
        clock=lambda: 1760000000.0,
    )


class LoadTests(unittest.TestCase):
    def test_empty_store_starts_from_default_with_temporary_id(self):
        session = _session()
        template = session.load()
        self.assertEqual(template.id, "temp-1760000000000")
        self.assertEqual(template.fields, default_template().fields)

    def test_first_stored_template_is_activated(self):
        store = InMemoryTemplateStore()
        first = store.upsert_template(default_template()._replace(name="Junior"))
        store.upsert_template(default_template()._replace(name="Senior"))
        session = _session(store)
        self.assertEqual(session.load(), first)
        self.assertEqual(len(session.templates), 2)
        self.assertTrue(session.select_template("Senior"))
        self.assertEqual(session.template.name, "Senior")


class SaveTests(unittest.TestCase):
    def test_save_assigns_id_and_audits_once(self):
        session = _session()
        session.load()
        session.editor.update(name="Senior Wing")
        notice = session.save()

        self.assertEqual(notice.level, "info")
        self.assertFalse(session.template.id.startswith("temp-"))
        self.assertEqual(session.templates, [session.template])
        entries = session.audit.entries()
        self.assertEqual(len(entries), 1)
        self.assertEqual(
            (entries[0].user, entries[0].action, entries[0].module, entries[0].details),
            ("Fatima", "UPDATE", "Identity", "ID Studio Save: Senior Wing"),
        )

    def test_save_without_name_is_skipped(self):
        session = _session()
        session.load()
        session.editor.update(name="   ")
        notice = session.save()
        self.assertEqual(notice.level, "warning")
        self.assertEqual(session.store.get_templates(), [])
        self.assertEqual(session.audit.entries(), [])

    def test_failed_save_keeps_edits(self):
        session = _session(FailingStore())
        session.load()
        session.editor.select_element(QR)
        session.editor.nudge("x", 1)
        edited = session.template

        notice = session.save()
        self.assertEqual(notice.level, "error")
        self.assertIn("network unreachable", notice.message)
        self.assertEqual(session.template, edited)
        self.assertTrue(session.editor.can_undo)
        self.assertEqual(session.audit.entries(), [])

    def test_invalid_template_save_is_an_error_notice(self):
        session = _session()
        invalid = session.load()._replace(header_alignment="justify")
        session.editor.load(invalid)

        notice = session.save()
        self.assertEqual(notice.level, "error")
        self.assertIn("justify", notice.message)
        self.assertEqual(session.template, invalid)
        self.assertEqual(session.store.get_templates(), [])
        self.assertEqual(session.audit.entries(), [])


class InteractionTests(unittest.TestCase):
    def test_duplicate_field_is_a_notice(self):
        session = _session()
        session.load()
        self.assertEqual(session.add_field("fatherMobile").level, "info")
        before = session.template
        notice = session.add_field("fatherMobile")
        self.assertEqual(notice.level, "warning")
        self.assertEqual(session.template, before)
        self.assertEqual(session.add_field("shoeSize").level, "warning")
        self.assertIsNotNone(find_field(session.template, "fatherMobile"))

    def test_click_selects_element_at_current_zoom(self):
        session = _session()
        template = session.load()
        session.editor.select_element(None)
        x = (template.photo_x + 1) * session.scale
        y = (template.photo_y + 1) * session.scale
        self.assertEqual(session.click(x, y), PHOTO)
        self.assertEqual(session.editor.selection, PHOTO)

    def test_preview_uses_first_roster_student(self):
        session = _session(students=[{"fullName": "Ayaan Shaikh", "grNumber": "GR-7"}])
        session.load()
        tree = session.preview()
        names = [node.text for node in tree.children if node.node_id == "field:fullName"]
        self.assertEqual(names, ["Ayaan Shaikh"])

    def test_zoom_is_bounded(self):
        session = _session()
        for _ in range(100):
            session.zoom_in()
        self.assertEqual(session.zoom, MAX_ZOOM)
        for _ in range(100):
            session.zoom_out()
        self.assertEqual(session.zoom, MIN_ZOOM)

    def test_flip_side(self):
        session = _session()
        session.load()
        self.assertIs(session.flip_side(), Side.BACK)
        self.assertEqual(session.preview().node_id, "card:back")
        self.assertIs(session.flip_side(), Side.FRONT)


if __name__ == "__main__":
    unittest.main()
