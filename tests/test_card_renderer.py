import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from card_renderer import Side, find_node, hit_test, iter_nodes, render_card
from card_template import HEADER_TEXT, PHOTO, QR, Selection, default_template, merge_template
from card_units import points_to_mm
from field_registry import SAMPLE_STUDENT


class FrontRenderTests(unittest.TestCase):
    def test_paint_order(self):
        tree = render_card(default_template(), SAMPLE_STUDENT)
        order = [child.node_id for child in tree.children]
        self.assertEqual(
            order,
            [
                "background",
                "header",
                "logo",
                "header_text",
                "photo",
                "field:fullName",
                "field:class",
                "field:grNumber",
                "field:fatherName",
                "qr",
                "signature",
                "security_stripe",
                "security_node",
            ],
        )
        self.assertEqual(tree.node_id, "card:front")

    def test_optional_elements_are_omitted(self):
        template = default_template()._replace(logo_visible=False, show_qr=False)
        tree = render_card(template, SAMPLE_STUDENT)
        self.assertIsNone(find_node(tree, "logo"))
        self.assertIsNone(find_node(tree, "qr"))

    def test_hidden_fields_are_skipped(self):
        template = default_template()
        fields = [field._replace(visible=False) if field.key == "class" else field for field in template.fields]
        tree = render_card(merge_template(template, fields=fields), SAMPLE_STUDENT)
        self.assertIsNone(find_node(tree, "field:class"))
        self.assertIsNotNone(find_node(tree, "field:grNumber"))

    def test_field_text_uses_display_values(self):
        tree = render_card(default_template(), SAMPLE_STUDENT)
        self.assertEqual(find_node(tree, "field:class").text, "Class: 10th-A")
        self.assertEqual(find_node(tree, "field:fullName").text, "Star Student")

        blank = render_card(default_template(), {})
        self.assertEqual(find_node(blank, "field:grNumber").text, "GR No: N/A")

    def test_photo_placeholder_without_image(self):
        tree = render_card(default_template(), {"fullName": "Zara"})
        photo = find_node(tree, "photo")
        self.assertEqual(photo.kind, "glyph")
        self.assertEqual(photo.selection, PHOTO)

    def test_photo_image_when_student_has_one(self):
        tree = render_card(default_template(), {"profileImage": "data:image/png;base64,AAAA"})
        photo = find_node(tree, "photo")
        self.assertEqual(photo.kind, "image")
        self.assertEqual(photo.style["href"], "data:image/png;base64,AAAA")

    def test_qr_payload_prefers_gr_number(self):
        tree = render_card(default_template(), SAMPLE_STUDENT)
        self.assertEqual(find_node(tree, "qr").text, "GR-1001")


class ScaleTests(unittest.TestCase):
    def test_geometry_and_fonts_scale_uniformly(self):
        template = default_template()
        base = render_card(template, SAMPLE_STUDENT, scale=1.0)
        zoomed = render_card(template, SAMPLE_STUDENT, scale=4.0)

        self.assertAlmostEqual(zoomed.width, template.width * 4)
        for node_id in ("photo", "field:fullName", "qr", "header_text"):
            small, large = find_node(base, node_id), find_node(zoomed, node_id)
            self.assertAlmostEqual(large.x, small.x * 4)
            self.assertAlmostEqual(large.y, small.y * 4)
            self.assertAlmostEqual(large.width, small.width * 4)

        name = find_node(zoomed, "field:fullName")
        self.assertAlmostEqual(name.style["font_size"], points_to_mm(10.0) * 4)

    def test_elements_sit_at_their_mm_positions(self):
        template = default_template()
        tree = render_card(template, SAMPLE_STUDENT, scale=2.0)
        photo = find_node(tree, "photo")
        self.assertEqual((photo.x, photo.y), (template.photo_x * 2, template.photo_y * 2))


class BackRenderTests(unittest.TestCase):
    def test_back_side_layers(self):
        template = default_template()._replace(show_back_side=True, watermark_text="RESTRICTED")
        tree = render_card(template, SAMPLE_STUDENT, Side.BACK)
        self.assertEqual(tree.node_id, "card:back")
        self.assertEqual(
            [child.node_id for child in tree.children],
            ["background", "watermark", "backside_text", "back_qr", "back_qr_label"],
        )
        self.assertEqual(find_node(tree, "watermark").text, "RESTRICTED")
        self.assertEqual(find_node(tree, "backside_text").text, template.backside_content)

    def test_side_accepts_strings(self):
        tree = render_card(default_template(), SAMPLE_STUDENT, "back")
        self.assertEqual(tree.style["side"], "BACK")


class HitTestTests(unittest.TestCase):
    def test_hit_test_returns_element_under_point(self):
        template = default_template()
        scale = 3.0
        tree = render_card(template, SAMPLE_STUDENT, scale=scale)
        photo_centre = (
            (template.photo_x + template.photo_size / 2) * scale,
            (template.photo_y + template.photo_size / 2) * scale,
        )
        self.assertEqual(hit_test(tree, *photo_centre), PHOTO)
        qr_centre = ((template.qr_x + 1) * scale, (template.qr_y + 1) * scale)
        self.assertEqual(hit_test(tree, *qr_centre), QR)

    def test_topmost_node_wins(self):
        template = default_template()
        tree = render_card(template, SAMPLE_STUDENT)
        # Header text spans the whole header band, logo is painted first.
        self.assertEqual(hit_test(tree, template.logo_x + 1, template.logo_y + 1), HEADER_TEXT)

    def test_field_hit(self):
        template = default_template()
        tree = render_card(template, SAMPLE_STUDENT)
        self.assertEqual(hit_test(tree, 30.0, 62.0), Selection.field("fatherName"))

    def test_miss_returns_none(self):
        tree = render_card(default_template(), SAMPLE_STUDENT)
        self.assertIsNone(hit_test(tree, -5.0, -5.0))

    def test_iter_nodes_includes_nested_children(self):
        tree = render_card(default_template(), SAMPLE_STUDENT)
        ids = [node.node_id for node in iter_nodes(tree)]
        self.assertEqual(ids[0], "card:front")
        self.assertIn("signature", ids)
        self.assertGreater(len(ids), len(tree.children) + 1)


if __name__ == "__main__":
    unittest.main()
