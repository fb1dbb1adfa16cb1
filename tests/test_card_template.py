import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from card_template import (
    CardField,
    CardTemplate,
    InvalidTemplateError,
    Selection,
    SelectionKind,
    canonical_dimensions,
    default_template,
    field_keys,
    find_field,
    is_temporary_id,
    merge_template,
    validate_template,
)
from card_units import CR80_HEIGHT, CR80_WIDTH


class DefaultTemplateTests(unittest.TestCase):
    def test_default_is_vertical_cr80(self):
        template = default_template()
        self.assertEqual(template.orientation, "VERTICAL")
        self.assertEqual((template.width, template.height), (CR80_HEIGHT, CR80_WIDTH))

    def test_default_fields(self):
        template = default_template()
        self.assertEqual(field_keys(template), ("fullName", "class", "grNumber", "fatherName"))
        self.assertEqual(template.photo_size, 25.0)
        validate_template(template)

    def test_temporary_ids(self):
        self.assertTrue(is_temporary_id(""))
        self.assertTrue(is_temporary_id(None))
        self.assertTrue(is_temporary_id("temp-1700000000000"))
        self.assertFalse(is_temporary_id("2b4c1c1e-0000-4000-8000-000000000000"))


class CanonicalDimensionTests(unittest.TestCase):
    def test_pairs_are_swapped_between_orientations(self):
        self.assertEqual(canonical_dimensions("HORIZONTAL"), (85.60, 53.98))
        self.assertEqual(canonical_dimensions("VERTICAL"), (53.98, 85.60))

    def test_unknown_orientation(self):
        with self.assertRaises(InvalidTemplateError):
            canonical_dimensions("DIAGONAL")


class MergeTemplateTests(unittest.TestCase):
    def test_merge_returns_new_template(self):
        template = default_template()
        merged = merge_template(template, header_text="Sunrise Public School")
        self.assertEqual(merged.header_text, "Sunrise Public School")
        self.assertNotEqual(template.header_text, merged.header_text)

    def test_fields_are_stored_as_tuple(self):
        template = merge_template(default_template(), fields=[CardField("email")])
        self.assertIsInstance(template.fields, tuple)
        self.assertEqual(find_field(template, "email"), CardField("email"))
        self.assertIsNone(find_field(template, "fullName"))


class ValidateTemplateTests(unittest.TestCase):
    def test_rejects_non_canonical_dimensions(self):
        template = default_template()._replace(width=60.0)
        with self.assertRaises(InvalidTemplateError):
            validate_template(template)

    def test_rejects_duplicate_field_keys(self):
        template = CardTemplate(fields=(CardField("email"), CardField("email")))
        with self.assertRaises(InvalidTemplateError):
            validate_template(template)

    def test_rejects_unknown_choices(self):
        with self.assertRaises(InvalidTemplateError):
            validate_template(default_template()._replace(photo_shape="HEXAGON"))
        with self.assertRaises(InvalidTemplateError):
            validate_template(CardTemplate(fields=(CardField("email", alignment="justify"),)))

    def test_rejects_non_numeric_geometry(self):
        with self.assertRaises(InvalidTemplateError):
            validate_template(default_template()._replace(photo_x="12"))


class SelectionTests(unittest.TestCase):
    def test_field_selection_carries_key(self):
        selection = Selection.field("grNumber")
        self.assertIs(selection.kind, SelectionKind.FIELD)
        self.assertEqual(str(selection), "FIELD_grNumber")
        self.assertEqual(selection, Selection.field("grNumber"))
        self.assertNotEqual(selection, Selection.field("rollNo"))

    def test_element_selection_string(self):
        self.assertEqual(str(Selection(SelectionKind.PHOTO)), "PHOTO")


if __name__ == "__main__":
    unittest.main()
