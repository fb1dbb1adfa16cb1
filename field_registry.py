"""Catalog of student attributes that can be bound to card fields."""
from __future__ import annotations

import math
import re
from collections import OrderedDict
from typing import Dict, Mapping, NamedTuple, Optional, Tuple

from card_template import CardField, CardTemplate, Selection, find_field, merge_template


MISSING_VALUE = "N/A"

NEW_FIELD_FONT_SIZE = 7.0
NEW_FIELD_X = 5.0
NEW_FIELD_Y = 67.0
NEW_FIELD_WIDTH = 44.0
NEW_FIELD_COLOR = "#0f172a"


class DuplicateFieldError(ValueError):
    """Raised when a field key is already placed on the template."""

    def __init__(self, key: str):
        super().__init__(f"Field already exists on this card: {key}")
        self.key = key


class UnknownFieldError(KeyError):
    """Raised when a field key is not part of the bindable catalog."""


class FieldBinding(NamedTuple):
    key: str
    label: str
    caption: str


FIELD_CATALOG: "OrderedDict[str, FieldBinding]" = OrderedDict(
    (binding.key, binding)
    for binding in (
        FieldBinding("fullName", "Student Name", ""),
        FieldBinding("grNumber", "GR Number", "GR No"),
        FieldBinding("rollNo", "Roll Number", "Roll No"),
        FieldBinding("uidId", "UID", "UID"),
        FieldBinding("penNo", "PEN Number", "PEN"),
        FieldBinding("aadharNo", "Aadhaar Number", "Aadhaar"),
        FieldBinding("panNo", "PAN Number", "PAN"),
        FieldBinding("class", "Class / Section", "Class"),
        FieldBinding("fatherName", "Father Name", "Father Name"),
        FieldBinding("fatherMobile", "Father Mobile", "Contact"),
        FieldBinding("motherName", "Mother Name", "Mother Name"),
        FieldBinding("motherMobile", "Mother Mobile", "Mother Contact"),
        FieldBinding("residenceAddress", "Residence Address", "Address"),
        FieldBinding("dob", "Date of Birth", "DOB"),
        FieldBinding("admissionDate", "Admission Date", "Admitted"),
        FieldBinding("gender", "Gender", "Gender"),
        FieldBinding("bloodGroup", "Blood Group", "Blood"),
        FieldBinding("studentType", "Category", "Category"),
        FieldBinding("birthPlace", "Birth Place", "Birth Place"),
        FieldBinding("email", "Email", "Email"),
    )
)

DATE_FIELDS = frozenset({"dob", "admissionDate"})

# Store columns as written by the student registry, mapped to card attributes.
STUDENT_COLUMN_MAP: Dict[str, str] = {
    "id": "id",
    "name": "name",
    "full_name": "fullName",
    "email": "email",
    "roll_no": "rollNo",
    "class": "class",
    "section": "section",
    "gr_number": "grNumber",
    "profile_image": "profileImage",
    "father_name": "fatherName",
    "mother_name": "motherName",
    "father_mobile": "fatherMobile",
    "mother_mobile": "motherMobile",
    "residence_address": "residenceAddress",
    "aadhar_no": "aadharNo",
    "pan_no": "panNo",
    "pen_no": "penNo",
    "uid_id": "uidId",
    "dob": "dob",
    "admission_date": "admissionDate",
    "gender": "gender",
    "blood_group": "bloodGroup",
    "student_type": "studentType",
    "birth_place": "birthPlace",
}

SAMPLE_STUDENT: Mapping[str, object] = {
    "id": "student-master",
    "name": "Star Student",
    "fullName": "Star Student",
    "penNo": "ABCDE1234F",
    "aadharNo": "1234-5678-9012",
    "uidId": "UID-992211",
    "grNumber": "GR-1001",
    "residenceAddress": "123, Green Street, City Center",
    "fatherName": "Quincy Doe Sr.",
    "motherName": "Sarah Doe",
    "fatherMobile": "9876543210",
    "motherMobile": "9876543212",
    "rollNo": "101",
    "class": "10th",
    "section": "A",
    "email": "student@edu.node",
}

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float):
        return math.isnan(value)
    return False


def normalise_string(value: object, default: str = "") -> str:
    if is_missing(value):
        return default
    value_str = str(value).strip()
    return value_str if value_str else default


def _format_date(value: str) -> str:
    match = _ISO_DATE_RE.match(value)
    if match:
        year, month, day = match.groups()
        return f"{day}-{month}-{year}"
    return value


def resolve_display_value(field_key: str, student: Mapping[str, object]) -> str:
    """Return the text shown for ``field_key`` on ``student``'s card.

    Absent, ``None``, NaN and blank attributes all resolve to ``"N/A"``, as do
    keys outside :data:`FIELD_CATALOG`.
    """

    if field_key not in FIELD_CATALOG:
        return MISSING_VALUE

    if field_key == "class":
        class_name = normalise_string(student.get("class"))
        if not class_name:
            return MISSING_VALUE
        section = normalise_string(student.get("section"))
        return f"{class_name}-{section}" if section else class_name

    if field_key == "fatherMobile":
        value = normalise_string(student.get("fatherMobile")) or normalise_string(
            student.get("motherMobile")
        )
    elif field_key == "fullName":
        value = normalise_string(student.get("fullName")) or normalise_string(student.get("name"))
    else:
        value = normalise_string(student.get(field_key))

    if not value:
        return MISSING_VALUE
    if field_key in DATE_FIELDS:
        return _format_date(value)
    return value


def format_field_text(field: CardField, student: Mapping[str, object]) -> str:
    value = resolve_display_value(field.key, student)
    label = field.label.strip()
    return f"{label}: {value}" if label else value


def new_field(field_key: str) -> CardField:
    binding = FIELD_CATALOG.get(field_key)
    if binding is None:
        raise UnknownFieldError(field_key)
    return CardField(
        key=field_key,
        label=binding.caption,
        visible=True,
        font_size=NEW_FIELD_FONT_SIZE,
        bold=False,
        italic=False,
        color=NEW_FIELD_COLOR,
        alignment="left",
        x=NEW_FIELD_X,
        y=NEW_FIELD_Y,
        width=NEW_FIELD_WIDTH,
    )


def add_field(template: CardTemplate, field_key: str) -> Tuple[CardTemplate, Selection]:
    """Append a catalog field to ``template`` and return it with its selection."""

    if find_field(template, field_key) is not None:
        raise DuplicateFieldError(field_key)
    field = new_field(field_key)
    updated = merge_template(template, fields=template.fields + (field,))
    return updated, Selection.field(field_key)


def available_fields(template: CardTemplate) -> Tuple[FieldBinding, ...]:
    """Catalog entries not yet placed on ``template``."""

    placed = {field.key for field in template.fields}
    return tuple(binding for key, binding in FIELD_CATALOG.items() if key not in placed)


def student_from_row(row: Mapping[str, object]) -> Dict[str, object]:
    """Map a snake_case roster row onto the attributes card fields bind to.

    camelCase keys that already match a card attribute are kept as they are,
    so rows exported by the designer itself load unchanged.
    """

    student: Dict[str, object] = {}
    known_attributes = set(STUDENT_COLUMN_MAP.values())
    for column, value in row.items():
        column_name = str(column).strip()
        attribute: Optional[str] = STUDENT_COLUMN_MAP.get(column_name.lower())
        if attribute is None and column_name in known_attributes:
            attribute = column_name
        if attribute is None:
            continue
        if is_missing(value):
            continue
        student[attribute] = value
    if "fullName" not in student and "name" in student:
        student["fullName"] = student["name"]
    return student
