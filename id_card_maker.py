"""Generate personalised ID cards (SVG files or a printable PDF sheet) from a roster."""
from __future__ import annotations

import argparse
import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from audit_log import DEFAULT_AUDIT_PATH, Actor, JsonFileAuditLog
from card_renderer import Side, render_card
from card_template import CardTemplate, default_template
from field_registry import SAMPLE_STUDENT, is_missing, normalise_string, student_from_row
from id_card_a4_layout import make_sheet, rasterize
from image_payload import InvalidImagePayloadError, load_image_payload
from svg_export import write_svg
from template_store import (
    DEFAULT_STORE_PATH,
    SqliteTemplateStore,
    TemplateNotFoundError,
    TemplateStore,
    TemplateStoreError,
    template_from_row,
)

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_ROOT = Path("ID Cards")
DEFAULT_PHOTO_ROOT = Path("photos")
DEFAULT_SHEET_PATH = Path("id_cards.pdf")
DEFAULT_ACTOR = "ID Studio CLI"
ALL_CLASSES = "All"


def _ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _sanitize_filename_component(value: object, fallback: str) -> str:
    value = normalise_string(value)
    if not value:
        value = fallback
    sanitized = re.sub(r"[^A-Za-z0-9]+", "_", value)
    sanitized = re.sub(r"_+", "_", sanitized).strip("_")
    return sanitized or fallback


def _build_card_output_base(student: Mapping[str, object]) -> str:
    name = _sanitize_filename_component(student.get("fullName") or student.get("name"), "student")
    gr_number = _sanitize_filename_component(student.get("grNumber"), "")
    return "_".join(part for part in (name, gr_number) if part)


def load_records_from_csv(csv_path: Path) -> List[Dict[str, object]]:
    """Read a roster CSV into student records; blank cells count as missing."""

    frame = pd.read_csv(csv_path, dtype=str, encoding="utf-8-sig")
    return [student_from_row(row) for row in frame.to_dict(orient="records")]


def attach_photos(students: Iterable[Mapping[str, object]], photo_root: Path) -> List[Dict[str, object]]:
    """Replace ``profileImage`` file names with image payloads read from ``photo_root``."""

    prepared = []
    for student in students:
        record = dict(student)
        photo = record.get("profileImage")
        if not is_missing(photo) and not str(photo).startswith("data:"):
            photo_path = Path(str(photo))
            if not photo_path.is_absolute():
                photo_path = photo_root / photo_path
            try:
                record["profileImage"] = load_image_payload(photo_path)
            except (OSError, InvalidImagePayloadError) as exc:
                logger.warning("No photo for %s: %s", record.get("fullName", "student"), exc)
                record.pop("profileImage")
        prepared.append(record)
    return prepared


def select_students(
    students: Iterable[Mapping[str, object]],
    class_name: str = ALL_CLASSES,
    query: str = "",
) -> List[Mapping[str, object]]:
    """Class filter plus case-insensitive search on name or GR number."""

    needle = query.strip().lower()
    selected = []
    for student in students:
        if class_name != ALL_CLASSES and normalise_string(student.get("class")) != class_name:
            continue
        if needle:
            name = normalise_string(student.get("fullName") or student.get("name")).lower()
            gr_number = normalise_string(student.get("grNumber")).lower()
            if needle not in name and needle not in gr_number:
                continue
        selected.append(student)
    return selected


def generate_id_cards(
    template: CardTemplate,
    students: Iterable[Mapping[str, object]],
    output_root: Path = DEFAULT_OUTPUT_ROOT,
    *,
    font_path: Optional[Path] = None,
) -> int:
    """Write one front SVG (and a back SVG when enabled) per student."""

    _ensure_directory(output_root)
    sides = [Side.FRONT, Side.BACK] if template.show_back_side else [Side.FRONT]
    count = 0
    for student in students:
        base = _build_card_output_base(student)
        try:
            for side in sides:
                tree = render_card(template, student, side)
                write_svg(tree, output_root / f"{base}_{side.value}.svg", font_path=font_path)
        except OSError as exc:
            logger.error("Could not write ID card for %s: %s", base, exc)
            continue
        logger.debug("Wrote ID card for %s", base)
        count += 1
    return count


def resolve_template(store: TemplateStore, name: Optional[str] = None) -> CardTemplate:
    """Named template, else the first stored one, else the built-in default."""

    if name:
        return store.get_template(name)
    templates = store.get_templates()
    if templates:
        return templates[0]
    logger.info("No stored templates, using the default layout")
    return default_template()


def import_templates(store: TemplateStore, json_path: Path) -> List[CardTemplate]:
    payload = json.loads(json_path.read_text(encoding="utf-8"))
    rows = payload if isinstance(payload, list) else [payload]
    return [store.upsert_template(template_from_row(row)) for row in rows]


def _load_students(args: argparse.Namespace) -> List[Mapping[str, object]]:
    students = attach_photos(load_records_from_csv(args.csv_path), args.photo_root)
    return select_students(students, args.class_name, args.query)


def _add_roster_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("csv_path", type=Path, help="Path to the CSV file containing the student roster")
    parser.add_argument("--class", dest="class_name", default=ALL_CLASSES, help="Only students of this class")
    parser.add_argument("--query", default="", help="Filter by name or GR number")
    parser.add_argument(
        "--photo-root",
        type=Path,
        default=DEFAULT_PHOTO_ROOT,
        help="Directory containing student photos referenced by profile_image",
    )


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Design and print student ID cards.")
    parser.add_argument(
        "--store",
        type=Path,
        default=DEFAULT_STORE_PATH,
        help="sqlite database holding ID card templates",
    )
    parser.add_argument("--template", default=None, help="Template id or name (default: first stored)")
    parser.add_argument("--font", type=Path, default=None, help="TrueType font used to measure text")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    commands = parser.add_subparsers(dest="command", required=True)

    svg = commands.add_parser("svg", help="Write one SVG per student")
    _add_roster_arguments(svg)
    svg.add_argument(
        "--output-root",
        type=Path,
        default=DEFAULT_OUTPUT_ROOT,
        help="Directory where generated ID cards will be written",
    )

    sheet = commands.add_parser("sheet", help="Lay cards out on printable A4 pages")
    _add_roster_arguments(sheet)
    sheet.add_argument("--output", type=Path, default=DEFAULT_SHEET_PATH, help="PDF file to write")
    sheet.add_argument("--png", type=Path, default=None, help="Also save the first page as PNG")

    preview = commands.add_parser("preview", help="Render the template for one sample student")
    preview.add_argument("--output", type=Path, required=True, help="SVG file to write")
    preview.add_argument("--side", choices=[side.value for side in Side], default=Side.FRONT.value)

    templates = commands.add_parser("templates", help="List or import stored templates")
    templates.add_argument("--import", dest="import_path", type=Path, default=None, help="JSON template export")
    templates.add_argument("--audit-log", type=Path, default=DEFAULT_AUDIT_PATH, help="Audit trail JSON file")
    templates.add_argument("--actor", default=DEFAULT_ACTOR, help="Name recorded in the audit trail")

    return parser.parse_args(argv)


def _run_templates(args: argparse.Namespace, store: TemplateStore) -> int:
    if args.import_path:
        audit = JsonFileAuditLog(args.audit_log)
        for template in import_templates(store, args.import_path):
            audit.record(Actor(args.actor), "CREATE", "Identity", f"ID Studio Import: {template.name}")
            print(f"Imported {template.name} ({template.id})")
    for template in store.get_templates():
        print(f"{template.id}\t{template.name}\t{template.orientation}\t{len(template.fields)} field(s)")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        store = SqliteTemplateStore(args.store)
        if args.command == "templates":
            return _run_templates(args, store)
        template = resolve_template(store, args.template)
    except (TemplateStoreError, TemplateNotFoundError) as exc:
        print(exc)
        return 1

    if args.command == "svg":
        count = generate_id_cards(template, _load_students(args), args.output_root, font_path=args.font)
        print(f"Generated {count} ID card(s)")
    elif args.command == "sheet":
        students = _load_students(args)
        if not students:
            print("No students match the selection")
            return 1
        pages = make_sheet(template, students, args.output)
        if args.png:
            rasterize(args.output).save(args.png)
        print(f"Generated {len(students)} ID card(s) on {pages} page(s)")
    elif args.command == "preview":
        tree = render_card(template, SAMPLE_STUDENT, Side(args.side))
        print(f"Wrote {write_svg(tree, args.output, font_path=args.font)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
