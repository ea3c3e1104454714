"""
Pure parsing of the supplier price workbook.

A workbook is a mapping of sheet name -> list of rows, each row a list of
cells. One sheet describes one medication:

    row 3 (or 4)  [_, condition, medication name, form]
    row 4         [_, _, dosage, dosage, ..., "link"]
    row 5+        [rating, pharmacy name, price, price, ..., url]

Nothing here touches the store; `ingest.migration` writes the result.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from ingest.conditions import ConditionMapping, lookup_condition
from models.documents import new_medication, new_pharmacy, new_price, utcnow
from utils.slugs import form_slug, medication_slug, pharmacy_slug

log = logging.getLogger("medprice.ingest.parser")

MIN_SHEET_ROWS = 6
META_ROW = 3
HEADER_ROW = 4
FIRST_PHARMACY_ROW = 5
FIRST_DOSAGE_COL = 2


@dataclass
class ParsedCatalog:
    categories: List[Dict[str, Any]] = field(default_factory=list)
    medications: List[Dict[str, Any]] = field(default_factory=list)
    pharmacies: List[Dict[str, Any]] = field(default_factory=list)
    prices: List[Dict[str, Any]] = field(default_factory=list)
    sheets_seen: int = 0
    sheets_skipped: int = 0
    unmapped_conditions: List[str] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        return {
            "sheets_seen": self.sheets_seen,
            "sheets_skipped": self.sheets_skipped,
            "categories": len(self.categories),
            "medications": len(self.medications),
            "pharmacies": len(self.pharmacies),
            "prices": len(self.prices),
        }


def _cell(row: Any, idx: int) -> str:
    if not isinstance(row, list) or idx >= len(row) or row[idx] is None:
        return ""
    return str(row[idx]).strip()


def extract_sheet_meta(sheet_name: str, rows: List[Any]) -> Tuple[str, str, str]:
    """(condition, medication_name, form); falls back to row 4 when row 3 has no condition."""
    row = rows[META_ROW] if len(rows) > META_ROW else []
    condition = _cell(row, 1)
    if not condition and len(rows) > HEADER_ROW and rows[HEADER_ROW]:
        row = rows[HEADER_ROW]
        condition = _cell(row, 1)
    name = _cell(row, 2) or sheet_name
    form = _cell(row, 3)
    return condition, name, form


def extract_dosage_columns(header_row: Any) -> List[Tuple[int, str]]:
    """[(column index, dosage label)] from column 2 up to the first empty or 'link' cell."""
    cols: List[Tuple[int, str]] = []
    if not isinstance(header_row, list):
        return cols
    for i in range(FIRST_DOSAGE_COL, len(header_row)):
        label = _cell(header_row, i)
        if not label or label.lower() == "link":
            break
        cols.append((i, label))
    return cols


def extract_link(row: List[Any]) -> str:
    """Rightmost cell whose text starts with 'http'; '' when none."""
    for cell in reversed(row):
        if cell is None:
            continue
        s = str(cell).strip()
        if s.startswith("http"):
            return s
    return ""


def parse_price_cell(value: Any) -> Optional[float]:
    """A finite price > 0, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
    else:
        s = str(value).strip().replace("£", "").replace(",", "")
        if not s:
            return None
        try:
            f = float(s)
        except ValueError:
            return None
    if not math.isfinite(f) or f <= 0:
        return None
    return f


def parse_rating(value: Any) -> float:
    try:
        r = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(r):
        return 0.0
    return max(0.0, min(5.0, r))


def unique_medication_id(name: str, form: str, subcategory_id: str, taken: Set[str]) -> str:
    base = medication_slug(name)
    if base not in taken:
        return base
    suffix = form_slug(form) if form else subcategory_id
    candidate = f"{base}-{suffix}"
    n = 2
    while candidate in taken:
        candidate = f"{base}-{suffix}-{n}"
        n += 1
    return candidate


class _CatalogBuilder:
    def __init__(self) -> None:
        self.catalog = ParsedCatalog()
        self.med_ids: Set[str] = set()
        self.pharmacies: Dict[str, Dict[str, Any]] = {}
        self.categories: Dict[str, Dict[str, Any]] = {}
        self.now = utcnow()

    def add_category(self, mapping: ConditionMapping) -> None:
        cat = self.categories.get(mapping.category_id)
        if cat is None:
            cat = {
                "id": mapping.category_id,
                "name": mapping.category_name,
                "order": len(self.categories),
                "subcategories": [],
                "active": True,
            }
            self.categories[mapping.category_id] = cat
        subs = cat["subcategories"]
        if not any(s["id"] == mapping.subcategory_id for s in subs):
            subs.append({
                "id": mapping.subcategory_id,
                "name": mapping.subcategory_name,
                "category_id": mapping.category_id,
                "order": len(subs),
                "active": True,
            })

    def add_sheet(self, sheet_name: str, rows: Any) -> None:
        self.catalog.sheets_seen += 1
        if not isinstance(rows, list) or len(rows) < MIN_SHEET_ROWS:
            self.catalog.sheets_skipped += 1
            return

        condition, name, form = extract_sheet_meta(sheet_name, rows)
        if not condition:
            self.catalog.sheets_skipped += 1
            return
        mapping = lookup_condition(condition)
        if mapping is None:
            log.warning(
                "ingest_condition_unmapped",
                extra={"extra": {"event": "ingest_condition_unmapped", "sheet": sheet_name, "condition": condition}},
            )
            self.catalog.unmapped_conditions.append(condition)
            self.catalog.sheets_skipped += 1
            return

        med_id = unique_medication_id(name, form, mapping.subcategory_id, self.med_ids)
        if med_id != medication_slug(name):
            log.info(
                "ingest_medication_id_collision",
                extra={"extra": {"event": "ingest_medication_id_collision", "sheet": sheet_name, "medication_id": med_id}},
            )
        self.med_ids.add(med_id)

        dosage_cols = extract_dosage_columns(rows[HEADER_ROW])
        self.catalog.medications.append(new_medication({
            "id": med_id,
            "name": name,
            "category": mapping.category_id,
            "subcategory": mapping.subcategory_id,
            "description": f"{name} - {form}" if form else name,
            "dosage": [label for _, label in dosage_cols],
            "form": form,
        }, now=self.now))
        self.add_category(mapping)

        for row in rows[FIRST_PHARMACY_ROW:]:
            self.add_pharmacy_row(med_id, row, dosage_cols)

    def add_pharmacy_row(self, med_id: str, row: Any, dosage_cols: List[Tuple[int, str]]) -> None:
        if not isinstance(row, list) or len(row) < 3:
            return
        name = _cell(row, 1)
        if not name:
            return
        pharmacy_id = pharmacy_slug(name)
        if not pharmacy_id:
            return
        link = extract_link(row)
        if pharmacy_id not in self.pharmacies:
            self.pharmacies[pharmacy_id] = new_pharmacy({
                "id": pharmacy_id,
                "name": name,
                "website": link or "#",
                "rating": parse_rating(row[0]),
            }, now=self.now)

        for idx, dosage in dosage_cols:
            value = parse_price_cell(row[idx] if idx < len(row) else None)
            if value is None:
                continue
            self.catalog.prices.append(
                new_price(med_id, pharmacy_id, dosage, value, link=link, source="migration", now=self.now)
            )

    def build(self) -> ParsedCatalog:
        self.catalog.categories = list(self.categories.values())
        self.catalog.pharmacies = list(self.pharmacies.values())
        return self.catalog


def parse_workbook(workbook: Dict[str, Any]) -> ParsedCatalog:
    """Normalise every sheet of the workbook, in input order."""
    if not isinstance(workbook, dict):
        raise ValueError("workbook_must_be_object")
    builder = _CatalogBuilder()
    for sheet_name, rows in workbook.items():
        try:
            builder.add_sheet(str(sheet_name), rows)
        except Exception as e:
            log.error(
                "ingest_sheet_failed",
                extra={"extra": {"event": "ingest_sheet_failed", "sheet": sheet_name,
                                 "error_type": type(e).__name__, "message": str(e)}},
                exc_info=True,
            )
            builder.catalog.sheets_skipped += 1
    return builder.build()
