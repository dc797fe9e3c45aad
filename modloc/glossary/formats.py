"""
Glossary file formats (CSV, TBX, Excel)

Readers return plain row dicts (source_term, target_term, notes,
case_sensitive, target_language_code); writers take glossary entry dicts.
Persistence and duplicate handling live in the glossary service.
"""

import csv
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from openpyxl import Workbook, load_workbook

from modloc.errors import FileFormatError
from modloc.logger import get_logger

logger = get_logger(__name__)

COLUMNS = ["source_term", "target_term", "notes"]

XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"
CASE_SENSITIVE_NOTE = "Case-sensitive matching"

# Excel sheet titles are limited to 31 characters and a few forbidden symbols
_SHEET_TITLE_MAX = 31
_SHEET_FORBIDDEN = set('[]:*?/\\')


def _row_from_values(values, line: int) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Turn a (source, target, notes?) sequence into a row dict or an error message."""
    values = ["" if v is None else str(v) for v in values]
    if not any(v.strip() for v in values):
        return None, f"Line {line}: Empty row"
    if len(values) < 2:
        return None, f"Line {line}: Expected at least 2 columns (source_term, target_term)"

    source_term = values[0].strip()
    target_term = values[1].strip()
    notes = values[2].strip() if len(values) > 2 else ""
    if not source_term or not target_term:
        return None, f"Line {line}: Source and target terms are required"

    return {
        "source_term": source_term,
        "target_term": target_term,
        "notes": notes or None,
        "case_sensitive": False,
    }, None


# ============================================================
# CSV
# ============================================================

def read_csv(file_path: Path) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Read glossary rows from a CSV file with a header row.

    Returns:
        (rows, errors) where errors are per-line messages.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileFormatError(f"File not found: {path}", details={"file_path": str(path)})

    rows: List[Dict[str, Any]] = []
    errors: List[str] = []
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            reader = csv.reader(f)
            next(reader, None)  # header
            for line_number, values in enumerate(reader, start=2):
                row, error = _row_from_values(values, line_number)
                if error:
                    errors.append(error)
                else:
                    rows.append(row)
    except (UnicodeDecodeError, csv.Error) as e:
        raise FileFormatError(f"Failed to read CSV: {e}", details={"file_path": str(path)}) from e

    logger.debug(f"Read {len(rows)} rows from CSV {path} ({len(errors)} errors)")
    return rows, errors


def write_csv(file_path: Path, entries: List[Dict[str, Any]]) -> int:
    path = Path(file_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(COLUMNS)
            for entry in entries:
                writer.writerow([entry["source_term"], entry["target_term"], entry.get("notes") or ""])
    except OSError as e:
        raise FileFormatError(f"Failed to export CSV: {e}", details={"file_path": str(path)}) from e
    return len(entries)


# ============================================================
# TBX (TBX-Basic)
# ============================================================

def read_tbx(file_path: Path) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Read term entries from a TBX file.

    The first langSet of a termEntry is the source term, the second the
    target term; the target langSet's xml:lang becomes the entry language.
    A ``note`` mentioning "case-sensitive" marks the entry case-sensitive;
    other notes, ``context`` and ``definition`` descriptions become notes.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileFormatError(f"File not found: {path}", details={"file_path": str(path)})

    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise FileFormatError(f"Invalid XML: {e}", details={"file_path": str(path)}) from e

    if root.tag != "martif":
        raise FileFormatError("Invalid TBX file: missing martif root element",
                              details={"file_path": str(path)})

    body = root.find("text/body")
    if body is None:
        raise FileFormatError("Invalid TBX file: missing text/body element",
                              details={"file_path": str(path)})

    default_lang = root.get(XML_LANG, "en")
    rows: List[Dict[str, Any]] = []
    errors: List[str] = []

    for index, term_entry in enumerate(body.findall("termEntry"), start=1):
        entry_id = term_entry.get("id") or f"tbx_{index}"
        notes = None
        case_sensitive = False

        for descrip in term_entry.findall("descripGrp/descrip") + term_entry.findall("descrip"):
            kind = descrip.get("type", "")
            text = "".join(descrip.itertext()).strip()
            if kind == "note":
                if "case-sensitive" in text.lower():
                    case_sensitive = True
                elif text:
                    notes = text
            elif kind in ("context", "definition") and text:
                notes = text

        terms = []
        for lang_set in term_entry.findall("langSet"):
            term = lang_set.find("tig/term")
            if term is None:
                term = lang_set.find("ntig/termGrp/term")
            text = "".join(term.itertext()).strip() if term is not None else ""
            terms.append((lang_set.get(XML_LANG, default_lang), text))

        if len(terms) < 2 or not terms[0][1] or not terms[1][1]:
            errors.append(f"Entry {entry_id}: Missing source or target term")
            continue

        rows.append({
            "source_term": terms[0][1],
            "target_term": terms[1][1],
            "target_language_code": terms[1][0],
            "notes": notes,
            "case_sensitive": case_sensitive,
        })

    logger.debug(f"Read {len(rows)} term entries from TBX {path} ({len(errors)} errors)")
    return rows, errors


def write_tbx(file_path: Path, entries: List[Dict[str, Any]], glossary_name: str,
              source_language_code: str = "en") -> int:
    martif = ET.Element("martif", {"type": "TBX", XML_LANG: source_language_code})

    header = ET.SubElement(martif, "martifHeader")
    source_desc = ET.SubElement(ET.SubElement(header, "fileDesc"), "sourceDesc")
    ET.SubElement(source_desc, "p").text = glossary_name
    encoding_desc = ET.SubElement(header, "encodingDesc")
    ET.SubElement(encoding_desc, "p", {"type": "DCSName"}).text = "TBX-Basic"

    body = ET.SubElement(ET.SubElement(martif, "text"), "body")
    for entry in entries:
        term_entry = ET.SubElement(body, "termEntry", {"id": str(entry["id"])})
        for lang, term in ((source_language_code, entry["source_term"]),
                           (entry["target_language_code"], entry["target_term"])):
            lang_set = ET.SubElement(term_entry, "langSet", {XML_LANG: lang})
            ET.SubElement(ET.SubElement(lang_set, "tig"), "term").text = term
        if entry.get("notes"):
            grp = ET.SubElement(term_entry, "descripGrp")
            ET.SubElement(grp, "descrip", {"type": "context"}).text = entry["notes"]
        if entry.get("case_sensitive"):
            grp = ET.SubElement(term_entry, "descripGrp")
            ET.SubElement(grp, "descrip", {"type": "note"}).text = CASE_SENSITIVE_NOTE

    tree = ET.ElementTree(martif)
    ET.indent(tree, space="  ")
    path = Path(file_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tree.write(path, encoding="utf-8", xml_declaration=True)
    except OSError as e:
        raise FileFormatError(f"Failed to export TBX: {e}", details={"file_path": str(path)}) from e
    return len(entries)


# ============================================================
# Excel
# ============================================================

def sheet_title(name: str) -> str:
    cleaned = "".join("_" if c in _SHEET_FORBIDDEN else c for c in (name or "")).strip()
    return (cleaned or "Glossary")[:_SHEET_TITLE_MAX]


def read_excel(file_path: Path, sheet_name: str = None) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Read glossary rows from the given (or first) sheet of an .xlsx workbook."""
    path = Path(file_path)
    if not path.exists():
        raise FileFormatError(f"Excel file not found: {path}", details={"file_path": str(path)})

    try:
        wb = load_workbook(path, read_only=True, data_only=True)
    except Exception as e:
        raise FileFormatError(f"Failed to import Excel: {e}", details={"file_path": str(path)}) from e

    try:
        if sheet_name:
            if sheet_name not in wb.sheetnames:
                raise FileFormatError(f"Sheet not found: {sheet_name}", details={"file_path": str(path)})
            ws = wb[sheet_name]
        else:
            ws = wb.worksheets[0]

        rows: List[Dict[str, Any]] = []
        errors: List[str] = []
        for line_number, values in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2):
            row, error = _row_from_values(list(values[:3]), line_number)
            if error:
                errors.append(error)
            else:
                rows.append(row)
    finally:
        wb.close()

    logger.debug(f"Read {len(rows)} rows from Excel {path} ({len(errors)} errors)")
    return rows, errors


def write_excel(file_path: Path, entries: List[Dict[str, Any]], glossary_name: str) -> int:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title(glossary_name)
    ws.append(COLUMNS)
    for entry in entries:
        ws.append([entry["source_term"], entry["target_term"], entry.get("notes") or ""])

    path = Path(file_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(path)
    except OSError as e:
        raise FileFormatError(f"Failed to export Excel: {e}", details={"file_path": str(path)}) from e
    return len(entries)
