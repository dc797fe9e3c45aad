from __future__ import annotations

import pytest

from modloc.errors import FileFormatError
from modloc.glossary import formats


def test_read_csv_reports_line_numbers(tmp_path) -> None:
    csv_file = tmp_path / "terms.csv"
    csv_file.write_text("source_term,target_term,notes\nSword,Épée,\n,,\nAxe\n", encoding="utf-8")

    rows, errors = formats.read_csv(csv_file)

    assert rows == [{"source_term": "Sword", "target_term": "Épée", "notes": None, "case_sensitive": False}]
    assert errors[0] == "Line 3: Empty row"
    assert errors[1].startswith("Line 4:")


def test_read_missing_files_raise(tmp_path) -> None:
    with pytest.raises(FileFormatError):
        formats.read_csv(tmp_path / "missing.csv")
    with pytest.raises(FileFormatError):
        formats.read_tbx(tmp_path / "missing.tbx")
    with pytest.raises(FileFormatError):
        formats.read_excel(tmp_path / "missing.xlsx")


def test_read_tbx_rejects_non_martif_root(tmp_path) -> None:
    tbx = tmp_path / "bad.tbx"
    tbx.write_text("<?xml version='1.0'?><glossary/>", encoding="utf-8")
    with pytest.raises(FileFormatError):
        formats.read_tbx(tbx)


def test_read_tbx_accepts_definition_notes_and_flags_missing_terms(tmp_path) -> None:
    tbx = tmp_path / "terms.tbx"
    tbx.write_text("""<?xml version="1.0" encoding="UTF-8"?>
<martif type="TBX" xml:lang="en">
  <text><body>
    <termEntry id="t1">
      <descrip type="definition">A green-skinned warrior</descrip>
      <langSet xml:lang="en"><tig><term>Orc</term></tig></langSet>
      <langSet xml:lang="de"><tig><term>Ork</term></tig></langSet>
    </termEntry>
    <termEntry id="t2">
      <langSet xml:lang="en"><tig><term>Goblin</term></tig></langSet>
    </termEntry>
  </body></text>
</martif>
""", encoding="utf-8")

    rows, errors = formats.read_tbx(tbx)

    assert rows == [{
        "source_term": "Orc",
        "target_term": "Ork",
        "target_language_code": "de",
        "notes": "A green-skinned warrior",
        "case_sensitive": False,
    }]
    assert errors == ["Entry t2: Missing source or target term"]


def test_write_tbx_structure(tmp_path) -> None:
    import xml.etree.ElementTree as ET

    tbx = tmp_path / "out.tbx"
    entries = [{"id": "e1", "source_term": "Orc", "target_term": "Orque", "target_language_code": "fr",
                "notes": "greenskin", "case_sensitive": True}]
    assert formats.write_tbx(tbx, entries, "Greenskins") == 1

    root = ET.parse(tbx).getroot()
    assert root.tag == "martif"
    assert root.find("martifHeader/fileDesc/sourceDesc/p").text == "Greenskins"
    lang_sets = root.findall("text/body/termEntry/langSet")
    assert [ls.get(formats.XML_LANG) for ls in lang_sets] == ["en", "fr"]
    notes = {d.get("type"): d.text for d in root.iter("descrip")}
    assert notes == {"context": "greenskin", "note": formats.CASE_SENSITIVE_NOTE}


def test_sheet_title_is_sanitized_and_truncated() -> None:
    assert formats.sheet_title("Lore: [Chaos]/Order?") == "Lore_ _Chaos__Order_"
    assert len(formats.sheet_title("x" * 50)) == 31
    assert formats.sheet_title("") == "Glossary"
