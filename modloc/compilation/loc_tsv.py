"""
Localisation TSV files.

Format:
- Lines starting with # are comments
- Empty lines are skipped
- Data lines: key<TAB>value
- Special characters in values are escaped (\\n, \\t, \\\\, \\r)
"""

from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from modloc.errors import FileFormatError

_UNESCAPE = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\"}


def escape_value(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )


def unescape_value(value: str) -> str:
    """Reverse of escape_value; unknown escapes are kept verbatim."""
    out = []
    i = 0
    while i < len(value):
        char = value[i]
        if char == "\\" and i + 1 < len(value) and value[i + 1] in _UNESCAPE:
            out.append(_UNESCAPE[value[i + 1]])
            i += 2
            continue
        out.append(char)
        i += 1
    return "".join(out)


def render(entries: Iterable[Tuple[str, str]], comments: List[str] = None) -> str:
    lines = []
    if comments:
        lines.extend(f"# {comment}" for comment in comments)
        lines.append("")
    for key, value in entries:
        lines.append(f"{key}\t{escape_value(value)}")
    return "\n".join(lines) + "\n"


def write_loc_tsv(file_path: Path, entries: Iterable[Tuple[str, str]],
                  comments: List[str] = None) -> Path:
    path = Path(file_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render(entries, comments), encoding="utf-8")
    except OSError as e:
        raise FileFormatError(f"Failed to write localisation file: {e}",
                              details={"file_path": str(path)}) from e
    return path


def read_loc_tsv(file_path: Path) -> Dict[str, str]:
    """Parse a localisation TSV file into a key -> value dict."""
    path = Path(file_path)
    try:
        content = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise FileFormatError(f"Failed to read localisation file: {e}",
                              details={"file_path": str(path)}) from e

    entries: Dict[str, str] = {}
    for line in content.splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        key, sep, value = line.partition("\t")
        if not sep:
            continue
        entries[key] = unescape_value(value)
    return entries
