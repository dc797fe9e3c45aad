"""
Glossary term matching.

Finds glossary source terms inside a text, resolves overlaps, and applies
or highlights the matched terms.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass
class GlossaryMatch:
    """A glossary entry found in a text at [start, end)."""
    entry: Dict[str, Any]
    start: int
    end: int
    matched_text: str

    @property
    def length(self) -> int:
        return self.end - self.start

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry.get("id"),
            "source_term": self.entry.get("source_term"),
            "target_term": self.entry.get("target_term"),
            "start": self.start,
            "end": self.end,
            "matched_text": self.matched_text,
        }


def _term_pattern(entry: Dict[str, Any], whole_word_only: bool) -> re.Pattern:
    term = re.escape(entry["source_term"])
    if whole_word_only:
        # \w on str patterns covers Unicode letters, digits and underscore
        term = rf"(?<!\w){term}(?!\w)"
    flags = 0 if entry.get("case_sensitive") else re.IGNORECASE
    return re.compile(term, flags)


class GlossaryMatcher:
    """Stateless helpers for locating glossary terms in text."""

    @staticmethod
    def find_matches(text: str, entries: List[Dict[str, Any]],
                     whole_word_only: bool = True) -> List[GlossaryMatch]:
        """
        Find every glossary term occurring in ``text``.

        Longer terms are searched first. When matches overlap, the one that
        starts first wins, and on equal starts the longer one.

        Args:
            text: Text to search.
            entries: Glossary entry dicts (source_term, target_term, case_sensitive).
            whole_word_only: Only match terms bounded by non-word characters.

        Returns:
            Non-overlapping matches ordered by position.
        """
        if not text:
            return []

        ordered = sorted(
            (e for e in entries if e.get("source_term")),
            key=lambda e: len(e["source_term"]),
            reverse=True,
        )

        matches: List[GlossaryMatch] = []
        for entry in ordered:
            pattern = _term_pattern(entry, whole_word_only)
            for found in pattern.finditer(text):
                matches.append(GlossaryMatch(
                    entry=entry,
                    start=found.start(),
                    end=found.end(),
                    matched_text=found.group(0),
                ))

        return GlossaryMatcher._remove_overlaps(matches)

    @staticmethod
    def _remove_overlaps(matches: List[GlossaryMatch]) -> List[GlossaryMatch]:
        result: List[GlossaryMatch] = []
        last_end = -1
        for match in sorted(matches, key=lambda m: (m.start, -m.length)):
            if match.start < last_end:
                continue
            result.append(match)
            last_end = match.end
        return result

    @staticmethod
    def apply_substitutions(target_text: str, matches: List[GlossaryMatch]) -> str:
        """
        Replace each matched source term found in ``target_text`` with its target term.

        Matches are applied from the end of the source text backwards. Case
        sensitivity follows the entry.
        """
        if not matches:
            return target_text

        result = target_text
        for match in sorted(matches, key=lambda m: m.start, reverse=True):
            flags = 0 if match.entry.get("case_sensitive") else re.IGNORECASE
            replacement = match.entry["target_term"]
            result = re.sub(re.escape(match.matched_text), lambda _m: replacement, result, flags=flags)
        return result

    @staticmethod
    def highlight_matches(text: str, matches: List[GlossaryMatch],
                          prefix: str = "**", suffix: str = "**") -> str:
        """Wrap every match in ``prefix`` / ``suffix``."""
        if not matches:
            return text

        result = text
        for match in sorted(matches, key=lambda m: m.start, reverse=True):
            result = (
                result[:match.start]
                + prefix
                + result[match.start:match.end]
                + suffix
                + result[match.end:]
            )
        return result

    @staticmethod
    def get_match_statistics(text: str, matches: List[GlossaryMatch]) -> Dict[str, Any]:
        """Return total_matches, unique_terms and coverage_percent for a set of matches."""
        if not text:
            return {"total_matches": 0, "unique_terms": 0, "coverage_percent": 0.0}

        unique_terms = {m.entry["source_term"] for m in matches}
        covered = sum(m.length for m in matches)
        return {
            "total_matches": len(matches),
            "unique_terms": len(unique_terms),
            "coverage_percent": covered / len(text) * 100,
        }
