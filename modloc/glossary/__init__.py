"""
Glossary module

This module provides:
- GlossaryService: glossary and entry management, matching, statistics, import/export
- GlossaryMatcher: term matching on plain text
- formats: CSV, TBX and Excel readers/writers
"""

from modloc.glossary.matcher import GlossaryMatch, GlossaryMatcher
from modloc.glossary.service import GlossaryService, ImportResult

__all__ = ['GlossaryMatch', 'GlossaryMatcher', 'GlossaryService', 'ImportResult']
