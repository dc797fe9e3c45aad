"""
Compilation module - merging projects into one pack

This module provides:
- CompilationService: CRUD, generation and BBCode listing
- ConflictAnalyzer: key conflicts between projects
- conflicts: conflict, summary and resolution models
"""

from modloc.compilation.analyzer import ConflictAnalyzer
from modloc.compilation.conflicts import (
    CompilationConflict,
    ConflictAnalysisResult,
    ConflictEntry,
    ConflictResolutions,
    ConflictSummary,
)
from modloc.compilation.service import CompilationCancelled, CompilationService, CompilationWithDetails

__all__ = [
    'CompilationCancelled',
    'CompilationConflict',
    'CompilationService',
    'CompilationWithDetails',
    'ConflictAnalysisResult',
    'ConflictAnalyzer',
    'ConflictEntry',
    'ConflictResolutions',
    'ConflictSummary',
]
