"""
Translation module - source text filtering

This module provides:
- IgnoredSourceTextService: texts that are never translated or shipped
"""

from modloc.translation.ignored import (
    IgnoredSourceTextService,
    get_ignored_text_service,
    reset_ignored_text_service,
)
