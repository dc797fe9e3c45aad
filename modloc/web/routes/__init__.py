"""Route blueprints for the web application."""

from .catalog import catalog_bp
from .compilations import compilations_bp
from .glossaries import glossaries_bp
from .llm import llm_bp
from .settings import settings_bp

__all__ = [
    "catalog_bp",
    "compilations_bp",
    "glossaries_bp",
    "llm_bp",
    "settings_bp",
]
