"""modloc: glossaries, compilations and LLM provider settings for mod translation projects."""

__version__ = "0.1.0"
