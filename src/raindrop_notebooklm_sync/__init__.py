"""Synchronise Raindrop.io bookmarks with NotebookLM notebook sources."""

__version__ = "0.1.0"
