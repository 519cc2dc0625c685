# listas/extraction/__init__.py
"""
Supply-list import package.

Public API:
- assign_pdfs(filenames, catalog) -> dict
- import_pdfs(store, files, school_id=None, ...) -> dict (run manifest)
"""

from .pipeline import assign_pdfs, import_pdfs

__all__ = ["assign_pdfs", "import_pdfs"]
