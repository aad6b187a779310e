"""
branchlet - hierarchical notes synchronised with a flat remote file store

Keeps an arbitrary-depth tree of notes in memory and synchronises it with a
GitHub repository that only knows about individual files. The tree shape is
stored separately from note content (``structure.json`` plus one
``<note-id>.json`` per note), with fallback support for the older layout where
every file held a complete nested note.
"""

__version__ = "0.1.0"
__license__ = "AGPLv3+"

# Version tuple for programmatic comparison
VERSION_TUPLE = (0, 1, 0)

# Export key components when package is imported
__all__ = [
    "__version__",
    "__license__",
    "VERSION_TUPLE",
]
