"""
Shared Notes — files incoming shared notes into a chronological journal.

Watches a synced folder for plain-text notes, turns each one into a journal
entry, files it under the matching Year → Month → Day node of a single
datetree document, and removes the note once it is safely recorded.
"""

__version__ = "0.3.0"


def version() -> str:
    """Return the installed package version string."""
    return __version__
