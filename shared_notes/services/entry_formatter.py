"""Entry Formatter — serialises an Entry as an org-style heading block."""

import re

from shared_notes import config
from shared_notes.services.note_parser import Entry

HEADING_MARK = "*"

_HEADING_LIKE_RE = re.compile(r"^\*+(?:\s|$)")


def entry_depth(base_depth: int | None = None) -> int:
    """Entries sit three levels below the Year nodes (Year, Month, Day)."""
    if base_depth is None:
        base_depth = config.DATETREE_BASE_DEPTH
    return base_depth + 3


def _body_line(line: str) -> str:
    # A body line starting with stars would be read back as a heading.
    if _HEADING_LIKE_RE.match(line):
        return " " + line
    return line


def format_entry(entry: Entry, depth: int | None = None) -> str:
    """
    Render *entry* as a heading at *depth* (defaults to the entry level of
    the configured datetree), its body lines, and an "Entered on" footer
    followed by a blank line.
    """
    if depth is None:
        depth = entry_depth()
    lines = [f"{HEADING_MARK * depth} {entry.title}"]
    lines.extend(_body_line(line) for line in entry.body)
    lines.append(f"Entered on [{entry.stamp}]")
    lines.append("")
    return "\n".join(lines) + "\n"
