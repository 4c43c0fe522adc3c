"""
Note Parser — turns the raw bytes of a shared note into a journal Entry.

Shared notes arrive from phone "share" menus and clipping tools, so their
shape is loose: usually a headline, sometimes a tagline glued on with a
dash or colon, and a URL somewhere near the end.  Normalisation is an
ordered chain of pure string transforms:

  1. strip tabs
  2. break "Headline - more" style delimiters onto their own lines
  3. move URLs onto their own line
  4. drop leading blank lines
  5. collapse runs of line breaks

The first resulting line becomes the title and the rest the body.  A note
that is nothing but a URL takes its title from the file name instead.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from shared_notes.errors import MalformedNoteError

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# " - ", "! ", ": ", "| " (the last three may carry a leading space)
_DELIMITER_RE = re.compile(r" - | ?[!:|] ")
_LINK_RE = re.compile(r"[ ]*\s(?=https?:)")
_LINE_BREAKS_RE = re.compile(r"\n+")


@dataclass(frozen=True)
class Entry:
    """A structured journal record derived from one shared note."""
    title: str
    body: tuple[str, ...]
    timestamp: datetime

    @property
    def stamp(self) -> str:
        return self.timestamp.strftime(TIMESTAMP_FORMAT)


# ── Normalisation steps ───────────────────────────────────────────────

def strip_tabs(text: str) -> str:
    return text.replace("\t", "")


def split_delimiters(text: str) -> str:
    """Turn "Headline - extra text" into two lines."""
    return _DELIMITER_RE.sub("\n", text)


def split_links(text: str) -> str:
    """Put every URL that follows whitespace at the start of a new line."""
    return _LINK_RE.sub("\n", text)


def drop_leading_blank_lines(text: str) -> str:
    stripped = text.lstrip("\n")
    return stripped if stripped else text


def collapse_line_breaks(text: str) -> str:
    return _LINE_BREAKS_RE.sub("\n", text)


PIPELINE = (
    strip_tabs,
    split_delimiters,
    split_links,
    drop_leading_blank_lines,
    collapse_line_breaks,
)


def normalize(text: str) -> str:
    for step in PIPELINE:
        text = step(text)
    return text


# ── Parsing ───────────────────────────────────────────────────────────

def decode(raw: bytes) -> str:
    """Decode note bytes as UTF-8 text with LF line endings."""
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise MalformedNoteError(f"note is not valid UTF-8: {exc}") from exc
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_lines(text: str) -> list[str]:
    text = text.rstrip("\n")
    if not text.strip():
        return []
    return text.split("\n")


def to_timestamp(mtime) -> datetime:
    """Accept a POSIX mtime or a datetime; truncate to whole seconds."""
    if not isinstance(mtime, datetime):
        mtime = datetime.fromtimestamp(mtime)
    return mtime.replace(microsecond=0)


def parse(raw: bytes, mtime, fallback_name: str) -> Entry:
    """
    Build an Entry from raw note bytes.

    *mtime* is the note file's modification time and becomes the entry
    timestamp.  *fallback_name* (the note's file name without extension)
    is used as the title when the note has no headline of its own.
    """
    lines = split_lines(normalize(decode(raw)))
    timestamp = to_timestamp(mtime)

    if not lines:
        logger.debug("Empty note, titling it %r", fallback_name)
        return Entry(title=fallback_name, body=(), timestamp=timestamp)
    if len(lines) == 1:
        return Entry(title=fallback_name, body=(lines[0],), timestamp=timestamp)
    return Entry(title=lines[0], body=tuple(lines[1:]), timestamp=timestamp)
