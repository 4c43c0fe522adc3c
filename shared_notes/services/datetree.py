"""
Datetree — the journal document and its Year → Month → Day hierarchy.

The journal is an org-style outline:

    * 2014
    ** 2014-03 March
    *** 2014-03-05 Wednesday
    **** Interesting Article
    http://example.com/x
    Entered on [2014-03-05 10:00:00]

The whole file is parsed into a tree of headings.  Text the datetree does
not own (preamble, unrelated headings, notes typed by hand) is kept
verbatim and written back unchanged.  Date nodes are recognised by their
exact datetree shape (any month or weekday name), so a hand-written
"2014 Goals" heading is left alone.  They are created lazily in
chronological order; new entries always go in as the first child of
their day node.
"""

import fcntl
import logging
import os
import re
import stat
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Callable, Iterator

from shared_notes import config
from shared_notes.errors import (
    ReadOnlyTargetError,
    StorageIOError,
    TargetMissingError,
)

logger = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^(\*+) ")
_YEAR_RE = re.compile(r"^(\d{4})(?:\s+:[\w:@#%]+:)?\s*$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2}) \w+$")
_DAY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2}) \w+$")


@dataclass
class Heading:
    """One outline node: its heading line, the text under it, its children."""
    line: str
    level: int
    body: list[str] = field(default_factory=list)
    children: list["Heading"] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.line[self.level:].strip()

    def lines(self) -> Iterator[str]:
        if self.level:
            yield self.line
        yield from self.body
        for child in self.children:
            yield from child.lines()

    def walk(self) -> Iterator["Heading"]:
        for child in self.children:
            yield child
            yield from child.walk()

    def shift(self, delta: int) -> None:
        """Move this subtree *delta* levels deeper (or shallower)."""
        self.level += delta
        self.line = "*" * self.level + self.line.lstrip("*")
        for child in self.children:
            child.shift(delta)


def parse_outline(lines: list[str]) -> Heading:
    """Build a heading tree; the returned level-0 root holds the preamble."""
    root = Heading(line="", level=0)
    stack = [root]
    for line in lines:
        match = _HEADING_RE.match(line)
        if not match:
            stack[-1].body.append(line)
            continue
        level = len(match.group(1))
        while stack[-1].level >= level:
            stack.pop()
        node = Heading(line=line, level=level)
        stack[-1].children.append(node)
        stack.append(node)
    return root


def _split(text: str) -> list[str]:
    if not text:
        return []
    if text.endswith("\n"):
        text = text[:-1]
    return text.split("\n")


# ── Date keys ─────────────────────────────────────────────────────────

def _year_key(title: str) -> tuple | None:
    match = _YEAR_RE.match(title)
    return (int(match.group(1)),) if match else None


def _month_key(title: str) -> tuple | None:
    match = _MONTH_RE.match(title)
    return tuple(int(g) for g in match.groups()) if match else None


def _day_key(title: str) -> tuple | None:
    match = _DAY_RE.match(title)
    return tuple(int(g) for g in match.groups()) if match else None


def year_title(day: date) -> str:
    return f"{day.year:04d}"


def month_title(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d} {day.strftime('%B')}"


def day_title(day: date) -> str:
    return f"{day.isoformat()} {day.strftime('%A')}"


def _find_or_create(
    parent: Heading,
    level: int,
    key: tuple,
    key_of: Callable[[str], tuple | None],
    title: str,
) -> Heading:
    """
    Return the child of *parent* at *level* whose date key equals *key*,
    creating it between its chronological neighbours when missing.
    """
    insert_at = None
    after_last_earlier = None
    for index, child in enumerate(parent.children):
        if child.level != level:
            continue
        child_key = key_of(child.title)
        if child_key is None:
            continue
        if child_key == key:
            return child
        if child_key > key:
            insert_at = index
            break
        after_last_earlier = index + 1

    if insert_at is None:
        insert_at = (
            after_last_earlier
            if after_last_earlier is not None
            else len(parent.children)
        )
    node = Heading(line=f"{'*' * level} {title}", level=level)
    parent.children.insert(insert_at, node)
    logger.debug("Created datetree node %r", node.line)
    return node


# ── Document ──────────────────────────────────────────────────────────

class DatetreeDocument:
    """An in-memory journal document with find-or-create date nodes."""

    def __init__(
        self,
        text: str = "",
        path: Path | None = None,
        read_only: bool = False,
        base_depth: int | None = None,
    ):
        self.path = Path(path) if path else None
        self.read_only = read_only
        self.base_depth = base_depth or config.DATETREE_BASE_DEPTH
        self.modified = False
        self._trailing_newline = text.endswith("\n")
        self._root = parse_outline(_split(text))

    @classmethod
    def load(cls, path: Path, base_depth: int | None = None) -> "DatetreeDocument":
        """Read the journal at *path*; it is never created here."""
        path = Path(path)
        if not path.exists():
            raise TargetMissingError(f"journal document not found: {path}")
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageIOError(f"cannot read {path}: {exc}") from exc
        read_only = not os.access(path, os.W_OK)
        if read_only:
            logger.warning("Journal %s is read-only", path)
        return cls(text, path=path, read_only=read_only, base_depth=base_depth)

    def text(self) -> str:
        lines = list(self._root.lines())
        if not lines:
            return ""
        trailing = "\n" if self._trailing_newline or self.modified else ""
        return "\n".join(lines) + trailing

    # ── Date nodes ────────────────────────────────────────────────────

    def _year_nodes(
        self, parent: Heading | None = None
    ) -> Iterator[tuple[Heading, Heading]]:
        """Yield (parent, year node) for every year heading, in document order."""
        parent = parent or self._root
        for child in parent.children:
            if child.level == self.base_depth and _year_key(child.title):
                yield parent, child
            elif child.level < self.base_depth:
                yield from self._year_nodes(child)

    def _year_container(self) -> Heading:
        for parent, _ in self._year_nodes():
            return parent
        if self.base_depth == 1:
            return self._root
        # No year yet: hang the tree under the last heading one level up
        containers = [
            node for node in self._root.walk()
            if node.level == self.base_depth - 1
        ]
        return containers[-1] if containers else self._root

    def find_day(self, day: date) -> Heading | None:
        """Return the day node for *day*, or None when it does not exist."""
        for _, year in self._year_nodes():
            if _year_key(year.title) != (day.year,):
                continue
            for month in year.children:
                if _month_key(month.title) != (day.year, day.month):
                    continue
                for node in month.children:
                    if _day_key(node.title) == (day.year, day.month, day.day):
                        return node
        return None

    def entries_on(self, day: date) -> list[Heading]:
        """Entry headings filed under *day*, first child first."""
        node = self.find_day(day)
        return list(node.children) if node else []

    def insert_under_date(self, day: date, formatted: str) -> Heading:
        """
        File a formatted entry block as the first child of *day*'s node,
        creating the year, month and day nodes as needed.
        """
        if self.read_only:
            raise ReadOnlyTargetError(
                f"journal document is read-only: {self.path or '<memory>'}"
            )

        depth = self.base_depth
        year = None
        for _, node in self._year_nodes():
            if _year_key(node.title) == (day.year,):
                year = node
                break
        if year is None:
            year = _find_or_create(
                self._year_container(), depth, (day.year,),
                _year_key, year_title(day),
            )
        month = _find_or_create(
            year, depth + 1, (day.year, day.month), _month_key, month_title(day)
        )
        day_node = _find_or_create(
            month, depth + 2, (day.year, day.month, day.day),
            _day_key, day_title(day),
        )

        block = parse_outline(_split(formatted))
        if not block.children:
            raise ValueError("formatted entry has no heading")
        for entry in block.children:
            entry.shift(day_node.level + 1 - entry.level)
        day_node.children[0:0] = block.children
        self.modified = True
        return day_node

    # ── Persistence ───────────────────────────────────────────────────

    def save(self) -> bool:
        """
        Write the document back to its path if it changed.  The new content
        replaces the old file atomically.  Returns True when it wrote.
        """
        if not self.modified:
            return False
        if self.path is None:
            raise StorageIOError("document has no backing path")
        if self.read_only:
            raise ReadOnlyTargetError(f"journal document is read-only: {self.path}")

        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.text())
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, stat.S_IMODE(self.path.stat().st_mode))
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
            raise StorageIOError(f"cannot write {self.path}: {exc}") from exc

        self.modified = False
        self._trailing_newline = True
        logger.debug("Journal saved → %s", self.path)
        return True


def insert_under_date(document: DatetreeDocument, day: date, formatted: str) -> Heading:
    return document.insert_under_date(day, formatted)


@contextmanager
def document_lock(path: Path) -> Iterator[bool]:
    """
    Hold an exclusive advisory lock for *path* (on a sidecar lock file).
    Yields False instead of blocking when another process holds it.
    """
    path = Path(path)
    lock_path = path.with_name(f".{path.name}.lock")
    try:
        lock_fd = open(lock_path, "w")
    except OSError as exc:
        raise StorageIOError(f"cannot open lock file {lock_path}: {exc}") from exc
    try:
        try:
            fcntl.flock(lock_fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            yield False
            return
        try:
            yield True
        finally:
            fcntl.flock(lock_fd.fileno(), fcntl.LOCK_UN)
    finally:
        lock_fd.close()
