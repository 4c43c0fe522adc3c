"""
Note Inbox — the synced folder where shared notes arrive.

Lists candidate note files, reads their content and modification time,
deletes them once they are filed, and keeps a small tracker of notes
whose entries are already in the journal so that a note is never filed
twice, even when its deletion failed or the process died before it.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from shared_notes import config
from shared_notes.errors import StorageIOError

logger = logging.getLogger(__name__)

TRACKER_NAME = ".processed_notes.json"


@dataclass(frozen=True)
class Note:
    """One unprocessed note file as found in the inbox."""
    path: Path
    raw: bytes
    mtime: float
    size: int

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def signature(self) -> list:
        return [self.mtime, self.size]


def list_notes(note_dir: Path, suffix: str | None = None) -> list[Path]:
    """Return note files in *note_dir*, in name order."""
    suffix = suffix or config.SHARED_NOTES_SUFFIX
    note_dir = Path(note_dir)
    if not note_dir.is_dir():
        logger.debug("Note folder %s does not exist.", note_dir)
        return []
    return sorted(p for p in note_dir.glob(f"*{suffix}") if p.is_file())


def read_note(path: Path) -> Note:
    try:
        info = path.stat()
        raw = path.read_bytes()
    except OSError as exc:
        raise StorageIOError(f"cannot read {path}: {exc}") from exc
    return Note(path=path, raw=raw, mtime=info.st_mtime, size=info.st_size)


def signature_of(path: Path) -> list | None:
    try:
        info = path.stat()
    except FileNotFoundError:
        return None
    return [info.st_mtime, info.st_size]


def delete_note(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        logger.debug("%s already gone.", path)
    except OSError as exc:
        raise StorageIOError(f"cannot delete {path}: {exc}") from exc


# ── Processed tracker ─────────────────────────────────────────────────

def _tracker_path(note_dir: Path) -> Path:
    return Path(note_dir) / TRACKER_NAME


def load_processed(note_dir: Path) -> dict[str, list]:
    """Map of note name → [mtime, size] for notes already in the journal."""
    tracker = _tracker_path(note_dir)
    if not tracker.exists():
        return {}
    try:
        return dict(json.loads(tracker.read_text()))
    except (OSError, ValueError, TypeError):
        logger.warning("Ignoring unreadable tracker %s", tracker)
        return {}


def save_processed(note_dir: Path, processed: dict[str, list]) -> None:
    tracker = _tracker_path(note_dir)
    try:
        if processed:
            tracker.write_text(json.dumps(processed, sort_keys=True))
        elif tracker.exists():
            tracker.unlink()
    except OSError as exc:
        raise StorageIOError(f"cannot write tracker {tracker}: {exc}") from exc
