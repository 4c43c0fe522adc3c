"""
Ingestion Runner — one pass over the note inbox.

A pass:
  1. skips everything when the journal document does not exist
  2. parses, formats and files every note into the in-memory journal
  3. records the batch in the processed tracker
  4. saves the journal once
  5. deletes the filed notes and clears them from the tracker

Notes are only deleted after the journal is safely on disk.  The tracker
guarantees a note is never filed twice: if the process dies after saving
but before deleting, the next pass just finishes the deletions.
"""

import logging
import threading
from pathlib import Path

from shared_notes import config
from shared_notes.errors import (
    MalformedNoteError,
    StorageIOError,
    TargetMissingError,
)
from shared_notes.services.datetree import DatetreeDocument, document_lock
from shared_notes.services.entry_formatter import entry_depth, format_entry
from shared_notes.services.note_inbox import (
    Note,
    delete_note,
    list_notes,
    load_processed,
    read_note,
    save_processed,
    signature_of,
)
from shared_notes.services.note_parser import parse

logger = logging.getLogger(__name__)


class IngestionRunner:
    """Files shared notes into the journal, at most one pass at a time."""

    def __init__(
        self,
        note_dir: Path | None = None,
        target: Path | None = None,
        base_depth: int | None = None,
        suffix: str | None = None,
    ):
        self.note_dir = Path(note_dir or config.SHARED_NOTES_DIR)
        self.target = Path(target or config.SHARED_NOTES_TARGET)
        self.base_depth = base_depth or config.DATETREE_BASE_DEPTH
        self.suffix = suffix or config.SHARED_NOTES_SUFFIX
        self._pass_lock = threading.Lock()

    def run(self, note_dir: Path | None = None, target: Path | None = None) -> int:
        """
        Run one pass and return the number of notes filed.  Returns 0
        without doing anything when another pass is still in flight.
        """
        note_dir = Path(note_dir) if note_dir else self.note_dir
        target = Path(target) if target else self.target

        if not self._pass_lock.acquire(blocking=False):
            logger.info("Previous pass still running; skipping this one.")
            return 0
        try:
            count = self._run_pass(note_dir, target)
        finally:
            self._pass_lock.release()

        if count:
            logger.info("Processed %d shared note(s) into %s", count, target)
        return count

    # ── Pass internals ────────────────────────────────────────────────

    def _run_pass(self, note_dir: Path, target: Path) -> int:
        if not target.exists():
            logger.debug("Journal %s missing; nothing to do.", target)
            return 0

        with document_lock(target) as acquired:
            if not acquired:
                logger.info("Journal %s is locked by another process.", target)
                return 0
            try:
                document = DatetreeDocument.load(target, self.base_depth)
            except TargetMissingError:
                logger.debug("Journal %s vanished; nothing to do.", target)
                return 0

            processed = load_processed(note_dir)
            self._finish_deletions(note_dir, processed)

            batch = []
            for path in list_notes(note_dir, self.suffix):
                if path.name in processed:
                    continue
                note = self._file_note(document, path)
                if note:
                    batch.append(note)

            self._commit(note_dir, document, batch, processed)
            return len(batch)

    def _file_note(self, document: DatetreeDocument, path: Path) -> Note | None:
        """Insert one note into *document*; None when the note is skipped."""
        try:
            note = read_note(path)
            entry = parse(note.raw, note.mtime, path.stem)
        except (MalformedNoteError, StorageIOError) as exc:
            logger.warning("Skipping %s: %s", path.name, exc)
            return None

        formatted = format_entry(entry, entry_depth(document.base_depth))
        # ReadOnlyTargetError aborts the whole pass before anything is deleted
        document.insert_under_date(entry.timestamp.date(), formatted)
        logger.debug("Filed %s under %s", path.name, entry.timestamp.date())
        return note

    def _commit(
        self,
        note_dir: Path,
        document: DatetreeDocument,
        batch: list[Note],
        processed: dict[str, list],
    ) -> None:
        if batch:
            for note in batch:
                processed[note.name] = note.signature
            save_processed(note_dir, processed)

        try:
            document.save()
        except Exception:
            # Nothing reached the journal: untrack the batch so it is retried
            for note in batch:
                processed.pop(note.name, None)
            self._write_tracker(note_dir, processed)
            raise

        if not batch:
            return
        for note in batch:
            try:
                delete_note(note.path)
            except StorageIOError as exc:
                logger.warning("%s; will retry next pass.", exc)
                continue
            processed.pop(note.name, None)
        self._write_tracker(note_dir, processed)

    def _write_tracker(self, note_dir: Path, processed: dict[str, list]) -> None:
        try:
            save_processed(note_dir, processed)
        except StorageIOError:
            logger.exception("Could not update the processed-notes tracker")

    def _finish_deletions(self, note_dir: Path, processed: dict[str, list]) -> None:
        """Delete notes a previous pass filed but could not remove."""
        if not processed:
            return
        for name, signature in list(processed.items()):
            path = note_dir / name
            current = signature_of(path)
            if current is None or current != signature:
                # Gone already, or a new note reusing the name
                del processed[name]
                continue
            try:
                delete_note(path)
            except StorageIOError as exc:
                logger.warning("%s; will retry next pass.", exc)
                continue
            logger.info("Removed %s, filed by an earlier pass.", name)
            del processed[name]
        self._write_tracker(note_dir, processed)
