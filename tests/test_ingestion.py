"""
Tests for ingestion passes over the note inbox.
"""
import errno
import json
import logging
import threading
from datetime import date, datetime

import pytest

from shared_notes.errors import ReadOnlyTargetError, StorageIOError
from shared_notes.services import datetree, ingestion, note_inbox
from shared_notes.services.datetree import DatetreeDocument
from shared_notes.services.ingestion import IngestionRunner

MARCH_5 = date(2014, 3, 5)


@pytest.fixture
def runner(note_dir, journal):
    return IngestionRunner(note_dir=note_dir, target=journal, base_depth=1, suffix=".txt")


def titles_on(journal, day):
    return [h.title for h in DatetreeDocument.load(journal, base_depth=1).entries_on(day)]


class TestRun:

    def test_end_to_end(self, runner, journal, write_note):
        note = write_note("a.txt", "Interesting Article\n\nhttp://example.com/x")
        assert runner.run() == 1
        assert not note.exists()
        assert journal.read_text() == (
            "#+TITLE: Journal\n"
            "* 2014\n"
            "** 2014-03 March\n"
            "*** 2014-03-05 Wednesday\n"
            "**** Interesting Article\n"
            "http://example.com/x\n"
            "Entered on [2014-03-05 10:00:00]\n"
            "\n"
        )

    def test_every_note_filed_once_and_deleted(self, runner, journal, note_dir, write_note):
        write_note("a.txt", "Alpha\nhttp://a.example")
        write_note("b.txt", "Beta\nhttp://b.example", when=datetime(2014, 3, 6, 9, 0))
        write_note("keep.md", "not a note")
        assert runner.run() == 2
        assert sorted(p.name for p in note_dir.iterdir()) == ["keep.md"]
        assert titles_on(journal, MARCH_5) == ["Alpha"]
        assert titles_on(journal, date(2014, 3, 6)) == ["Beta"]

        assert runner.run() == 0
        assert journal.read_text().count("**** Alpha") == 1

    def test_same_day_notes_reverse_processing_order(self, runner, journal, write_note):
        write_note("1.txt", "First\nhttp://one")
        write_note("2.txt", "Second\nhttp://two")
        runner.run()
        assert titles_on(journal, MARCH_5) == ["Second", "First"]

    def test_missing_target_touches_nothing(self, note_dir, tmp_path, write_note):
        note = write_note("a.txt", "Title\nhttp://x")
        runner = IngestionRunner(note_dir=note_dir, target=tmp_path / "absent.org")
        assert runner.run() == 0
        assert note.exists()
        assert not (tmp_path / "absent.org").exists()
        assert sorted(p.name for p in tmp_path.iterdir()) == ["shared-notes"]

    def test_missing_note_dir(self, journal, tmp_path):
        runner = IngestionRunner(note_dir=tmp_path / "nowhere", target=journal)
        assert runner.run() == 0
        assert journal.read_text() == "#+TITLE: Journal\n"

    def test_no_notes_leaves_journal_untouched(self, runner, journal):
        before = journal.stat().st_mtime_ns
        assert runner.run() == 0
        assert journal.stat().st_mtime_ns == before

    def test_status_logged_only_when_notes_processed(self, runner, write_note, caplog):
        caplog.set_level(logging.INFO, logger="shared_notes")
        runner.run()
        assert "Processed" not in caplog.text
        write_note("a.txt", "Title\nhttp://x")
        runner.run()
        assert "Processed 1 shared note(s)" in caplog.text


class TestFailures:

    def test_malformed_note_is_skipped(self, runner, journal, write_note):
        bad = write_note("bad.txt", b"\xff\xfe\xfa")
        good = write_note("good.txt", "Good\nhttp://ok")
        assert runner.run() == 1
        assert bad.exists()
        assert not good.exists()
        assert titles_on(journal, MARCH_5) == ["Good"]

    def test_unreadable_note_is_skipped(self, runner, write_note, monkeypatch):
        bad = write_note("bad.txt", "Bad\nhttp://x")
        good = write_note("good.txt", "Good\nhttp://ok")
        real_read = note_inbox.read_note

        def flaky_read(path):
            if path.name == "bad.txt":
                raise StorageIOError("cannot read bad.txt")
            return real_read(path)

        monkeypatch.setattr(ingestion, "read_note", flaky_read)
        assert runner.run() == 1
        assert bad.exists()
        assert not good.exists()

    def test_read_only_target_deletes_nothing(self, runner, journal, note_dir, write_note, monkeypatch):
        write_note("a.txt", "A\nhttp://a")
        write_note("b.txt", "B\nhttp://b")
        real_load = DatetreeDocument.load

        def read_only_load(path, base_depth=None):
            doc = real_load(path, base_depth)
            doc.read_only = True
            return doc

        monkeypatch.setattr(DatetreeDocument, "load", staticmethod(read_only_load))
        with pytest.raises(ReadOnlyTargetError):
            runner.run()
        assert sorted(p.name for p in note_dir.iterdir()) == ["a.txt", "b.txt"]
        assert journal.read_text() == "#+TITLE: Journal\n"

    def test_failed_save_keeps_notes_for_next_pass(self, runner, journal, note_dir, write_note, monkeypatch):
        note = write_note("a.txt", "A\nhttp://a")

        def broken_save(self):
            raise StorageIOError("disk full")

        with monkeypatch.context() as m:
            m.setattr(DatetreeDocument, "save", broken_save)
            with pytest.raises(StorageIOError):
                runner.run()
        assert note.exists()
        assert not (note_dir / note_inbox.TRACKER_NAME).exists()

        assert runner.run() == 1
        assert not note.exists()
        assert titles_on(journal, MARCH_5) == ["A"]

    def test_temp_file_failure_keeps_notes_for_next_pass(self, runner, journal, note_dir, write_note, monkeypatch):
        note = write_note("a.txt", "A\nhttp://a")

        def no_space(*args, **kwargs):
            raise OSError(errno.ENOSPC, "No space left on device")

        with monkeypatch.context() as m:
            m.setattr(datetree.tempfile, "mkstemp", no_space)
            with pytest.raises(StorageIOError):
                runner.run()
        assert note.exists()
        assert not (note_dir / note_inbox.TRACKER_NAME).exists()
        assert journal.read_text() == "#+TITLE: Journal\n"

        assert runner.run() == 1
        assert not note.exists()
        assert titles_on(journal, MARCH_5) == ["A"]

    def test_unexpected_save_error_untracks_batch(self, runner, note_dir, write_note, monkeypatch):
        note = write_note("a.txt", "A\nhttp://a")

        def crash(self):
            raise RuntimeError("unexpected")

        with monkeypatch.context() as m:
            m.setattr(DatetreeDocument, "save", crash)
            with pytest.raises(RuntimeError):
                runner.run()
        assert note.exists()
        assert not (note_dir / note_inbox.TRACKER_NAME).exists()

    def test_tracker_rollback_failure_keeps_save_error(self, runner, write_note, monkeypatch):
        write_note("a.txt", "A\nhttp://a")
        real_save_processed = note_inbox.save_processed
        calls = []

        def flaky_save_processed(note_dir, processed):
            calls.append(dict(processed))
            if len(calls) > 1:
                raise StorageIOError("tracker unwritable")
            real_save_processed(note_dir, processed)

        def broken_save(self):
            raise StorageIOError("disk full")

        monkeypatch.setattr(ingestion, "save_processed", flaky_save_processed)
        monkeypatch.setattr(DatetreeDocument, "save", broken_save)
        with pytest.raises(StorageIOError, match="disk full"):
            runner.run()

    def test_tracker_failure_after_delete_still_reports(self, runner, journal, write_note, monkeypatch, caplog):
        note = write_note("a.txt", "A\nhttp://a")
        real_save_processed = note_inbox.save_processed
        calls = []

        def flaky_save_processed(note_dir, processed):
            calls.append(dict(processed))
            if len(calls) > 1:
                raise StorageIOError("tracker unwritable")
            real_save_processed(note_dir, processed)

        caplog.set_level(logging.INFO, logger="shared_notes")
        monkeypatch.setattr(ingestion, "save_processed", flaky_save_processed)
        assert runner.run() == 1
        assert not note.exists()
        assert titles_on(journal, MARCH_5) == ["A"]
        assert "Processed 1 shared note(s)" in caplog.text
        assert "Could not update the processed-notes tracker" in caplog.text

    def test_failed_delete_is_not_filed_twice(self, runner, journal, note_dir, write_note, monkeypatch):
        note = write_note("a.txt", "A\nhttp://a")

        def broken_delete(path):
            raise StorageIOError(f"cannot delete {path}")

        with monkeypatch.context() as m:
            m.setattr(ingestion, "delete_note", broken_delete)
            assert runner.run() == 1
        assert note.exists()
        tracked = json.loads((note_dir / note_inbox.TRACKER_NAME).read_text())
        assert list(tracked) == ["a.txt"]

        assert runner.run() == 0
        assert not note.exists()
        assert not (note_dir / note_inbox.TRACKER_NAME).exists()
        assert titles_on(journal, MARCH_5) == ["A"]

    def test_new_note_reusing_a_tracked_name_is_filed(self, runner, journal, note_dir, write_note):
        (note_dir / note_inbox.TRACKER_NAME).write_text(json.dumps({"a.txt": [1.0, 3]}))
        write_note("a.txt", "Fresh\nhttp://new")
        assert runner.run() == 1
        assert titles_on(journal, MARCH_5) == ["Fresh"]
        assert not (note_dir / note_inbox.TRACKER_NAME).exists()


def test_overlapping_run_is_skipped(runner, write_note, monkeypatch):
    write_note("a.txt", "A\nhttp://a")
    entered = threading.Event()
    release = threading.Event()
    real_pass = IngestionRunner._run_pass

    def slow_pass(self, note_dir, target):
        entered.set()
        release.wait(5)
        return real_pass(self, note_dir, target)

    monkeypatch.setattr(IngestionRunner, "_run_pass", slow_pass)
    results = []
    worker = threading.Thread(target=lambda: results.append(runner.run()))
    worker.start()
    assert entered.wait(5)
    assert runner.run() == 0
    release.set()
    worker.join(5)
    assert results == [1]
