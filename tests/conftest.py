import os
from datetime import datetime

import pytest


@pytest.fixture
def note_dir(tmp_path):
    path = tmp_path / "shared-notes"
    path.mkdir()
    return path


@pytest.fixture
def journal(tmp_path):
    path = tmp_path / "journal.org"
    path.write_text("#+TITLE: Journal\n", encoding="utf-8")
    return path


@pytest.fixture
def write_note(note_dir):
    """Create a note file with the given content and modification time."""
    def _write(name, content, when=datetime(2014, 3, 5, 10, 0, 0)):
        path = note_dir / name
        if isinstance(content, str):
            content = content.encode("utf-8")
        path.write_bytes(content)
        stamp = when.timestamp()
        os.utime(path, (stamp, stamp))
        return path
    return _write
