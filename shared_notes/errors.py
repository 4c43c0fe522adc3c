"""Exceptions raised while filing shared notes into the journal."""


class SharedNotesError(Exception):
    """Base class for every shared-notes failure."""


class TargetMissingError(SharedNotesError):
    """The journal document does not exist; a pass is skipped."""


class ReadOnlyTargetError(SharedNotesError):
    """The journal document cannot be modified."""


class MalformedNoteError(SharedNotesError):
    """A note's bytes cannot be decoded as text."""


class StorageIOError(SharedNotesError):
    """Reading, writing or deleting a file failed."""
