"""
Central configuration for the shared-notes journal.

All paths and tuning knobs live here.  Values are read from environment
variables (or a .env file) with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _flag(value: str) -> bool:
    return value.strip().lower() not in ("0", "false", "no", "off", "")


# ── Watch folder ──────────────────────────────────────────────────────
# Folder the external sync agent drops shared notes into
SHARED_NOTES_DIR = Path(
    os.getenv("SHARED_NOTES_DIR", "~/Dropbox/shared-notes")
).expanduser()
# Only files with this suffix are treated as notes
SHARED_NOTES_SUFFIX = os.getenv("SHARED_NOTES_SUFFIX", ".txt")

# ── Target document ───────────────────────────────────────────────────
# The datetree journal; it must already exist, it is never created
SHARED_NOTES_TARGET = Path(
    os.getenv("SHARED_NOTES_TARGET", "~/Dropbox/org/journal.org")
).expanduser()
# Heading depth of the Year nodes (Month, Day and entries sit below)
DATETREE_BASE_DEPTH = int(os.getenv("DATETREE_BASE_DEPTH", "1"))

# ── Schedule ──────────────────────────────────────────────────────────
# Seconds between ingestion passes
SHARED_NOTES_PERIOD = int(os.getenv("SHARED_NOTES_PERIOD", "3600"))
# Whether the periodic job runs at all
SHARED_NOTES_ENABLED = _flag(os.getenv("SHARED_NOTES_ENABLED", "1"))

# ── Logging ───────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
# Empty string disables the file handler
LOG_FILE = os.getenv("LOG_FILE", "shared_notes.log")
