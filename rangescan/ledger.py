"""
Append-only record of probed targets, used to resume interrupted scans.

Each record is one line, ``TARGET,OUTCOME`` with OUTCOME either ``OK`` or
``Failure``. The file is never rewritten; a later record for the same target
wins when the file is loaded.
"""
from __future__ import annotations
import logging
import os
from typing import Dict, Iterable, Optional, TextIO

from .models import Outcome


def format_record(target: str, outcome: Outcome) -> str:
    """Formats one ledger line, newline included."""
    return f"{target},{outcome.value}\n"


def parse_ledger(lines: Iterable[str]) -> Dict[str, Outcome]:
    """
    Parses ledger lines into a target -> outcome mapping.

    Raises ValueError on the first malformed record.
    """
    entries: Dict[str, Outcome] = {}
    for number, line in enumerate(lines, start=1):
        s = line.strip()
        if not s:
            continue
        target, sep, outcome = s.rpartition(',')
        if not sep or not target.strip():
            raise ValueError(f"line {number}: expected TARGET,OUTCOME but got '{s}'")
        try:
            entries[target.strip()] = Outcome.from_record(outcome.strip())
        except ValueError as e:
            raise ValueError(f"line {number}: {e}") from None
    return entries


class ScanLedger:
    """Target -> outcome mapping backed by an append-only file."""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self.entries: Dict[str, Outcome] = {}
        self._file: Optional[TextIO] = None

    def __enter__(self) -> "ScanLedger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def load(self) -> Dict[str, Outcome]:
        """
        Loads the ledger file, best effort.

        A missing, unreadable or malformed file yields an empty mapping.
        """
        self.entries = {}
        if not self.path:
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                self.entries = parse_ledger(f)
        except FileNotFoundError:
            logging.info(f"No ledger at '{self.path}', starting fresh.")
        except (OSError, UnicodeDecodeError, ValueError) as e:
            logging.warning(f"Ignoring unreadable ledger '{self.path}': {e}")
        else:
            logging.info(f"Loaded {len(self.entries)} entries from ledger '{self.path}'.")
        return dict(self.entries)

    def has(self, target: str) -> bool:
        return target in self.entries

    def record(self, target: str, outcome: Outcome) -> None:
        """
        Records an outcome in memory and appends it to the ledger file.

        A failed write is logged and otherwise ignored; the entry is then
        only known to this run.
        """
        self.entries[target] = outcome
        if not self.path:
            return
        try:
            f = self._open()
            f.write(format_record(target, outcome))
            f.flush()
        except OSError as e:
            logging.warning(f"Could not write '{target}' to ledger '{self.path}': {e}")

    def close(self) -> None:
        if self._file is not None:
            try:
                self._file.close()
            except OSError as e:
                logging.warning(f"Error closing ledger '{self.path}': {e}")
            self._file = None

    def _open(self) -> TextIO:
        if self._file is None:
            needs_newline = ends_without_newline(self.path)
            self._file = open(self.path, 'a', encoding='utf-8', newline='\n')
            if needs_newline:
                self._file.write('\n')
        return self._file


def ends_without_newline(path: str) -> bool:
    """True when the file exists, is non-empty and its last byte is not a newline."""
    try:
        if os.path.getsize(path) == 0:
            return False
        with open(path, 'rb') as f:
            f.seek(-1, os.SEEK_END)
            return f.read(1) != b'\n'
    except OSError:
        return False
