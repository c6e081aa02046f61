"""
Per-target reporting and the list of successful targets.
"""
from __future__ import annotations
import logging
import sys
from typing import Callable, Iterable, Optional, TextIO

from .ledger import ends_without_newline
from .models import ScanResult, ScanSummary


class ResultPrinter:
    """Prints one line per probed target as results arrive."""

    def __init__(self, stream: Optional[TextIO] = None, silent: bool = False, verbose: bool = False):
        self.stream = stream if stream is not None else sys.stdout
        self.silent = silent
        self.verbose = verbose

    def __call__(self, result: ScanResult) -> None:
        if self.silent:
            return
        if result.ok:
            line = f"OK      {result.target}"
        elif self.verbose and result.reason:
            line = f"Failure {result.target} ({result.reason})"
        else:
            line = f"Failure {result.target}"
        print(line, file=self.stream, flush=True)


class GoodTargetWriter:
    """Appends every successful target to a file, one per line."""

    def __init__(self, path: str):
        self.path = path
        self._file: Optional[TextIO] = None

    def __call__(self, result: ScanResult) -> None:
        if not result.ok:
            return
        try:
            if self._file is None:
                needs_newline = ends_without_newline(self.path)
                self._file = open(self.path, 'a', encoding='utf-8', newline='\n')
                if needs_newline:
                    self._file.write('\n')
            self._file.write(f"{result.target}\n")
            self._file.flush()
        except OSError as e:
            logging.warning(f"Could not write '{result.target}' to '{self.path}': {e}")

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


def fan_out(sinks: Iterable[Callable[[ScanResult], None]]) -> Callable[[ScanResult], None]:
    """Combines result sinks; each sees every result in the same order."""
    sinks = list(sinks)

    def _dispatch(result: ScanResult) -> None:
        for sink in sinks:
            sink(result)

    return _dispatch


def format_summary(summary: ScanSummary) -> str:
    return (
        f"{summary.probed} probed, {summary.succeeded} OK, {summary.failed} failed, "
        f"{summary.skipped} skipped, {summary.invalid} invalid"
    )
