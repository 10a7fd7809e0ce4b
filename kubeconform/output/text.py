"""Plain-text report of validation results."""

from __future__ import annotations

import threading
from typing import IO

from ..resource import Resource, Signature, SignatureError
from ..validator import Result, Status


def _signature(res: Resource) -> Signature:
    try:
        return res.signature()
    except SignatureError as err:
        return err.signature


class TextOutput:
    """Prints one line per reported result, and an optional summary on flush."""

    def __init__(self, stream: IO[str], with_summary: bool = False, is_stdin: bool = False, verbose: bool = False) -> None:
        self.stream = stream
        self.with_summary = with_summary
        self.is_stdin = is_stdin
        self.verbose = verbose
        self._lock = threading.Lock()
        self._files: set[str] = set()
        self._counts = {Status.VALID: 0, Status.INVALID: 0, Status.ERROR: 0, Status.SKIPPED: 0}

    def write(self, result: Result) -> None:
        """Print the line for a result, if it is to be shown."""
        with self._lock:
            path = result.resource.path
            sig = _signature(result.resource)
            self._files.add(path)
            status = result.status
            if status == Status.VALID:
                if self.verbose:
                    self.stream.write(f"{path} - {sig.kind} {sig.name} is valid\n")
            elif status == Status.INVALID:
                self.stream.write(f"{path} - {sig.kind} {sig.name} is invalid: {result.err}\n")
            elif status == Status.ERROR:
                if sig.kind and sig.name:
                    self.stream.write(f"{path} - {sig.kind} {sig.name} failed validation: {result.err}\n")
                else:
                    self.stream.write(f"{path} - failed validation: {result.err}\n")
            elif status == Status.SKIPPED:
                if self.verbose:
                    self.stream.write(f"{path} - {sig.name} {sig.kind} skipped\n")
            if status in self._counts:
                self._counts[status] += 1

    def flush(self) -> None:
        """Print the summary, if requested."""
        if not self.with_summary:
            return
        valid = self._counts[Status.VALID]
        invalid = self._counts[Status.INVALID]
        errors = self._counts[Status.ERROR]
        skipped = self._counts[Status.SKIPPED]
        n_resources = valid + invalid + errors + skipped
        n_files = len(self._files)
        resources_plural = "s" if n_resources > 1 else ""
        files_plural = "s" if n_files > 1 else ""
        counts = f"Valid: {valid}, Invalid: {invalid}, Errors: {errors}, Skipped: {skipped}"
        if self.is_stdin:
            self.stream.write(f"Summary: {n_resources} resource{resources_plural} found parsing stdin - {counts}\n")
        else:
            self.stream.write(
                f"Summary: {n_resources} resource{resources_plural} found in {n_files} file{files_plural} - {counts}\n"
            )